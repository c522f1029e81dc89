"""A scratch Cargo project in which Aquascope analyses are run."""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .workspace import miri_sysroot

log = logging.getLogger(__name__)

DEFAULT_PROJECT_PATH = "aquascope_tmp_proj"
COMMAND_TIMEOUT = 20.0

CommandSpec = tuple[list[str], dict[str, str]]


class ContainerError(RuntimeError):
    """A step of preparing or running the scratch project failed."""


class CommandTimeoutError(ContainerError):
    """A command ran longer than the container allows."""

    def __init__(self, timeout: float):
        super().__init__(f"Command execution took longer than {int(timeout * 1000)} ms")
        self.timeout = timeout


@dataclass(frozen=True)
class SingleFileRequest:
    """A request carrying the source of a single-file program."""

    code: str
    config: Any = None

    @classmethod
    def from_json(cls, data: Any) -> SingleFileRequest:
        if not isinstance(data, Mapping):
            raise ValueError("expected a JSON object")
        if "code" not in data:
            raise ValueError("missing field `code`")
        code = data["code"]
        if not isinstance(code, str):
            raise ValueError("field `code` must be a string")
        return cls(code=code, config=data.get("config"))


@dataclass(frozen=True)
class ServerResponse:
    """The outcome of running an analysis command."""

    success: bool
    stdout: str
    stderr: str

    def to_json(self) -> dict[str, Any]:
        return {"success": self.success, "stdout": self.stdout, "stderr": self.stderr}


class Container:
    """A temporary workspace holding one Cargo binary project."""

    def __init__(self, timeout: float = COMMAND_TIMEOUT):
        try:
            self._workspace = tempfile.TemporaryDirectory()
        except OSError as error:
            raise ContainerError(
                f"Unable to create temporary local directory {error}"
            ) from error
        self.timeout = timeout
        self.project_dir: str | None = None

    @classmethod
    def create(cls) -> Container:
        """Create a workspace and a fresh Cargo project inside it."""
        container = cls()
        try:
            container._cargo_new()
        except BaseException:
            container.cleanup()
            raise
        return container

    def __enter__(self) -> Container:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()

    def exec_output(
        self, cmd: Sequence[str], env: Mapping[str, str] | None = None
    ) -> tuple[str, str]:
        """Run a command in the project directory, returning (stdout, stderr)."""
        environment = None
        if env is not None:
            environment = dict(os.environ)
            environment.update({key: str(value) for key, value in env.items()})
        try:
            completed = subprocess.run(
                list(cmd),
                cwd=self.cwd(),
                env=environment,
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as error:
            raise CommandTimeoutError(self.timeout) from error
        except OSError as error:
            raise ContainerError(f"Unable to execute local command {error}") from error

        stdout = completed.stdout.decode("utf-8")
        stderr = completed.stderr.decode("utf-8")
        log.info("%s", stderr)
        return stdout, stderr

    def _cargo_new(self) -> None:
        if self.project_dir is not None:
            log.warning("Attempt to create a second project directory ignored")
            return

        stdout, stderr = self.exec_output(
            ["cargo", "new", "--bin", DEFAULT_PROJECT_PATH, "--quiet"]
        )
        if stderr.strip():
            log.error("%s", stderr)
            raise ContainerError(f"`cargo new` failed {stderr}")
        log.debug("Cargo output %s", stdout)
        self.project_dir = DEFAULT_PROJECT_PATH

    def cwd(self) -> Path:
        base = Path(self._workspace.name)
        return base if self.project_dir is None else base / self.project_dir

    def main_abs_path(self) -> str:
        return str(self.cwd() / "src" / "main.rs")

    def write_source_code(self, code: str) -> None:
        try:
            Path(self.main_abs_path()).write_text(code, encoding="utf-8")
        except OSError as error:
            raise ContainerError(f"Unable to create output directory: {error}") from error

    @staticmethod
    def _sysroot() -> str:
        try:
            return str(miri_sysroot())
        except (RuntimeError, OSError) as error:
            raise ContainerError(f"Miscellaneous error: {error}") from error

    def permissions_command(self) -> CommandSpec:
        env = {
            "RUST_LOG": "trace",
            "RUST_BACKTRACE": "1",
            "MIRI_SYSROOT": self._sysroot(),
        }
        return ["cargo", "--quiet", "aquascope", "permissions"], env

    def interpreter_command(self, request: SingleFileRequest) -> CommandSpec:
        env = {
            "RUST_LOG": "debug",
            "RUST_BACKTRACE": "1",
            "MIRI_SYSROOT": self._sysroot(),
        }
        cmd = ["cargo", "--quiet", "aquascope"]
        if isinstance(request.config, Mapping) and "shouldFail" in request.config:
            cmd.append("--should-fail")
        cmd.append("interpreter")
        return cmd, env

    def _run(self, request: SingleFileRequest, spec: CommandSpec) -> ServerResponse:
        cmd, env = spec
        stdout, stderr = self.exec_output(cmd, env)
        # Anything on stdout is taken as a result worth reporting.
        return ServerResponse(success=bool(stdout.strip()), stdout=stdout, stderr=stderr)

    def permissions(self, request: SingleFileRequest) -> ServerResponse:
        self.write_source_code(request.code)
        return self._run(request, self.permissions_command())

    def interpreter(self, request: SingleFileRequest) -> ServerResponse:
        self.write_source_code(request.code)
        return self._run(request, self.interpreter_command(request))

    def cleanup(self) -> None:
        """Remove the workspace directory."""
        self._workspace.cleanup()