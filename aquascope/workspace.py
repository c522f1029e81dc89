"""Helpers for locating the Rust toolchain that runs the analyses."""

from __future__ import annotations

import os
import subprocess
import tomllib
from collections.abc import Mapping, Sequence
from pathlib import Path

DEFAULT_TOOLCHAIN_FILE = Path("rust-toolchain.toml")


def _environment(env: Mapping[str, str] | None) -> dict[str, str] | None:
    if env is None:
        return None
    merged = dict(os.environ)
    merged.update({key: str(value) for key, value in env.items()})
    return merged


def run_and_get_output(cmd: Sequence[str], env: Mapping[str, str] | None = None) -> str:
    """Run a command and return its stdout without trailing whitespace.

    Raises RuntimeError carrying the command's stderr if it exits unsuccessfully.
    """
    completed = subprocess.run(
        list(cmd), capture_output=True, env=_environment(env), check=False
    )
    if completed.returncode != 0:
        raise RuntimeError(
            "Command failed with stderr:\n" + completed.stderr.decode("utf-8")
        )
    return completed.stdout.decode("utf-8").rstrip()


def toolchain(toolchain_file: str | os.PathLike[str] | None = None) -> str:
    """Read the toolchain channel from a rust-toolchain.toml file."""
    path = Path(toolchain_file) if toolchain_file is not None else DEFAULT_TOOLCHAIN_FILE
    with path.open("rb") as handle:
        config = tomllib.load(handle)
    if "toolchain" not in config:
        raise ValueError("Missing toolchain key")
    section = config["toolchain"]
    if not isinstance(section, dict) or "channel" not in section:
        raise ValueError("Missing channel key")
    channel = section["channel"]
    if not isinstance(channel, str):
        raise ValueError("Toolchain channel is not a string")
    return channel


def _optional_toolchain(toolchain_file: str | os.PathLike[str] | None) -> str | None:
    try:
        return toolchain(toolchain_file)
    except (OSError, ValueError):
        return None


def rustc(toolchain_file: str | os.PathLike[str] | None = None) -> Path:
    """Locate the rustc binary, preferring RUSTC_PATH, then the pinned toolchain."""
    override = os.environ.get("RUSTC_PATH")
    if override is not None:
        return Path(override)

    channel = _optional_toolchain(toolchain_file)
    if channel is not None:
        output = run_and_get_output(["rustup", "which", "--toolchain", channel, "rustc"])
    else:
        output = run_and_get_output(["which", "rustc"])
    return Path(output)


def miri_sysroot(toolchain_file: str | os.PathLike[str] | None = None) -> Path:
    """Locate the Miri sysroot, preferring MIRI_SYSROOT, otherwise asking cargo."""
    override = os.environ.get("MIRI_SYSROOT")
    if override is not None:
        return Path(override)

    cmd = ["cargo"]
    channel = _optional_toolchain(toolchain_file)
    if channel is not None:
        cmd.append(f"+{channel}")
    cmd.extend(["miri", "setup", "--print-sysroot"])

    completed = subprocess.run(cmd, capture_output=True, check=False)
    if completed.returncode != 0:
        raise RuntimeError("Command failed")
    return Path(completed.stdout.decode("utf-8").rstrip())