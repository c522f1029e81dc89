import json
import os
import sys
from pathlib import Path

import pytest

from aquascope.container import (
    DEFAULT_PROJECT_PATH,
    CommandTimeoutError,
    Container,
    ContainerError,
    ServerResponse,
    SingleFileRequest,
)

FAKE_CARGO = """#!{python}
import json, os, sys
args = sys.argv[1:]
if args[:2] == ["new", "--bin"]:
    {new_action}
    os.makedirs(os.path.join(args[2], "src"))
    open(os.path.join(args[2], "src", "main.rs"), "w").close()
else:
    with open(os.path.join("src", "main.rs")) as handle:
        code = handle.read()
    print(json.dumps({{"args": args, "sysroot": os.environ.get("MIRI_SYSROOT"),
                      "log": os.environ.get("RUST_LOG"), "code": code}}))
"""


def _install_cargo(tmp_path, monkeypatch, new_action="pass"):
    bindir = tmp_path / "bin"
    bindir.mkdir()
    script = bindir / "cargo"
    script.write_text(FAKE_CARGO.format(python=sys.executable, new_action=new_action))
    script.chmod(0o755)
    monkeypatch.setenv("PATH", f"{bindir}{os.pathsep}{os.environ.get('PATH', '')}")
    monkeypatch.setenv("MIRI_SYSROOT", "/opt/sysroot")


@pytest.fixture
def cargo(tmp_path, monkeypatch):
    _install_cargo(tmp_path, monkeypatch)


def test_new_project_round_trips_source(cargo):
    code = "fn main() { return 0; }"
    container = Container.create()
    try:
        assert container.project_dir == DEFAULT_PROJECT_PATH
        container.write_source_code(code)
        output, _ = container.exec_output(
            [sys.executable, "-c", f"print(open({container.main_abs_path()!r}).read(), end='')"]
        )
    finally:
        container.cleanup()
    assert output == code


def test_cwd_is_project_dir(cargo):
    with Container.create() as container:
        assert container.cwd().name == DEFAULT_PROJECT_PATH
        assert container.main_abs_path() == str(container.cwd() / "src" / "main.rs")


def test_cleanup_removes_workspace(cargo):
    container = Container.create()
    root = container.cwd().parent
    container.cleanup()
    assert not root.exists()


def test_cargo_new_stderr_fails(tmp_path, monkeypatch):
    _install_cargo(tmp_path, monkeypatch, new_action="sys.stderr.write('boom')")
    with pytest.raises(ContainerError, match="cargo new"):
        Container.create()


def test_missing_cargo_fails(tmp_path, monkeypatch):
    empty = tmp_path / "empty"
    empty.mkdir()
    monkeypatch.setenv("PATH", str(empty))
    with pytest.raises(ContainerError, match="Unable to execute local command"):
        Container.create()


def test_write_without_project_fails():
    with Container() as container:
        with pytest.raises(ContainerError):
            container.write_source_code("fn main() {}")


def test_timeout():
    with Container(timeout=0.2) as container:
        with pytest.raises(CommandTimeoutError) as info:
            container.exec_output([sys.executable, "-c", "import time; time.sleep(5)"])
    assert info.value.timeout == 0.2
    assert "200 ms" in str(info.value)


def test_exec_output_passes_env():
    with Container() as container:
        stdout, stderr = container.exec_output(
            [sys.executable, "-c", "import os; print(os.environ['PROBE'], end='')"],
            {"PROBE": "value"},
        )
    assert stdout == "value"
    assert stderr == ""


def test_permissions_runs_command(cargo):
    request = SingleFileRequest(code="fn main() {}")
    with Container.create() as container:
        response = container.permissions(request)
    assert response.success is True
    result = json.loads(response.stdout)
    assert result["args"] == ["--quiet", "aquascope", "permissions"]
    assert result["sysroot"] == "/opt/sysroot"
    assert result["log"] == "trace"
    assert result["code"] == "fn main() {}"


def test_interpreter_with_should_fail(cargo):
    request = SingleFileRequest(code="fn main() {}", config={"shouldFail": True})
    with Container.create() as container:
        response = container.interpreter(request)
    result = json.loads(response.stdout)
    assert result["args"] == ["--quiet", "aquascope", "--should-fail", "interpreter"]
    assert result["log"] == "debug"


def test_interpreter_command_without_config(monkeypatch):
    monkeypatch.setenv("MIRI_SYSROOT", "/opt/sysroot")
    with Container() as container:
        cmd, env = container.interpreter_command(SingleFileRequest(code=""))
    assert cmd == ["cargo", "--quiet", "aquascope", "interpreter"]
    assert env["MIRI_SYSROOT"] == "/opt/sysroot"


def test_permissions_command(monkeypatch):
    monkeypatch.setenv("MIRI_SYSROOT", "/opt/sysroot")
    with Container() as container:
        cmd, env = container.permissions_command()
    assert cmd == ["cargo", "--quiet", "aquascope", "permissions"]
    assert env == {"RUST_LOG": "trace", "RUST_BACKTRACE": "1", "MIRI_SYSROOT": "/opt/sysroot"}


def test_request_from_json():
    request = SingleFileRequest.from_json({"code": "x", "config": {"a": 1}})
    assert request == SingleFileRequest(code="x", config={"a": 1})
    assert SingleFileRequest.from_json({"code": "y"}).config is None


@pytest.mark.parametrize("data", [{}, {"code": 3}, ["code"], "code"])
def test_request_from_json_rejects(data):
    with pytest.raises(ValueError):
        SingleFileRequest.from_json(data)


def test_response_to_json():
    response = ServerResponse(success=False, stdout="", stderr="err")
    assert response.to_json() == {"success": False, "stdout": "", "stderr": "err"}


def test_tempdir_is_directory():
    with Container() as container:
        assert Path(container.cwd()).is_dir()
        assert container.project_dir is None