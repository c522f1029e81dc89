import subprocess
import sys
from pathlib import Path
from unittest import mock

import pytest

from aquascope.workspace import miri_sysroot, run_and_get_output, rustc, toolchain

CHANNEL = "nightly-2024-12-15"


@pytest.fixture
def toolchain_file(tmp_path):
    path = tmp_path / "rust-toolchain.toml"
    path.write_text(f'[toolchain]\nchannel = "{CHANNEL}"\n')
    return path


def _completed(stdout=b"", returncode=0, stderr=b""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def test_run_and_get_output_trims_trailing_whitespace():
    out = run_and_get_output([sys.executable, "-c", "print('hello   ')"])
    assert out == "hello"


def test_run_and_get_output_passes_environment():
    out = run_and_get_output(
        [sys.executable, "-c", "import os; print(os.environ['AQ_TEST_VAR'])"],
        env={"AQ_TEST_VAR": "value"},
    )
    assert out == "value"


def test_run_and_get_output_failure_reports_stderr():
    script = "import sys; sys.stderr.write('boom'); sys.exit(3)"
    with pytest.raises(RuntimeError) as info:
        run_and_get_output([sys.executable, "-c", script])
    assert str(info.value) == "Command failed with stderr:\nboom"


def test_toolchain_reads_channel(toolchain_file):
    assert toolchain(toolchain_file) == CHANNEL


def test_toolchain_missing_toolchain_key(tmp_path):
    path = tmp_path / "t.toml"
    path.write_text('[other]\nchannel = "stable"\n')
    with pytest.raises(ValueError, match="Missing toolchain key"):
        toolchain(path)


def test_toolchain_missing_channel_key(tmp_path):
    path = tmp_path / "t.toml"
    path.write_text('[toolchain]\ncomponents = ["miri"]\n')
    with pytest.raises(ValueError, match="Missing channel key"):
        toolchain(path)


def test_toolchain_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        toolchain(tmp_path / "absent.toml")


def test_rustc_prefers_environment(monkeypatch, toolchain_file):
    monkeypatch.setenv("RUSTC_PATH", "/custom/rustc")
    assert rustc(toolchain_file) == Path("/custom/rustc")


def test_rustc_uses_rustup_with_toolchain(monkeypatch, toolchain_file):
    monkeypatch.delenv("RUSTC_PATH", raising=False)
    with mock.patch(
        "aquascope.workspace.subprocess.run", return_value=_completed(b"/opt/rustc\n")
    ) as run:
        result = rustc(toolchain_file)
    assert result == Path("/opt/rustc")
    assert run.call_args.args[0] == ["rustup", "which", "--toolchain", CHANNEL, "rustc"]


def test_rustc_falls_back_to_which(monkeypatch, tmp_path):
    monkeypatch.delenv("RUSTC_PATH", raising=False)
    with mock.patch(
        "aquascope.workspace.subprocess.run", return_value=_completed(b"/usr/bin/rustc\n")
    ) as run:
        result = rustc(tmp_path / "absent.toml")
    assert result == Path("/usr/bin/rustc")
    assert run.call_args.args[0] == ["which", "rustc"]


def test_miri_sysroot_prefers_environment(monkeypatch, toolchain_file):
    monkeypatch.setenv("MIRI_SYSROOT", "/sysroot")
    assert miri_sysroot(toolchain_file) == Path("/sysroot")


def test_miri_sysroot_asks_cargo(monkeypatch, toolchain_file):
    monkeypatch.delenv("MIRI_SYSROOT", raising=False)
    with mock.patch(
        "aquascope.workspace.subprocess.run", return_value=_completed(b"/cache/miri\n")
    ) as run:
        result = miri_sysroot(toolchain_file)
    assert result == Path("/cache/miri")
    assert run.call_args.args[0] == [
        "cargo",
        f"+{CHANNEL}",
        "miri",
        "setup",
        "--print-sysroot",
    ]


def test_miri_sysroot_failure(monkeypatch, toolchain_file):
    monkeypatch.delenv("MIRI_SYSROOT", raising=False)
    with mock.patch(
        "aquascope.workspace.subprocess.run", return_value=_completed(returncode=1)
    ):
        with pytest.raises(RuntimeError, match="Command failed"):
            miri_sysroot(toolchain_file)