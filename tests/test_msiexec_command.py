import subprocess
from pathlib import Path

import pytest

from avd_installers.system.msiexec import MsiexecInvoker, build_command_line, format_property


@pytest.mark.parametrize(
    "name, value, expected",
    [
        ("ZSSOHOST", "corp", "ZSSOHOST=corp"),
        ("INSTALLDIR", r"C:\Program Files\7-Zip", r'INSTALLDIR="C:\Program Files\7-Zip"'),
        ("LABEL", 'say "hi"', 'LABEL="say ""hi"""'),
        ("EMPTY", "", 'EMPTY=""'),
    ],
)
def test_format_property(name, value, expected):
    assert format_property(name, value) == expected


def test_build_command_line_is_silent_and_logged():
    command = build_command_line(
        Path("C:/temp/7zip.msi"),
        log_path=Path("C:/logs/7zip-msiexec-run.log"),
        options=[("A", "1"), ("B", "two words")],
    )
    assert command.startswith("msiexec.exe /i ")
    assert " /qn /norestart /l*v " in command
    assert command.endswith(' A=1 B="two words"')


def test_build_command_line_quotes_paths_with_spaces():
    command = build_command_line(Path("C:/AVD Image/pkg.msi"), log_path=Path("C:/logs/pkg.log"))
    assert '"C:/AVD Image/pkg.msi"' in command.replace("\\", "/")


class FakeRun:
    def __init__(self, returncode=0, exc=None):
        self.returncode = returncode
        self.exc = exc
        self.calls = []

    def __call__(self, command, **kwargs):
        self.calls.append((command, kwargs))
        if self.exc is not None:
            raise self.exc
        return subprocess.CompletedProcess(command, self.returncode)


def test_invoker_waits_for_exit_and_reports_code(tmp_path):
    run = FakeRun(returncode=3010)
    invoker = MsiexecInvoker(timeout_s=60, run=run)

    outcome = invoker.install(tmp_path / "pkg.msi", log_path=tmp_path / "pkg.log", options=[("X", "1")])

    assert outcome.exit_code == 3010
    assert not outcome.succeeded
    assert outcome.log_path == tmp_path / "pkg.log"
    command, kwargs = run.calls[0]
    assert outcome.command == command
    assert kwargs == {"check": False, "timeout": 60}


def test_invoker_propagates_timeout(tmp_path):
    run = FakeRun(exc=subprocess.TimeoutExpired("msiexec.exe", 60))
    invoker = MsiexecInvoker(timeout_s=60, run=run)

    with pytest.raises(subprocess.TimeoutExpired):
        invoker.install(tmp_path / "pkg.msi", log_path=tmp_path / "pkg.log")
