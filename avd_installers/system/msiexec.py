from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Any, Callable, Sequence

from avd_installers.framework.models import InstallationOutcome

logger = logging.getLogger(__name__)

MSIEXEC = "msiexec.exe"


def format_property(name: str, value: str) -> str:
    """Render an MSI public property as ``NAME=value``, quoting values with spaces."""
    if not value or any(ch.isspace() for ch in value) or '"' in value:
        escaped = value.replace('"', '""')
        return f'{name}="{escaped}"'
    return f"{name}={value}"


def build_command_line(
    package: Path, *, log_path: Path, options: Sequence[tuple[str, str]] = ()
) -> str:
    # msiexec parses PROPERTY="value" itself, so properties are appended verbatim
    # rather than run through list2cmdline (which would backslash-escape the quotes).
    base = subprocess.list2cmdline(
        [MSIEXEC, "/i", str(package), "/qn", "/norestart", "/l*v", str(log_path)]
    )
    extra = [format_property(name, value) for name, value in options]
    return " ".join([base, *extra])


class MsiexecInvoker:
    """Runs the Windows package installer silently and waits for it to exit."""

    def __init__(
        self,
        *,
        timeout_s: float,
        run: Callable[..., Any] = subprocess.run,
    ) -> None:
        self._timeout_s = timeout_s
        self._run = run

    def install(
        self,
        package: Path,
        *,
        log_path: Path,
        options: Sequence[tuple[str, str]] = (),
    ) -> InstallationOutcome:
        command = build_command_line(package, log_path=log_path, options=options)
        logger.debug("Running installer: %s", command)
        completed = self._run(command, check=False, timeout=self._timeout_s)
        return InstallationOutcome(
            exit_code=int(completed.returncode), log_path=log_path, command=command
        )
