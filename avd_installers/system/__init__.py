"""Interfaces to the machine and network the installers run against.

Stages only talk to these Protocols; the concrete implementations in this
package wrap HTTP (``requests``), ``msiexec.exe`` and the Windows uninstall
registry. Tests substitute in-memory fakes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

from avd_installers.framework.models import InstallationOutcome, InstalledSoftwareRecord


class ReleaseIndex(Protocol):
    def fetch_json(self, url: str) -> Mapping[str, Any]:
        ...


class Downloader(Protocol):
    def download(self, url: str, destination: Path) -> Path:
        ...


class InstallerInvoker(Protocol):
    def install(
        self,
        package: Path,
        *,
        log_path: Path,
        options: Sequence[tuple[str, str]] = (),
    ) -> InstallationOutcome:
        ...


class InstalledSoftwareQuery(Protocol):
    def find(self, name_pattern: str) -> list[InstalledSoftwareRecord]:
        ...


__all__ = [
    "Downloader",
    "InstalledSoftwareQuery",
    "InstallerInvoker",
    "ReleaseIndex",
]
