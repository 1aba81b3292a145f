from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class ReleaseDescriptor:
    version: str
    download_url: str
    architecture: str

    def to_dict(self) -> dict[str, str]:
        return {
            "version": self.version,
            "download_url": self.download_url,
            "architecture": self.architecture,
        }


@dataclass(frozen=True)
class InstallerArtifact:
    path: Path
    expected_version: str


@dataclass(frozen=True)
class InstallationOutcome:
    exit_code: int
    log_path: Path
    command: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class InstalledSoftwareRecord:
    display_name: str
    display_version: str
    # Registry key the record was read from; not part of record identity.
    source: str = field(default="", compare=False)


@dataclass(frozen=True)
class ReclaimReport:
    skipped: bool = False
    deleted: tuple[Path, ...] = ()
    warnings: tuple[str, ...] = ()
