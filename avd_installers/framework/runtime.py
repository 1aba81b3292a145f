from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from avd_installers.framework.config import InstallerConfig, ProductConfig
from avd_installers.framework.models import (
    InstallationOutcome,
    InstalledSoftwareRecord,
    InstallerArtifact,
    ReleaseDescriptor,
)


@dataclass
class RunContext:
    run_id: str
    cfg: InstallerConfig
    product: ProductConfig
    logger: logging.Logger
    created_at: str
    temp_dir: Path
    log_dir: Path
    log_file: Path | None = None

    outputs: dict[str, Any] = field(default_factory=dict)
    steps: list[dict[str, Any]] = field(default_factory=list)
    error: dict[str, Any] | None = None

    @property
    def descriptor(self) -> ReleaseDescriptor | None:
        return self.outputs.get("descriptor")

    @property
    def artifact(self) -> InstallerArtifact | None:
        return self.outputs.get("artifact")

    @property
    def outcome(self) -> InstallationOutcome | None:
        return self.outputs.get("outcome")

    @property
    def installed_record(self) -> InstalledSoftwareRecord | None:
        return self.outputs.get("installed_record")
