from __future__ import annotations

import posixpath
from pathlib import Path
from urllib.parse import unquote, urlsplit

import requests

from avd_installers.framework.errors import AcquisitionError
from avd_installers.framework.models import InstallerArtifact
from avd_installers.framework.pipeline import StageResult
from avd_installers.framework.runtime import RunContext
from avd_installers.system import Downloader

DEFAULT_ARTIFACT_NAME = "installer.msi"


def artifact_name_from_url(url: str) -> str:
    name = posixpath.basename(unquote(urlsplit(url).path))
    return name or DEFAULT_ARTIFACT_NAME


def ensure_directory(path: Path) -> Path:
    """Create ``path`` (and parents); an existing directory is not an error."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def acquire_artifact(ctx: RunContext, *, downloader: Downloader) -> StageResult:
    descriptor = ctx.descriptor
    if descriptor is None:
        return StageResult.failure("acquire", AcquisitionError("no release descriptor to download"))

    try:
        ensure_directory(ctx.temp_dir)
    except OSError as exc:
        return StageResult.failure(
            "acquire", AcquisitionError(f"could not create {ctx.temp_dir}", cause=exc)
        )

    name = ctx.product.artifact_name or artifact_name_from_url(descriptor.download_url)
    destination = ctx.temp_dir / name
    ctx.logger.info("Downloading %s to %s", descriptor.download_url, destination)
    try:
        path = downloader.download(descriptor.download_url, destination)
    except (requests.RequestException, OSError) as exc:
        return StageResult.failure(
            "acquire", AcquisitionError(f"download of {descriptor.download_url} failed", cause=exc)
        )

    return StageResult.success(
        "acquire", InstallerArtifact(path=Path(path), expected_version=descriptor.version)
    )
