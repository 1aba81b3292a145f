"""Resolve: work out which version to install and where to download it from.

Two resolvers exist. ``GitHubReleaseResolver`` reads a GitHub ``releases/latest``
document and picks the asset whose name matches the configured pattern.
``PinnedUrlResolver`` builds the URL from an operator-supplied version and
download host without touching the network.
"""

from __future__ import annotations

import re
from typing import Any, Mapping, Protocol

import requests

from avd_installers.framework.config import ProductConfig
from avd_installers.framework.errors import ResolutionError
from avd_installers.framework.models import ReleaseDescriptor
from avd_installers.framework.pipeline import StageResult
from avd_installers.framework.runtime import RunContext
from avd_installers.system import ReleaseIndex


class Resolver(Protocol):
    def resolve(self) -> ReleaseDescriptor:
        ...


def normalize_version(raw: str) -> str:
    version = raw.strip()
    if version[:1] in ("v", "V") and version[1:2].isdigit():
        version = version[1:]
    return version


def check_version(version: str | None, *, source: str) -> str:
    if not version or not version.strip():
        raise ResolutionError(f"no version available from {source}")
    parts = version.strip().split(".")
    if len(parts) < 2 or not all(parts):
        raise ResolutionError(
            f"version {version!r} from {source} needs at least two dot-separated components"
        )
    return version.strip()


class GitHubReleaseResolver:
    def __init__(
        self,
        index: ReleaseIndex,
        *,
        api_url: str,
        asset_pattern: str,
        architecture: str,
    ) -> None:
        self._index = index
        self._api_url = api_url
        self._asset_re = re.compile(asset_pattern, re.IGNORECASE)
        self._architecture = architecture

    def resolve(self) -> ReleaseDescriptor:
        try:
            release = self._index.fetch_json(self._api_url)
        except (requests.RequestException, ValueError) as exc:
            raise ResolutionError(f"could not fetch release metadata from {self._api_url}", cause=exc) from exc

        tag = release.get("tag_name")
        if not isinstance(tag, str):
            raise ResolutionError(f"release metadata from {self._api_url} has no tag_name")
        version = check_version(normalize_version(tag), source=self._api_url)

        asset = self._select_asset(release.get("assets"))
        url = asset.get("browser_download_url")
        if not isinstance(url, str) or not url.strip():
            raise ResolutionError(f"asset {asset.get('name')!r} has no download URL")

        return ReleaseDescriptor(version=version, download_url=url.strip(), architecture=self._architecture)

    def _select_asset(self, assets: Any) -> Mapping[str, Any]:
        if not isinstance(assets, list):
            raise ResolutionError(f"release metadata from {self._api_url} has no asset list")
        for asset in assets:
            if not isinstance(asset, Mapping):
                continue
            name = asset.get("name")
            if isinstance(name, str) and self._asset_re.search(name):
                return asset
        names = [str(a.get("name")) for a in assets if isinstance(a, Mapping)]
        raise ResolutionError(
            f"no release asset matches {self._asset_re.pattern!r} "
            f"(architecture={self._architecture}, assets: {', '.join(names) or '<none>'})"
        )


class PinnedUrlResolver:
    def __init__(
        self,
        *,
        version: str | None,
        url_template: str,
        download_host: str | None,
        architecture: str,
    ) -> None:
        self._version = version
        self._url_template = url_template
        self._download_host = download_host
        self._architecture = architecture

    def resolve(self) -> ReleaseDescriptor:
        version = check_version(self._version, source="configuration")
        try:
            url = self._url_template.format(
                version=version,
                host=self._download_host or "",
                architecture=self._architecture,
            )
        except (KeyError, IndexError, ValueError) as exc:
            raise ResolutionError(f"invalid url_template {self._url_template!r}", cause=exc) from exc
        if "{host}" in self._url_template and not self._download_host:
            raise ResolutionError("url_template needs a download host but none is configured")
        return ReleaseDescriptor(version=version, download_url=url, architecture=self._architecture)


def build_resolver(product: ProductConfig, index: ReleaseIndex) -> Resolver:
    if product.resolver == "github_release":
        return GitHubReleaseResolver(
            index,
            api_url=str(product.release_api_url),
            asset_pattern=product.asset_pattern,
            architecture=product.architecture,
        )
    if product.resolver == "pinned_url":
        return PinnedUrlResolver(
            version=product.version,
            url_template=str(product.url_template),
            download_host=product.download_host,
            architecture=product.architecture,
        )
    raise ValueError(f"Unknown resolver kind: {product.resolver}")


def resolve_release(ctx: RunContext, *, resolver: Resolver) -> StageResult:
    try:
        descriptor = resolver.resolve()
    except ResolutionError as exc:
        return StageResult.failure("resolve", exc)
    ctx.logger.info(
        "Resolved %s %s (%s): %s",
        ctx.product.display_name,
        descriptor.version,
        descriptor.architecture,
        descriptor.download_url,
    )
    return StageResult.success("resolve", descriptor)
