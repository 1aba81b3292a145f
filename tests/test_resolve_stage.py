import logging
from pathlib import Path

import pytest
import requests

from avd_installers.framework.config import InstallerConfig
from avd_installers.framework.errors import ResolutionError
from avd_installers.framework.runtime import RunContext
from avd_installers.stages.resolve import (
    GitHubReleaseResolver,
    PinnedUrlResolver,
    normalize_version,
    resolve_release,
)

API_URL = "https://api.github.com/repos/ip7z/7zip/releases/latest"


class FakeIndex:
    def __init__(self, payload=None, exc=None):
        self.payload = payload
        self.exc = exc
        self.calls = []

    def fetch_json(self, url):
        self.calls.append(url)
        if self.exc is not None:
            raise self.exc
        return self.payload


def _release(tag="24.08", names=("7z2408-arm64.exe", "7z2408-x64.msi", "7z2408.msi")):
    return {
        "tag_name": tag,
        "assets": [
            {"name": name, "browser_download_url": f"https://github.com/ip7z/7zip/releases/download/{tag}/{name}"}
            for name in names
        ],
    }


def _make_ctx(tmp_path) -> RunContext:
    cfg, _warnings = InstallerConfig.from_dict(
        {
            "paths": {"temp_dir": str(tmp_path / "temp"), "log_dir": str(tmp_path / "logs")},
            "products": {
                "7zip": {
                    "display_name": "7-Zip",
                    "resolver": "github_release",
                    "release_api_url": API_URL,
                    "registry_name_pattern": "7-Zip*",
                }
            },
        }
    )
    logger = logging.getLogger("test.resolve")
    logger.handlers.clear()
    logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return RunContext(
        run_id="run",
        cfg=cfg,
        product=cfg.product("7zip"),
        logger=logger,
        created_at="2025-01-01T00:00:00Z",
        temp_dir=Path(cfg.product_temp_dir("7zip")),
        log_dir=Path(cfg.log_dir),
    )


def _resolver(index, pattern=r"-x64\.msi$"):
    return GitHubReleaseResolver(index, api_url=API_URL, asset_pattern=pattern, architecture="x64")


def test_github_resolver_selects_matching_asset():
    index = FakeIndex(_release())

    descriptor = _resolver(index).resolve()

    assert index.calls == [API_URL]
    assert descriptor.version == "24.08"
    assert descriptor.download_url.endswith("/7z2408-x64.msi")
    assert descriptor.architecture == "x64"
    assert len(descriptor.version.split(".")) >= 2


def test_github_resolver_strips_leading_v():
    descriptor = _resolver(FakeIndex(_release(tag="v24.09"))).resolve()

    assert descriptor.version == "24.09"


def test_github_resolver_without_matching_asset_fails():
    index = FakeIndex(_release(names=("7z2408-arm64.exe", "7z2408.tar.xz")))

    with pytest.raises(ResolutionError, match="no release asset matches") as excinfo:
        _resolver(index).resolve()

    assert excinfo.value.stage == "resolve"
    assert "7z2408.tar.xz" in str(excinfo.value)


def test_github_resolver_wraps_transport_errors():
    index = FakeIndex(exc=requests.ConnectionError("dns failure"))

    with pytest.raises(ResolutionError) as excinfo:
        _resolver(index).resolve()

    assert isinstance(excinfo.value.cause, requests.ConnectionError)


def test_github_resolver_rejects_single_component_version():
    with pytest.raises(ResolutionError, match="two dot-separated"):
        _resolver(FakeIndex(_release(tag="2408"))).resolve()


def test_pinned_resolver_builds_url_without_network():
    resolver = PinnedUrlResolver(
        version="6.2.10.25600",
        url_template="https://{host}/download/vdi/{version}/ZoomVDIUniversalPlugin{architecture}.msi",
        download_host="zoom.us",
        architecture="x64",
    )

    descriptor = resolver.resolve()

    assert descriptor.download_url == "https://zoom.us/download/vdi/6.2.10.25600/ZoomVDIUniversalPluginx64.msi"
    assert descriptor.version == "6.2.10.25600"


def test_pinned_resolver_requires_version():
    resolver = PinnedUrlResolver(
        version=None, url_template="https://{host}/{version}.msi", download_host="zoom.us", architecture="x64"
    )

    with pytest.raises(ResolutionError, match="no version"):
        resolver.resolve()


def test_pinned_resolver_requires_host_when_template_uses_it():
    resolver = PinnedUrlResolver(
        version="1.2", url_template="https://{host}/{version}.msi", download_host=None, architecture="x64"
    )

    with pytest.raises(ResolutionError, match="download host"):
        resolver.resolve()


def test_resolve_stage_returns_failure_value_instead_of_raising(tmp_path):
    ctx = _make_ctx(tmp_path)
    index = FakeIndex(_release(names=("7z2408-arm64.exe",)))

    result = resolve_release(ctx, resolver=_resolver(index))

    assert not result.ok
    assert isinstance(result.error, ResolutionError)


def test_resolve_stage_success_carries_descriptor(tmp_path):
    ctx = _make_ctx(tmp_path)

    result = resolve_release(ctx, resolver=_resolver(FakeIndex(_release())))

    assert result.ok
    assert result.value.version == "24.08"


@pytest.mark.parametrize("raw,expected", [("v1.2", "1.2"), (" 24.08 ", "24.08"), ("version", "version")])
def test_normalize_version(raw, expected):
    assert normalize_version(raw) == expected
