import logging
import subprocess
from pathlib import Path

import requests

from avd_installers.framework.config import InstallerConfig
from avd_installers.framework.errors import AcquisitionError, InstallationError
from avd_installers.framework.models import InstallationOutcome, InstallerArtifact, ReleaseDescriptor
from avd_installers.framework.runtime import RunContext
from avd_installers.stages.acquire import acquire_artifact, artifact_name_from_url
from avd_installers.stages.apply import apply_installer, installer_log_path


class FakeDownloader:
    def __init__(self, exc=None):
        self.exc = exc
        self.calls = []

    def download(self, url, destination):
        self.calls.append((url, destination))
        if self.exc is not None:
            raise self.exc
        destination.write_bytes(b"MSI")
        return destination


class FakeInstaller:
    def __init__(self, exit_code=0, exc=None):
        self.exit_code = exit_code
        self.exc = exc
        self.calls = []

    def install(self, package, *, log_path, options=()):
        self.calls.append({"package": package, "log_path": log_path, "options": list(options)})
        if self.exc is not None:
            raise self.exc
        return InstallationOutcome(exit_code=self.exit_code, log_path=log_path)


def _make_ctx(tmp_path, *, artifact_name=None) -> RunContext:
    product = {
        "resolver": "pinned_url",
        "url_template": "https://example/{version}/pkg-x64.msi",
        "version": "24.08.0",
        "registry_name_pattern": "Example*",
    }
    if artifact_name:
        product["artifact_name"] = artifact_name
    cfg, _warnings = InstallerConfig.from_dict(
        {
            "paths": {"temp_dir": str(tmp_path / "temp"), "log_dir": str(tmp_path / "logs")},
            "products": {"pkg": product},
        }
    )
    logger = logging.getLogger("test.acquire_apply")
    logger.handlers.clear()
    logger.addHandler(logging.NullHandler())
    logger.propagate = False
    ctx = RunContext(
        run_id="run1",
        cfg=cfg,
        product=cfg.product("pkg"),
        logger=logger,
        created_at="2025-01-01T00:00:00Z",
        temp_dir=Path(cfg.product_temp_dir("pkg")),
        log_dir=Path(cfg.log_dir),
    )
    ctx.outputs["descriptor"] = ReleaseDescriptor(
        version="24.08.0", download_url="https://example/pkg-x64.msi", architecture="x64"
    )
    return ctx


def test_acquire_creates_directory_and_downloads(tmp_path):
    ctx = _make_ctx(tmp_path, artifact_name="pkg.msi")
    downloader = FakeDownloader()

    result = acquire_artifact(ctx, downloader=downloader)

    assert result.ok
    assert result.value.path == ctx.temp_dir / "pkg.msi"
    assert result.value.expected_version == "24.08.0"
    assert (ctx.temp_dir / "pkg.msi").read_bytes() == b"MSI"
    assert downloader.calls == [("https://example/pkg-x64.msi", ctx.temp_dir / "pkg.msi")]


def test_acquire_is_idempotent_on_existing_directory(tmp_path):
    ctx = _make_ctx(tmp_path)
    ctx.temp_dir.mkdir(parents=True)

    first = acquire_artifact(ctx, downloader=FakeDownloader())
    second = acquire_artifact(ctx, downloader=FakeDownloader())

    assert first.ok and second.ok
    assert second.value.path.name == "pkg-x64.msi"


def test_acquire_maps_transport_errors(tmp_path):
    ctx = _make_ctx(tmp_path)

    result = acquire_artifact(ctx, downloader=FakeDownloader(exc=requests.HTTPError("404 Client Error")))

    assert not result.ok
    assert isinstance(result.error, AcquisitionError)
    assert result.error.exit_code == 11


def test_acquire_fails_when_temp_dir_is_a_file(tmp_path):
    ctx = _make_ctx(tmp_path)
    ctx.temp_dir.parent.mkdir(parents=True)
    ctx.temp_dir.write_text("not a directory", encoding="utf-8")
    downloader = FakeDownloader()

    result = acquire_artifact(ctx, downloader=downloader)

    assert isinstance(result.error, AcquisitionError)
    assert downloader.calls == []


def test_artifact_name_from_url():
    assert artifact_name_from_url("https://example/dl/7z2408-x64.msi?raw=1") == "7z2408-x64.msi"
    assert artifact_name_from_url("https://example/My%20Pkg.msi") == "My Pkg.msi"
    assert artifact_name_from_url("https://example/") == "installer.msi"


def _with_artifact(ctx):
    ctx.outputs["artifact"] = InstallerArtifact(path=ctx.temp_dir / "pkg.msi", expected_version="24.08.0")
    return ctx


def test_apply_passes_log_path_and_ordered_options(tmp_path):
    ctx = _with_artifact(_make_ctx(tmp_path))
    installer = FakeInstaller()
    options = [("ZNoDesktopShortCut", "true"), ("ZSSOHOST", "contoso")]

    result = apply_installer(ctx, invoker=installer, options=options)

    assert result.ok
    assert installer.calls == [
        {
            "package": ctx.temp_dir / "pkg.msi",
            "log_path": installer_log_path(ctx),
            "options": options,
        }
    ]
    assert installer_log_path(ctx).name == "pkg-msiexec-run1.log"


def test_apply_nonzero_exit_is_fatal(tmp_path):
    ctx = _with_artifact(_make_ctx(tmp_path))

    for code in (1, 1603, 1618, 3010):
        result = apply_installer(ctx, invoker=FakeInstaller(exit_code=code))
        assert not result.ok
        assert isinstance(result.error, InstallationError)
        assert result.error.installer_exit_code == code


def test_apply_maps_start_failure_and_timeout(tmp_path):
    ctx = _with_artifact(_make_ctx(tmp_path))

    missing = apply_installer(ctx, invoker=FakeInstaller(exc=FileNotFoundError("msiexec.exe")))
    hung = apply_installer(
        ctx, invoker=FakeInstaller(exc=subprocess.TimeoutExpired(cmd="msiexec.exe", timeout=3600))
    )

    assert isinstance(missing.error, InstallationError)
    assert "could not be started" in str(missing.error)
    assert isinstance(hung.error, InstallationError)
    assert "3600" in str(hung.error)


class _RecordingHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.messages = []

    def emit(self, record):
        self.messages.append(record.getMessage())


def test_apply_writes_installer_command_to_run_log(tmp_path):
    ctx = _with_artifact(_make_ctx(tmp_path))
    handler = _RecordingHandler()
    ctx.logger.setLevel(logging.DEBUG)
    ctx.logger.addHandler(handler)

    class CommandInstaller:
        def install(self, package, *, log_path, options=()):
            return InstallationOutcome(exit_code=0, log_path=log_path, command=f"msiexec.exe /i {package}")

    result = apply_installer(ctx, invoker=CommandInstaller())

    assert result.ok
    assert f"Installer command: msiexec.exe /i {ctx.temp_dir / 'pkg.msi'}" in handler.messages
