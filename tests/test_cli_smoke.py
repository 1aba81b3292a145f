import json

import pytest
import yaml

from avd_installers import cli
from avd_installers.app import install as install_app
from avd_installers.app.install import Collaborators
from avd_installers.framework.models import InstallationOutcome, InstalledSoftwareRecord
from avd_installers.system.registry import filter_records


def _write_config(tmp_path, **extra):
    cfg = {
        "paths": {"temp_dir": str(tmp_path / "temp"), "log_dir": str(tmp_path / "logs")},
        "products": {"zoom_vdi": {"version": "6.2.10.25600"}},
    }
    cfg.update(extra)
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(cfg), encoding="utf-8")
    return path


class _Downloader:
    def download(self, url, destination):
        destination.write_bytes(b"MSI")
        return destination


class _Installer:
    def __init__(self, exit_code):
        self.exit_code = exit_code
        self.options = None

    def install(self, package, *, log_path, options=()):
        self.options = list(options)
        return InstallationOutcome(exit_code=self.exit_code, log_path=log_path)


class _Query:
    def __init__(self, records):
        self.records = records

    def find(self, name_pattern):
        return filter_records(self.records, name_pattern)


class _NoIndex:
    def fetch_json(self, url):
        raise AssertionError("pinned products never query a release index")


def _patch_collaborators(monkeypatch, *, exit_code=0, records=()):
    installer = _Installer(exit_code)
    collaborators = Collaborators(
        release_index=_NoIndex(),
        downloader=_Downloader(),
        installer=installer,
        installed_software=_Query(list(records)),
    )
    monkeypatch.setattr(install_app, "default_collaborators", lambda cfg: collaborators)
    return installer


def test_list_products_prints_builtin_products(tmp_path, capsys):
    config_path = _write_config(tmp_path)

    exit_code = cli.main(["list-products", "--config", str(config_path)])

    assert exit_code == 0
    lines = capsys.readouterr().out.strip().splitlines()
    ids = [line.split("\t")[0] for line in lines]
    assert ids == ["7zip", "zoom_vdi"]
    assert "major_minor" in lines[0]


def test_resolve_pinned_product_prints_descriptor(tmp_path, capsys):
    config_path = _write_config(tmp_path)

    exit_code = cli.main(
        ["resolve", "zoom_vdi", "--config", str(config_path), "--version", "6.3.0.100", "--download-host", "cdn.example"]
    )

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload == {
        "version": "6.3.0.100",
        "download_url": "https://cdn.example/download/vdi/6.3.0.100/ZoomVDIUniversalPluginx64.msi",
        "architecture": "x64",
    }


def test_resolve_without_version_is_a_resolution_failure(tmp_path, capsys):
    config_path = _write_config(tmp_path, products={})

    exit_code = cli.main(["resolve", "zoom_vdi", "--config", str(config_path)])

    assert exit_code == 10
    assert "resolve" in capsys.readouterr().err


def test_missing_config_file_is_a_config_error(tmp_path, capsys):
    exit_code = cli.main(["list-products", "--config", str(tmp_path / "missing.yaml")])

    assert exit_code == 1
    assert "configuration" in capsys.readouterr().err


def test_unknown_product_is_a_config_error(tmp_path, capsys):
    config_path = _write_config(tmp_path)

    exit_code = cli.main(["install", "notepad", "--config", str(config_path)])

    assert exit_code == 1
    assert "Unknown product" in capsys.readouterr().err


def test_install_succeeds_with_sso_host(tmp_path, monkeypatch):
    config_path = _write_config(tmp_path)
    installer = _patch_collaborators(
        monkeypatch, records=[InstalledSoftwareRecord("Zoom VDI Universal Plugin", "6.2.10.25600")]
    )

    exit_code = cli.main(["install", "zoom_vdi", "--config", str(config_path), "--sso-host", "corp"])

    assert exit_code == 0
    assert installer.options == [("ZNoDesktopShortCut", "true"), ("ZSSOHOST", "corp")]
    assert not (tmp_path / "temp" / "zoom_vdi").exists()


def test_install_failure_returns_stage_exit_code(tmp_path, monkeypatch, capsys):
    config_path = _write_config(tmp_path)
    _patch_collaborators(monkeypatch, exit_code=1603)

    exit_code = cli.main(["install", "zoom_vdi", "--config", str(config_path), "--keep-on-failure"])

    assert exit_code == 12
    err = capsys.readouterr().err
    assert "zoom_vdi failed at apply" in err
    assert "1603" in err
    assert (tmp_path / "temp" / "zoom_vdi" / "ZoomVDIUniversalPlugin.msi").exists()


@pytest.mark.parametrize(
    "argv, expected",
    [
        (["install", "7zip"], {}),
        (["install", "7zip", "--no-cleanup"], {"cleanup": {"enabled": False}}),
        (
            ["install", "zoom_vdi", "--version", "1.2", "--log-retention-days", "0"],
            {"products": {"zoom_vdi": {"version": "1.2"}}, "cleanup": {"log_retention_days": 0}},
        ),
    ],
)
def test_build_overrides(argv, expected):
    args = cli.build_parser().parse_args(argv)
    assert cli.build_overrides(args) == expected


def test_install_with_unusable_log_directory_prints_error(tmp_path, capsys):
    config_path = _write_config(tmp_path)
    (tmp_path / "logs").write_text("not a directory", encoding="utf-8")

    exit_code = cli.main(["install", "zoom_vdi", "--config", str(config_path)])

    assert exit_code == 1
    assert "Cannot open log directory" in capsys.readouterr().err
