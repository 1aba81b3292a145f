from pathlib import Path

from avd_installers.foundation.config_io import load_config


def test_load_config_finds_repo_root_from_subdir(monkeypatch):
    repo_root = Path(__file__).resolve().parents[1]

    monkeypatch.delenv("TEST_AVD_INSTALLERS_CONFIG", raising=False)
    monkeypatch.chdir(repo_root / "avd_installers" / "stages")

    cfg, meta = load_config(env_var="TEST_AVD_INSTALLERS_CONFIG")

    assert Path(meta["paths"][0]).resolve() == (repo_root / "config" / "config.yaml").resolve()
    assert Path(str(meta["repo_root"])).resolve() == repo_root.resolve()
    assert "7zip" in cfg["products"]
