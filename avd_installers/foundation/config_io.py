"""YAML config discovery and overlay merging."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

CONFIG_ENV_VAR = "AVD_INSTALLERS_CONFIG"
BASE_CONFIG_NAME = "config.yaml"
LOCAL_CONFIG_NAME = "config.local.yaml"
REPO_ROOT_MARKERS = ("pyproject.toml", ".git")


def find_repo_root(start: str | os.PathLike[str] | None = None) -> str:
    """Walk up from ``start`` (default: cwd) to the first directory holding a repo marker."""
    origin = Path(start or os.getcwd()).resolve()
    if origin.is_file():
        origin = origin.parent
    for candidate in (origin, *origin.parents):
        if any((candidate / marker).exists() for marker in REPO_ROOT_MARKERS):
            return str(candidate)
    raise FileNotFoundError(
        f"Cannot locate repo root above {origin} (looked for {', '.join(REPO_ROOT_MARKERS)})"
    )


def _load_yaml_mapping(path: str) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        try:
            payload = yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ValueError(f"Config file must contain a YAML mapping: {path}")
    return dict(payload)


def deep_merge(base: Any, overlay: Any, *, path: str = "") -> Any:
    """
    Merge ``overlay`` onto ``base`` without mutating either.

    Mappings merge key by key, lists are replaced wholesale and scalars are
    overwritten. A ``None`` overlay clears the value. A mapping or list may
    only be replaced by the same kind of container.
    """

    if overlay is None or base is None:
        return overlay

    where = path or "<root>"
    if isinstance(base, Mapping):
        if not isinstance(overlay, Mapping):
            raise ValueError(_merge_mismatch(where, "mapping", overlay))
        merged: dict[str, Any] = dict(base)
        for key, value in overlay.items():
            child = f"{path}.{key}" if path else str(key)
            merged[key] = deep_merge(base[key], value, path=child) if key in base else value
        return merged

    if isinstance(base, (list, tuple)):
        if not isinstance(overlay, (list, tuple)):
            raise ValueError(_merge_mismatch(where, "list", overlay))
        return list(overlay)

    if isinstance(overlay, (Mapping, list, tuple)):
        raise ValueError(_merge_mismatch(where, type(base).__name__, overlay))
    return overlay


def _merge_mismatch(where: str, base_kind: str, overlay: Any) -> str:
    return f"Invalid config overlay merge at {where}: base is {base_kind} but overlay is {type(overlay).__name__}"


def load_config(
    *,
    config_path: str | os.PathLike[str] | None = None,
    env_var: str | None = CONFIG_ENV_VAR,
    config_dir: str | os.PathLike[str] | None = None,
    start_dir: str | os.PathLike[str] | None = None,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Load installer settings.

    ``config_path`` (``--config``) or the ``env_var`` file is loaded on its own.
    Otherwise ``config.yaml`` is read from ``config_dir`` (default
    ``<repo_root>/config``, with the repo root found from ``start_dir``) and a
    sibling ``config.local.yaml`` is deep-merged over it.

    Returns ``(cfg, meta)``; ``meta["mode"]`` is one of explicit, env, base or
    base+local.
    """

    single = _single_file_source(config_path, env_var)
    if single is not None:
        mode, raw_path = single
        path = Path(os.path.expandvars(raw_path)).expanduser().resolve()
        meta = {"mode": mode, "paths": [str(path)], "env_var": env_var, "repo_root": None}
        return _load_yaml_mapping(str(path)), meta

    repo_root: str | None = None
    if config_dir is None:
        repo_root = find_repo_root(start_dir)
        directory = Path(repo_root) / "config"
    else:
        directory = Path(config_dir)

    base_path = directory / BASE_CONFIG_NAME
    if not base_path.is_file():
        raise FileNotFoundError(f"Missing base config file: {base_path}")

    cfg = _load_yaml_mapping(str(base_path))
    paths = [str(base_path.resolve())]
    local_path = directory / LOCAL_CONFIG_NAME
    if local_path.is_file():
        cfg = deep_merge(cfg, _load_yaml_mapping(str(local_path)), path="")
        paths.append(str(local_path.resolve()))

    meta = {
        "mode": "base+local" if len(paths) > 1 else "base",
        "paths": paths,
        "env_var": env_var,
        "repo_root": repo_root,
    }
    return cfg, meta


def _single_file_source(
    config_path: str | os.PathLike[str] | None, env_var: str | None
) -> tuple[str, str] | None:
    if config_path is not None:
        text = str(config_path).strip()
        return ("explicit", text) if text else None
    if env_var:
        text = os.environ.get(env_var, "").strip()
        if text:
            return "env", text
    return None
