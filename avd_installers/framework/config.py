from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping

ResolverKind = Literal["github_release", "pinned_url"]
VersionPolicy = Literal["exact", "major_minor"]

RESOLVER_KINDS: tuple[str, ...] = ("github_release", "pinned_url")
VERSION_POLICIES: tuple[str, ...] = ("exact", "major_minor")

DEFAULT_ASSET_PATTERN = r"-x64\.msi$"
DEFAULT_HTTP_TIMEOUT_S = 300.0
DEFAULT_INSTALLER_TIMEOUT_S = 3600.0
DEFAULT_LOG_RETENTION_DAYS = 30


def parse_bool(value: Any, path: str) -> bool:
    """
    Strict boolean parsing to avoid bool('false') footguns.

    Accepts:
      - True/False
      - 0/1 (ints)
      - strings: true/false/1/0/yes/no (case-insensitive, surrounding whitespace ignored)

    Raises:
      ValueError for anything else, with the provided config key path.
    """

    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value in (0, 1):
            return bool(value)
        raise ValueError(f"Invalid boolean for {path}: {value!r}")
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes"}:
            return True
        if normalized in {"false", "0", "no"}:
            return False
        raise ValueError(f"Invalid boolean for {path}: {value!r}")

    raise ValueError(f"Invalid boolean for {path}: {value!r}")


def parse_float(value: Any, path: str) -> float:
    if value is None:
        raise ValueError(f"Invalid config value for {path}: None")
    if isinstance(value, bool):
        raise ValueError(f"Invalid config type for {path}: expected float, got bool")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        if not value.strip():
            raise ValueError(f"Invalid config value for {path}: must be a float")
        try:
            return float(value.strip())
        except ValueError as exc:
            raise ValueError(f"Invalid config value for {path}: must be a float") from exc
    raise ValueError(f"Invalid config type for {path}: expected float")


def parse_int(value: Any, path: str) -> int:
    if value is None:
        raise ValueError(f"Invalid config value for {path}: None")
    if isinstance(value, bool):
        raise ValueError(f"Invalid config type for {path}: expected int, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        if not value.strip():
            raise ValueError(f"Invalid config value for {path}: must be an int")
        try:
            return int(value.strip())
        except ValueError as exc:
            raise ValueError(f"Invalid config value for {path}: must be an int") from exc
    raise ValueError(f"Invalid config type for {path}: expected int")


def parse_str(value: Any, path: str, *, required: bool = False) -> str | None:
    if value is None:
        if required:
            raise ValueError(f"Missing required config value: {path}")
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ValueError(f"Invalid config type for {path}: expected string")
    text = str(value).strip()
    if not text:
        if required:
            raise ValueError(f"Invalid config value for {path}: must be a non-empty string")
        return None
    return text


def parse_version(value: Any, path: str) -> str | None:
    # YAML reads an unquoted 6.10 as the float 6.1.
    if isinstance(value, float):
        raise ValueError(
            f"Invalid config type for {path}: YAML read it as the number {value!r}; quote the version"
        )
    return parse_str(value, path)


def _option_value(value: Any, path: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        text = str(value).strip()
        return text or None
    raise ValueError(f"Invalid config type for {path}: expected scalar")


@dataclass(frozen=True)
class ProductConfig:
    id: str
    display_name: str
    resolver: ResolverKind
    registry_name_pattern: str
    version_policy: VersionPolicy = "exact"
    architecture: str = "x64"
    release_api_url: str | None = None
    asset_pattern: str = DEFAULT_ASSET_PATTERN
    version: str | None = None
    download_host: str | None = None
    url_template: str | None = None
    artifact_name: str | None = None
    install_path: str | None = None
    sso_host: str | None = None
    installer_options: tuple[tuple[str, str], ...] = ()
    log_patterns: tuple[str, ...] = ()

    @staticmethod
    def from_dict(product_id: str, raw: Mapping[str, Any]) -> "ProductConfig":
        prefix = f"products.{product_id}"
        if not isinstance(raw, Mapping):
            raise ValueError(f"Invalid config type for {prefix}: expected mapping")

        resolver = parse_str(raw.get("resolver"), f"{prefix}.resolver", required=True)
        if resolver not in RESOLVER_KINDS:
            raise ValueError(
                f"Invalid {prefix}.resolver: {resolver!r} (expected one of: {', '.join(RESOLVER_KINDS)})"
            )

        policy = parse_str(raw.get("version_policy", "exact"), f"{prefix}.version_policy", required=True)
        if policy not in VERSION_POLICIES:
            raise ValueError(
                f"Invalid {prefix}.version_policy: {policy!r} (expected one of: {', '.join(VERSION_POLICIES)})"
            )

        release_api_url = parse_str(raw.get("release_api_url"), f"{prefix}.release_api_url")
        url_template = parse_str(raw.get("url_template"), f"{prefix}.url_template")
        if resolver == "github_release" and release_api_url is None:
            raise ValueError(f"{prefix}.release_api_url is required when resolver=github_release")
        if resolver == "pinned_url" and url_template is None:
            raise ValueError(f"{prefix}.url_template is required when resolver=pinned_url")

        asset_pattern = parse_str(raw.get("asset_pattern"), f"{prefix}.asset_pattern") or DEFAULT_ASSET_PATTERN
        try:
            re.compile(asset_pattern)
        except re.error as exc:
            raise ValueError(f"Invalid regular expression for {prefix}.asset_pattern: {exc}") from exc

        raw_options = raw.get("installer_options") or {}
        if not isinstance(raw_options, Mapping):
            raise ValueError(f"Invalid config type for {prefix}.installer_options: expected mapping")
        options: list[tuple[str, str]] = []
        for key, value in raw_options.items():
            name = parse_str(key, f"{prefix}.installer_options", required=True)
            rendered = _option_value(value, f"{prefix}.installer_options.{name}")
            if rendered is not None:
                options.append((str(name), rendered))

        raw_patterns = raw.get("log_patterns")
        if raw_patterns is None:
            log_patterns: tuple[str, ...] = (f"{product_id}-*.log",)
        elif isinstance(raw_patterns, (list, tuple)):
            log_patterns = tuple(
                str(parse_str(item, f"{prefix}.log_patterns[{idx}]", required=True))
                for idx, item in enumerate(raw_patterns)
            )
        else:
            raise ValueError(f"Invalid config type for {prefix}.log_patterns: expected list")

        return ProductConfig(
            id=product_id,
            display_name=parse_str(raw.get("display_name"), f"{prefix}.display_name") or product_id,
            resolver=resolver,  # type: ignore[arg-type]
            registry_name_pattern=str(
                parse_str(raw.get("registry_name_pattern"), f"{prefix}.registry_name_pattern", required=True)
            ),
            version_policy=policy,  # type: ignore[arg-type]
            architecture=parse_str(raw.get("architecture"), f"{prefix}.architecture") or "x64",
            release_api_url=release_api_url,
            asset_pattern=asset_pattern,
            version=parse_version(raw.get("version"), f"{prefix}.version"),
            download_host=parse_str(raw.get("download_host"), f"{prefix}.download_host"),
            url_template=url_template,
            artifact_name=parse_str(raw.get("artifact_name"), f"{prefix}.artifact_name"),
            install_path=parse_str(raw.get("install_path"), f"{prefix}.install_path"),
            sso_host=parse_str(raw.get("sso_host"), f"{prefix}.sso_host"),
            installer_options=tuple(options),
            log_patterns=log_patterns,
        )


@dataclass(frozen=True)
class InstallerConfig:
    temp_dir: str
    log_dir: str
    cleanup_enabled: bool = True
    cleanup_on_failure: bool = True
    log_retention_days: int = DEFAULT_LOG_RETENTION_DAYS
    http_timeout_s: float = DEFAULT_HTTP_TIMEOUT_S
    installer_timeout_s: float = DEFAULT_INSTALLER_TIMEOUT_S
    run_index_enabled: bool = True
    products: dict[str, ProductConfig] = field(default_factory=dict)

    def product(self, product_id: str) -> ProductConfig:
        key = (product_id or "").strip()
        found = self.products.get(key)
        if found is None:
            available = ", ".join(sorted(self.products)) or "<none>"
            raise ValueError(f"Unknown product: {product_id} (available: {available})")
        return found

    def product_temp_dir(self, product_id: str) -> str:
        return os.path.join(self.temp_dir, product_id)

    @staticmethod
    def from_dict(cfg: Mapping[str, Any]) -> tuple["InstallerConfig", list[str]]:
        """
        Parse and validate configuration, returning (InstallerConfig, warnings).

        Raises:
            ValueError: if required keys are missing or invalid.
        """

        if not isinstance(cfg, Mapping):
            raise ValueError("Config must be a mapping")

        warnings: list[str] = []
        strict_unknown_keys = False
        if "strict" in cfg:
            strict_unknown_keys = parse_bool(cfg.get("strict"), "strict")

        schema: Mapping[str, Any] = {
            "strict": None,
            "paths": {"temp_dir": None, "log_dir": None},
            "cleanup": {"enabled": None, "on_failure": None, "log_retention_days": None},
            "timeouts": {"http_seconds": None, "installer_seconds": None},
            "run_index": {"enabled": None},
            "products": None,
        }
        product_keys = {
            "display_name",
            "resolver",
            "release_api_url",
            "asset_pattern",
            "version",
            "download_host",
            "url_template",
            "architecture",
            "artifact_name",
            "install_path",
            "registry_name_pattern",
            "version_policy",
            "installer_options",
            "sso_host",
            "log_patterns",
        }

        unknown = _collect_unknown_keys(cfg, schema, prefix="")
        raw_products = cfg.get("products") or {}
        if not isinstance(raw_products, Mapping):
            raise ValueError("Invalid config type for products: expected mapping")
        for product_id, raw_product in raw_products.items():
            if isinstance(raw_product, Mapping):
                unknown.extend(
                    f"products.{product_id}.{key}" for key in raw_product if key not in product_keys
                )

        if unknown:
            message = "Unknown config keys: " + ", ".join(sorted(unknown))
            if strict_unknown_keys:
                raise ValueError(message)
            warnings.append(message)

        paths = _section(cfg, "paths")
        cleanup = _section(cfg, "cleanup")
        timeouts = _section(cfg, "timeouts")
        run_index = _section(cfg, "run_index")

        temp_dir = parse_str(paths.get("temp_dir"), "paths.temp_dir", required=True)
        log_dir = parse_str(paths.get("log_dir"), "paths.log_dir", required=True)

        retention = parse_int(
            cleanup.get("log_retention_days", DEFAULT_LOG_RETENTION_DAYS), "cleanup.log_retention_days"
        )
        if retention < 0:
            raise ValueError("Invalid config value for cleanup.log_retention_days: must be >= 0")

        http_timeout = parse_float(timeouts.get("http_seconds", DEFAULT_HTTP_TIMEOUT_S), "timeouts.http_seconds")
        installer_timeout = parse_float(
            timeouts.get("installer_seconds", DEFAULT_INSTALLER_TIMEOUT_S), "timeouts.installer_seconds"
        )
        for path, value in (
            ("timeouts.http_seconds", http_timeout),
            ("timeouts.installer_seconds", installer_timeout),
        ):
            if value <= 0:
                raise ValueError(f"Invalid config value for {path}: must be > 0")

        products: dict[str, ProductConfig] = {}
        for product_id, raw_product in raw_products.items():
            key = parse_str(product_id, "products", required=True)
            products[str(key)] = ProductConfig.from_dict(str(key), raw_product)

        return (
            InstallerConfig(
                temp_dir=str(temp_dir),
                log_dir=str(log_dir),
                cleanup_enabled=parse_bool(cleanup.get("enabled", True), "cleanup.enabled"),
                cleanup_on_failure=parse_bool(cleanup.get("on_failure", True), "cleanup.on_failure"),
                log_retention_days=retention,
                http_timeout_s=http_timeout,
                installer_timeout_s=installer_timeout,
                run_index_enabled=parse_bool(run_index.get("enabled", True), "run_index.enabled"),
                products=products,
            ),
            warnings,
        )


def _section(cfg: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = cfg.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"Invalid config type for {key}: expected mapping")
    return value


def _collect_unknown_keys(mapping: Any, schema: Mapping[str, Any], *, prefix: str) -> list[str]:
    if not isinstance(mapping, Mapping):
        return []
    unknown: list[str] = []
    for key, value in mapping.items():
        if not isinstance(key, str):
            continue
        path = f"{prefix}.{key}" if prefix else key
        if key not in schema:
            unknown.append(path)
            continue
        subschema = schema.get(key)
        if isinstance(subschema, Mapping):
            unknown.extend(_collect_unknown_keys(value, subschema, prefix=path))
    return unknown
