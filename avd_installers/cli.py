from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from typing import Any

from avd_installers.foundation.config_io import deep_merge, load_config
from avd_installers.foundation.logging_utils import configure_stdio_utf8
from avd_installers.framework.errors import CONFIG_ERROR_EXIT_CODE, ResolutionError


def _add_product_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("product", help="Product id (see list-products)")
    parser.add_argument("--config", dest="config_path", help="Load this YAML file instead of config/config.yaml")
    parser.add_argument("--version", dest="product_version", help="Version to install (pinned products)")
    parser.add_argument("--download-host", help="Vendor download host (pinned products)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="avd-installers", add_help=True)
    sub = parser.add_subparsers(dest="command", required=True)

    install = sub.add_parser("install", help="Download, install and verify a product")
    _add_product_arguments(install)
    install.add_argument("--sso-host", help="SSO host pre-seeded into the installer")
    install.add_argument("--install-path", help="Target install path (recorded in the log)")
    install.add_argument("--log-retention-days", type=int, help="Prune logs older than this many days")
    install.add_argument("--no-cleanup", action="store_true", help="Keep downloaded files and old logs")
    install.add_argument(
        "--keep-on-failure",
        action="store_true",
        help="Skip cleanup when a stage fails, leaving the download for inspection",
    )

    resolve = sub.add_parser("resolve", help="Print the release that would be installed")
    _add_product_arguments(resolve)

    list_products = sub.add_parser("list-products", help="List configured products")
    list_products.add_argument("--config", dest="config_path")

    return parser


def build_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Translate CLI flags into a config overlay (merged with ``deep_merge``)."""

    overrides: dict[str, Any] = {}
    product_id = getattr(args, "product", None)
    product: dict[str, Any] = {}
    for attr, key in (
        ("product_version", "version"),
        ("download_host", "download_host"),
        ("sso_host", "sso_host"),
        ("install_path", "install_path"),
    ):
        value = getattr(args, attr, None)
        if value is not None:
            product[key] = value
    if product_id and product:
        overrides["products"] = {product_id: product}

    cleanup: dict[str, Any] = {}
    if getattr(args, "no_cleanup", False):
        cleanup["enabled"] = False
    if getattr(args, "keep_on_failure", False):
        cleanup["on_failure"] = False
    if getattr(args, "log_retention_days", None) is not None:
        cleanup["log_retention_days"] = args.log_retention_days
    if cleanup:
        overrides["cleanup"] = cleanup
    return overrides


def _load(args: argparse.Namespace) -> tuple[dict[str, Any], dict[str, Any]]:
    cfg, meta = load_config(config_path=getattr(args, "config_path", None))
    return deep_merge(cfg, build_overrides(args), path=""), meta


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    configure_stdio_utf8()

    try:
        cfg_dict, meta = _load(args)
    except (FileNotFoundError, ValueError) as exc:
        print(f"ERROR: configuration: {exc}", file=sys.stderr)
        return CONFIG_ERROR_EXIT_CODE

    if args.command == "list-products":
        from avd_installers.app.install import load_installer_config

        try:
            cfg, _warnings = load_installer_config(cfg_dict)
        except ValueError as exc:
            print(f"ERROR: configuration: {exc}", file=sys.stderr)
            return CONFIG_ERROR_EXIT_CODE
        for product_id in sorted(cfg.products):
            product = cfg.products[product_id]
            print(f"{product_id}\t{product.display_name}\t{product.resolver}\t{product.version_policy}")
        return 0

    if args.command == "resolve":
        from avd_installers.app.install import resolve_only

        try:
            descriptor = resolve_only(cfg_dict, args.product)
        except ResolutionError as exc:
            print(f"ERROR: {exc.describe()}", file=sys.stderr)
            return exc.exit_code
        except ValueError as exc:
            print(f"ERROR: configuration: {exc}", file=sys.stderr)
            return CONFIG_ERROR_EXIT_CODE
        print(json.dumps(descriptor.to_dict(), indent=2))
        return 0

    if args.command == "install":
        from avd_installers.app.install import run_install

        try:
            _ctx, outcome = run_install(cfg_dict, args.product, config_meta=meta)
        except ValueError as exc:
            print(f"ERROR: configuration: {exc}", file=sys.stderr)
            return CONFIG_ERROR_EXIT_CODE
        error = outcome.error
        if error is not None:
            print(f"ERROR: {args.product} failed at {error.describe()}", file=sys.stderr)
        return outcome.exit_code

    raise AssertionError(f"Unhandled command: {args.command}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
