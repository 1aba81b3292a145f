from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Callable, Mapping

from avd_installers.foundation.logging_utils import close_logger_handlers, setup_operational_logger
from avd_installers.framework.config import InstallerConfig, ProductConfig
from avd_installers.framework.models import ReleaseDescriptor
from avd_installers.framework.pipeline import (
    PipelineOutcome,
    ProvisioningPipeline,
    Stage,
    StageRecorder,
)
from avd_installers.framework.run_index import (
    RUN_INDEX_FILENAME,
    RUN_INDEX_SCHEMA_VERSION,
    append_run_index_entry,
    generate_run_id,
    utc_now_iso8601,
)
from avd_installers.framework.runtime import RunContext
from avd_installers.products import BUILTIN_PRODUCTS, ProductCatalog
from avd_installers.stages.acquire import acquire_artifact
from avd_installers.stages.apply import apply_installer
from avd_installers.stages.reclaim import reclaim
from avd_installers.stages.resolve import build_resolver, resolve_release
from avd_installers.stages.verify import verify_installation
from avd_installers.system import (
    Downloader,
    InstalledSoftwareQuery,
    InstallerInvoker,
    ReleaseIndex,
)


@dataclass(frozen=True)
class Collaborators:
    release_index: ReleaseIndex
    downloader: Downloader
    installer: InstallerInvoker
    installed_software: InstalledSoftwareQuery

    def close(self) -> None:
        """Close every collaborator that holds a resource (the HTTP session)."""
        seen: set[int] = set()
        for member in (self.release_index, self.downloader, self.installer, self.installed_software):
            close = getattr(member, "close", None)
            if id(member) in seen or not callable(close):
                continue
            seen.add(id(member))
            close()


def default_collaborators(cfg: InstallerConfig) -> Collaborators:
    from avd_installers.system.http import HttpClient
    from avd_installers.system.msiexec import MsiexecInvoker
    from avd_installers.system.registry import WindowsInstalledSoftware

    http = HttpClient(timeout_s=cfg.http_timeout_s)
    return Collaborators(
        release_index=http,
        downloader=http,
        installer=MsiexecInvoker(timeout_s=cfg.installer_timeout_s),
        installed_software=WindowsInstalledSoftware(),
    )


def load_installer_config(
    cfg_dict: Mapping[str, Any], *, catalog: ProductCatalog = BUILTIN_PRODUCTS
) -> tuple[InstallerConfig, list[str]]:
    return InstallerConfig.from_dict(catalog.apply_defaults(cfg_dict))


def build_pipeline(
    product: ProductConfig,
    collaborators: Collaborators,
    *,
    catalog: ProductCatalog = BUILTIN_PRODUCTS,
    clock: Callable[[], float] = time.time,
    recorder: StageRecorder | None = None,
) -> ProvisioningPipeline:
    resolver = build_resolver(product, collaborators.release_index)
    stages = [
        Stage(
            "resolve",
            partial(resolve_release, resolver=resolver),
            capture_key="descriptor",
            meta={"doc": f"{product.resolver} release lookup"},
        ),
        Stage(
            "acquire",
            partial(acquire_artifact, downloader=collaborators.downloader),
            capture_key="artifact",
        ),
        Stage(
            "apply",
            partial(
                apply_installer,
                invoker=collaborators.installer,
                options=catalog.installer_options(product),
            ),
            capture_key="outcome",
        ),
        Stage(
            "verify",
            partial(verify_installation, query=collaborators.installed_software),
            capture_key="installed_record",
            meta={"doc": f"{product.registry_name_pattern} / {product.version_policy}"},
        ),
    ]
    return ProvisioningPipeline(
        stages,
        reclaim=Stage("reclaim", partial(reclaim, clock=clock), capture_key="reclaim"),
        recorder=recorder,
    )


def _log_config_meta(logger: logging.Logger, config_meta: Mapping[str, Any] | None) -> None:
    if not config_meta:
        return
    mode = config_meta.get("mode")
    paths = config_meta.get("paths") or []
    env_var = config_meta.get("env_var") or "AVD_INSTALLERS_CONFIG"
    if mode in {"env", "explicit"} and paths:
        label = f"env {env_var}" if mode == "env" else "explicit path"
        logger.info("Loaded config from %s=%s", label, paths[0])
    elif paths:
        base = paths[0]
        local = paths[1] if len(paths) > 1 else None
        if local:
            logger.info("Loaded config base=%s local=%s", base, local)
        else:
            logger.info("Loaded config base=%s", base)


def run_install(
    cfg_dict: Mapping[str, Any],
    product_id: str,
    *,
    run_id: str | None = None,
    config_meta: Mapping[str, Any] | None = None,
    collaborators: Collaborators | None = None,
    catalog: ProductCatalog = BUILTIN_PRODUCTS,
    clock: Callable[[], float] = time.time,
) -> tuple[RunContext, PipelineOutcome]:
    """
    Run the full Resolve/Acquire/Apply/Verify/Reclaim pipeline for one product.

    Configuration errors raise ``ValueError`` before anything is touched; stage
    failures are reported through the returned ``PipelineOutcome``.
    """

    cfg, cfg_warnings = load_installer_config(cfg_dict, catalog=catalog)
    product = cfg.product(product_id)

    run_id = run_id or generate_run_id()
    try:
        logger, log_file = setup_operational_logger(cfg.log_dir, product.id, run_id)
    except OSError as exc:
        raise ValueError(f"Cannot open log directory {cfg.log_dir}: {exc}") from exc

    owns_collaborators = collaborators is None
    try:
        _log_config_meta(logger, config_meta)
        for warning in cfg_warnings:
            logger.warning("Config warning: %s", warning)
        if product.install_path:
            # msiexec is not given an install directory; the MSI default applies.
            logger.info("Install path %s recorded (not passed to the installer)", product.install_path)

        ctx = RunContext(
            run_id=run_id,
            cfg=cfg,
            product=product,
            logger=logger,
            created_at=utc_now_iso8601(),
            temp_dir=Path(cfg.product_temp_dir(product.id)),
            log_dir=Path(cfg.log_dir),
            log_file=Path(log_file),
        )

        collaborators = collaborators or default_collaborators(cfg)
        pipeline = build_pipeline(product, collaborators, catalog=catalog, clock=clock)
        logger.info("Installing %s (run %s)", product.display_name, run_id)
        outcome = pipeline.run(ctx)

        if outcome.status == "done":
            logger.info("%s installation completed successfully", product.display_name)
        else:
            error = outcome.error
            logger.error(
                "%s installation failed at stage %s: %s",
                product.display_name,
                outcome.failed_stage,
                error.describe() if error is not None else "unknown error",
            )

        if cfg.run_index_enabled:
            _record_run(ctx, outcome)
        return ctx, outcome
    finally:
        if owns_collaborators and collaborators is not None:
            collaborators.close()
        close_logger_handlers(logger)


def _record_run(ctx: RunContext, outcome: PipelineOutcome) -> None:
    descriptor = ctx.descriptor
    index_path = os.path.join(ctx.cfg.log_dir, RUN_INDEX_FILENAME)
    entry = {
        "schema_version": RUN_INDEX_SCHEMA_VERSION,
        "run_id": ctx.run_id,
        "product": ctx.product.id,
        "status": outcome.status,
        "failed_stage": outcome.failed_stage,
        "exit_code": outcome.exit_code,
        "version": descriptor.version if descriptor else None,
        "created_at": ctx.created_at,
    }
    try:
        append_run_index_entry(index_path, entry)
    except OSError as exc:
        # The run index is bookkeeping; it never changes the outcome.
        ctx.logger.warning("Could not append to run index %s: %s", index_path, exc)


def resolve_only(
    cfg_dict: Mapping[str, Any],
    product_id: str,
    *,
    release_index: ReleaseIndex | None = None,
    catalog: ProductCatalog = BUILTIN_PRODUCTS,
) -> ReleaseDescriptor:
    """Run Resolve alone; raises ``ResolutionError`` on failure. No files are written."""

    cfg, _warnings = load_installer_config(cfg_dict, catalog=catalog)
    product = cfg.product(product_id)
    if release_index is not None:
        return build_resolver(product, release_index).resolve()

    from avd_installers.system.http import HttpClient

    http = HttpClient(timeout_s=cfg.http_timeout_s)
    try:
        return build_resolver(product, http).resolve()
    finally:
        http.close()
