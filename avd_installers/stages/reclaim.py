"""Reclaim: best-effort cleanup after a run.

Removes the downloaded installer and its per-product temp directory, then
prunes log files whose last write is strictly older than the retention window.
Every failure is reported as a ``CleanupWarning`` and logged; none of them
change the outcome of the run.
"""

from __future__ import annotations

import shutil
import time
from pathlib import Path
from typing import Callable, Iterable

from avd_installers.framework.errors import CleanupWarning
from avd_installers.framework.models import ReclaimReport
from avd_installers.framework.pipeline import StageResult
from avd_installers.framework.runtime import RunContext
from avd_installers.stages.apply import installer_log_path

SECONDS_PER_DAY = 86400


def retention_cutoff(now: float, retention_days: int) -> float:
    return now - retention_days * SECONDS_PER_DAY


def prune_logs(
    log_dir: Path,
    patterns: Iterable[str],
    *,
    retention_days: int,
    now: float,
    keep: Iterable[Path] = (),
) -> tuple[list[Path], list[CleanupWarning]]:
    """
    Delete files in ``log_dir`` matching ``patterns`` with ``mtime < now - retention``.

    A file whose mtime equals the cutoff exactly is kept. Paths in ``keep`` are
    never deleted.
    """

    deleted: list[Path] = []
    warnings: list[CleanupWarning] = []
    if not log_dir.is_dir():
        return deleted, warnings

    cutoff = retention_cutoff(now, retention_days)
    protected = {path.resolve() for path in keep}
    candidates: dict[Path, None] = {}
    for pattern in patterns:
        for path in sorted(log_dir.glob(pattern)):
            candidates[path] = None

    for path in candidates:
        try:
            if not path.is_file() or path.resolve() in protected:
                continue
            if path.stat().st_mtime < cutoff:
                path.unlink()
                deleted.append(path)
        except OSError as exc:
            warnings.append(CleanupWarning(f"could not prune {path}", cause=exc))
    return deleted, warnings


def remove_temp_files(ctx: RunContext) -> tuple[list[Path], list[CleanupWarning]]:
    deleted: list[Path] = []
    warnings: list[CleanupWarning] = []

    artifact = ctx.artifact
    if artifact is not None and artifact.path.exists():
        try:
            artifact.path.unlink()
            deleted.append(artifact.path)
        except OSError as exc:
            warnings.append(CleanupWarning(f"could not delete {artifact.path}", cause=exc))

    if ctx.temp_dir.exists():
        try:
            shutil.rmtree(ctx.temp_dir)
            deleted.append(ctx.temp_dir)
        except OSError as exc:
            warnings.append(CleanupWarning(f"could not remove {ctx.temp_dir}", cause=exc))
    return deleted, warnings


def reclaim(ctx: RunContext, *, clock: Callable[[], float] = time.time) -> StageResult:
    if not ctx.cfg.cleanup_enabled:
        ctx.logger.info("Cleanup suppressed; leaving %s and logs in place", ctx.temp_dir)
        return StageResult.success("reclaim", ReclaimReport(skipped=True))

    deleted, warnings = remove_temp_files(ctx)

    keep = [path for path in (ctx.log_file, installer_log_path(ctx)) if path]
    pruned, prune_warnings = prune_logs(
        ctx.log_dir,
        ctx.product.log_patterns,
        retention_days=ctx.cfg.log_retention_days,
        now=clock(),
        keep=keep,
    )
    deleted.extend(pruned)
    warnings.extend(prune_warnings)

    for warning in warnings:
        ctx.logger.warning("Cleanup warning: %s", warning.describe())
    ctx.logger.info(
        "Cleanup removed %d path(s), pruned %d log(s) older than %d day(s)",
        len(deleted) - len(pruned),
        len(pruned),
        ctx.cfg.log_retention_days,
    )
    return StageResult.success(
        "reclaim",
        ReclaimReport(deleted=tuple(deleted), warnings=tuple(w.describe() for w in warnings)),
    )
