from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Sequence

from avd_installers.framework.errors import InstallationError
from avd_installers.framework.pipeline import StageResult
from avd_installers.framework.runtime import RunContext
from avd_installers.system import InstallerInvoker


def installer_log_path(ctx: RunContext) -> Path:
    return ctx.log_dir / f"{ctx.product.id}-msiexec-{ctx.run_id}.log"


def apply_installer(
    ctx: RunContext,
    *,
    invoker: InstallerInvoker,
    options: Sequence[tuple[str, str]] = (),
) -> StageResult:
    artifact = ctx.artifact
    if artifact is None:
        return StageResult.failure("apply", InstallationError("no installer artifact to apply"))

    log_path = installer_log_path(ctx)
    ctx.logger.info("Installing %s (installer log: %s)", artifact.path, log_path)
    if options:
        ctx.logger.debug("Installer options: %s", ", ".join(name for name, _ in options))

    try:
        outcome = invoker.install(artifact.path, log_path=log_path, options=options)
    except subprocess.TimeoutExpired as exc:
        return StageResult.failure(
            "apply",
            InstallationError(f"installer did not exit within {exc.timeout}s", cause=exc),
        )
    except OSError as exc:
        return StageResult.failure(
            "apply", InstallationError("installer could not be started", cause=exc)
        )

    if outcome.command:
        ctx.logger.debug("Installer command: %s", outcome.command)

    if not outcome.succeeded:
        return StageResult.failure(
            "apply",
            InstallationError(
                f"installer exited with code {outcome.exit_code} (see {outcome.log_path})",
                installer_exit_code=outcome.exit_code,
            ),
        )

    ctx.logger.info("Installer finished with exit code 0")
    return StageResult.success("apply", outcome)
