"""Sequential stage driver.

Stages return ``StageResult`` values instead of raising; the driver decides
whether to continue. Every stage before Reclaim is fatal on error. Reclaim
runs after success and, when ``cleanup.on_failure`` is set, after a failure
too, without changing the reported outcome.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Protocol, Sequence

from avd_installers.framework.errors import CleanupWarning, ProvisioningError
from avd_installers.framework.models import ReclaimReport
from avd_installers.framework.runtime import RunContext

PipelineStatus = Literal["done", "failed"]


@dataclass(frozen=True)
class StageResult:
    stage: str
    value: Any = None
    error: ProvisioningError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, stage: str, value: Any = None) -> "StageResult":
        return cls(stage=stage, value=value)

    @classmethod
    def failure(cls, stage: str, error: ProvisioningError) -> "StageResult":
        if not isinstance(error, ProvisioningError):
            raise TypeError(f"Stage {stage} failure must carry a ProvisioningError (got {type(error).__name__})")
        return cls(stage=stage, error=error)


StageFn = Callable[[RunContext], StageResult]


@dataclass(frozen=True)
class Stage:
    name: str
    fn: StageFn
    capture_key: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str):
            raise TypeError(f"Stage name must be a string (type={type(self.name).__name__})")
        name = self.name.strip()
        if not name:
            raise ValueError("Stage name cannot be empty")
        object.__setattr__(self, "name", name)

        if not callable(self.fn):
            raise TypeError(f"Stage fn must be callable (type={type(self.fn).__name__})")

        if self.capture_key is not None:
            if not isinstance(self.capture_key, str):
                raise TypeError(
                    f"Stage capture_key must be a string or None (type={type(self.capture_key).__name__})"
                )
            capture_key = self.capture_key.strip()
            if not capture_key:
                raise ValueError("Stage capture_key cannot be empty")
            object.__setattr__(self, "capture_key", capture_key)


@dataclass(frozen=True)
class PipelineOutcome:
    status: PipelineStatus
    results: tuple[StageResult, ...] = ()
    reclaim: StageResult | None = None

    @property
    def error(self) -> ProvisioningError | None:
        for result in self.results:
            if not result.ok:
                return result.error
        return None

    @property
    def failed_stage(self) -> str | None:
        error = self.error
        return error.stage if error is not None else None

    @property
    def exit_code(self) -> int:
        error = self.error
        return 0 if error is None else error.exit_code

    @property
    def completed_stages(self) -> tuple[str, ...]:
        return tuple(result.stage for result in self.results if result.ok)


class StageRecorder(Protocol):
    def on_stage_start(self, ctx: RunContext, stage: Stage) -> None:
        ...

    def on_stage_end(self, ctx: RunContext, record: dict[str, Any]) -> None:
        ...

    def on_stage_error(self, ctx: RunContext, stage: Stage, error: BaseException) -> None:
        ...


class DefaultStageRecorder:
    def on_stage_start(self, ctx: RunContext, stage: Stage) -> None:
        doc = stage.meta.get("doc")
        if isinstance(doc, str) and doc.strip():
            ctx.logger.info("Stage: %s (%s)", stage.name, doc.strip())
        else:
            ctx.logger.info("Stage: %s", stage.name)

    def on_stage_end(self, ctx: RunContext, record: dict[str, Any]) -> None:
        ctx.steps.append(record)
        if record.get("status") == "ok":
            ctx.logger.info("Completed stage %s (%.1fs)", record.get("stage"), record.get("duration_s", 0.0))

    def on_stage_error(self, ctx: RunContext, stage: Stage, error: BaseException) -> None:
        if isinstance(error, ProvisioningError):
            ctx.logger.error("Stage %s failed: %s", stage.name, error.describe())
        else:
            ctx.logger.error("Stage %s failed: %s: %s", stage.name, type(error).__name__, error)


class NullStageRecorder:
    def on_stage_start(self, ctx: RunContext, stage: Stage) -> None:
        return

    def on_stage_end(self, ctx: RunContext, record: dict[str, Any]) -> None:
        ctx.steps.append(record)

    def on_stage_error(self, ctx: RunContext, stage: Stage, error: BaseException) -> None:
        return


class ProvisioningPipeline:
    def __init__(
        self,
        stages: Sequence[Stage],
        *,
        reclaim: Stage | None = None,
        recorder: StageRecorder | None = None,
    ) -> None:
        self._stages = tuple(stages)
        self._reclaim = reclaim
        self._recorder = recorder or DefaultStageRecorder()
        self._validate_recorder(self._recorder)
        self._validate_stage_names()

    @property
    def stage_names(self) -> tuple[str, ...]:
        names = [stage.name for stage in self._stages]
        if self._reclaim is not None:
            names.append(self._reclaim.name)
        return tuple(names)

    def run(self, ctx: RunContext) -> PipelineOutcome:
        results: list[StageResult] = []
        try:
            for stage in self._stages:
                result = self._run_stage(ctx, stage)
                results.append(result)
                if not result.ok:
                    break
        except Exception as exc:
            ctx.error = {
                "stage": getattr(exc, "pipeline_stage", None),
                "type": type(exc).__name__,
                "message": str(exc),
            }
            if ctx.cfg.cleanup_on_failure:
                self._run_reclaim(ctx)
            raise

        failed = any(not result.ok for result in results)
        if failed:
            error = results[-1].error
            ctx.error = {"stage": results[-1].stage, "type": type(error).__name__, "message": str(error)}
            if not ctx.cfg.cleanup_on_failure:
                ctx.logger.info("Reclaim skipped after failure; temporary files left in %s", ctx.temp_dir)
                return PipelineOutcome(status="failed", results=tuple(results))

        reclaim_result = self._run_reclaim(ctx)
        return PipelineOutcome(
            status="failed" if failed else "done",
            results=tuple(results),
            reclaim=reclaim_result,
        )

    def _run_stage(self, ctx: RunContext, stage: Stage) -> StageResult:
        self._recorder.on_stage_start(ctx, stage)
        started = time.monotonic()
        try:
            result = stage.fn(ctx)
        except Exception as exc:
            self._attach_pipeline_error(exc, stage)
            self._recorder.on_stage_error(ctx, stage, exc)
            raise

        if not isinstance(result, StageResult):
            raise TypeError(
                f"Stage {stage.name} returned non-StageResult (type={type(result).__name__})"
            )

        record: dict[str, Any] = {
            "stage": stage.name,
            "status": "ok" if result.ok else "failed",
            "duration_s": round(time.monotonic() - started, 3),
        }
        if result.ok:
            if stage.capture_key:
                ctx.outputs[stage.capture_key] = result.value
        else:
            record["error"] = str(result.error)
            self._recorder.on_stage_error(ctx, stage, result.error)  # type: ignore[arg-type]
        self._recorder.on_stage_end(ctx, record)
        return result

    def _run_reclaim(self, ctx: RunContext) -> StageResult | None:
        if self._reclaim is None:
            return None
        try:
            return self._run_stage(ctx, self._reclaim)
        except Exception as exc:  # noqa: BLE001
            # Cleanup never changes the reported outcome of a run.
            warning = CleanupWarning("cleanup aborted", cause=exc)
            ctx.logger.warning("Cleanup warning: %s", warning.describe())
            return StageResult.success(
                self._reclaim.name, ReclaimReport(warnings=(warning.describe(),))
            )

    def _attach_pipeline_error(self, exc: Exception, stage: Stage) -> None:
        if not hasattr(exc, "pipeline_stage"):
            try:
                setattr(exc, "pipeline_stage", stage.name)
            except AttributeError:
                pass

    def _validate_recorder(self, recorder: StageRecorder) -> None:
        required = ("on_stage_start", "on_stage_end", "on_stage_error")
        for name in required:
            method = getattr(recorder, name, None)
            if method is None or not callable(method):
                raise TypeError(f"Stage recorder missing required method: {name}")

    def _validate_stage_names(self) -> None:
        seen: set[str] = set()
        duplicates: set[str] = set()
        for name in self.stage_names:
            if name in seen:
                duplicates.add(name)
            seen.add(name)
        if duplicates:
            raise ValueError(f"Duplicate stage name(s): {', '.join(sorted(duplicates))}")
