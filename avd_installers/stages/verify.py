from __future__ import annotations

from avd_installers.framework.config import VersionPolicy
from avd_installers.framework.errors import VerificationError
from avd_installers.framework.pipeline import StageResult
from avd_installers.framework.runtime import RunContext
from avd_installers.system import InstalledSoftwareQuery


def _major_minor(version: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in version.strip().split(".")[:2])


def versions_match(installed: str, expected: str, policy: VersionPolicy) -> bool:
    """
    Compare an installed DisplayVersion against the expected release version.

    ``exact`` requires full string equality; ``major_minor`` only compares the
    first two dot-separated components so installer patch drift is tolerated
    (``21.07.1`` satisfies ``21.07``, ``21.08.0`` does not).
    """

    if policy == "exact":
        return installed.strip() == expected.strip()
    if policy == "major_minor":
        return _major_minor(installed) == _major_minor(expected)
    raise ValueError(f"Unknown version policy: {policy}")


def verify_installation(ctx: RunContext, *, query: InstalledSoftwareQuery) -> StageResult:
    descriptor = ctx.descriptor
    if descriptor is None:
        return StageResult.failure("verify", VerificationError("no release descriptor to verify against"))

    pattern = ctx.product.registry_name_pattern
    policy = ctx.product.version_policy
    try:
        records = query.find(pattern)
    except OSError as exc:
        return StageResult.failure(
            "verify", VerificationError("installed software query failed", cause=exc)
        )

    unique = list(dict.fromkeys(records))
    if not unique:
        return StageResult.failure(
            "verify", VerificationError(f"no installed software matches {pattern!r}")
        )
    if len(unique) > 1:
        found = "; ".join(f"{r.display_name} {r.display_version}" for r in unique)
        return StageResult.failure(
            "verify",
            VerificationError(f"{len(unique)} installed products match {pattern!r}: {found}"),
        )

    record = unique[0]
    if not versions_match(record.display_version, descriptor.version, policy):
        return StageResult.failure(
            "verify",
            VerificationError(
                f"{record.display_name} reports version {record.display_version!r}, "
                f"expected {descriptor.version!r} ({policy})"
            ),
        )

    ctx.logger.info(
        "Verified %s %s (expected %s, policy=%s)",
        record.display_name,
        record.display_version,
        descriptor.version,
        policy,
    )
    return StageResult.success("verify", record)
