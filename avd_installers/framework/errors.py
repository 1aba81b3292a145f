"""Error kinds produced by the provisioning stages.

Every kind records the stage it belongs to and the process exit code the CLI
reports for it. The driver halts on any of them except ``CleanupWarning``,
which Reclaim only logs.
"""

from __future__ import annotations

CONFIG_ERROR_EXIT_CODE = 1


class ProvisioningError(Exception):
    stage: str = "pipeline"
    exit_code: int = 1

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def describe(self) -> str:
        if self.cause is None:
            return f"{self.stage}: {self.message}"
        return f"{self.stage}: {self.message} ({type(self.cause).__name__}: {self.cause})"


class ResolutionError(ProvisioningError):
    stage = "resolve"
    exit_code = 10


class AcquisitionError(ProvisioningError):
    stage = "acquire"
    exit_code = 11


class InstallationError(ProvisioningError):
    stage = "apply"
    exit_code = 12

    def __init__(
        self,
        message: str,
        *,
        installer_exit_code: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.installer_exit_code = installer_exit_code


class VerificationError(ProvisioningError):
    stage = "verify"
    exit_code = 13


class CleanupWarning(ProvisioningError):
    stage = "reclaim"
    exit_code = 0
