"""
Exceptions raised while assembling parameters or provisioning a machine,
and the classifier that maps them onto the failure taxonomy.
"""
from enum import Enum


class ProvisionError(Exception):
    pass


class ConfigurationError(ProvisionError):
    """The declared machine specification is structurally invalid."""
    pass


class DryRunError(ProvisionError):
    """Raised after a successful assembly when dry-run is enabled."""

    def __init__(self, message, params=None):
        super().__init__(message)
        self.params = params


class RemoteTaskError(ProvisionError):
    """The remote task finished with an exit status other than 'OK'."""

    def __init__(self, exit_status, params=None):
        super().__init__(exit_status)
        self.exit_status = exit_status
        self.params = params


class VMCreateError(ProvisionError):
    def __init__(self, message, params=None):
        super().__init__(message)
        self.params = params


class VMReconfigureError(ProvisionError):
    def __init__(self, message, params=None):
        super().__init__(message)
        self.params = params


class FailureKind(Enum):
    CONFIGURATION = "configuration"
    DRY_RUN = "dry_run"
    REMOTE_TASK = "remote_task"
    TRANSPORT = "transport"


def classify_failure(exc):
    """
    Map an exception raised during provisioning to a FailureKind.

    Anything that is not one of the domain errors is treated as a
    transport failure of the remote collaborator.

    :param exc: Exception instance
    :return: FailureKind
    """
    if isinstance(exc, ConfigurationError):
        return FailureKind.CONFIGURATION
    if isinstance(exc, DryRunError):
        return FailureKind.DRY_RUN
    if isinstance(exc, RemoteTaskError):
        return FailureKind.REMOTE_TASK
    return FailureKind.TRANSPORT
