"""Exception types raised by startchanges tasks."""


class ProvisionError(Exception):
    """Base class for all startchanges errors."""
    pass


class PreflightError(ProvisionError):
    """Raised when a required command is still missing after installation."""
    pass


class CriticalStepError(ProvisionError):
    """Raised when a critical-path step fails and the run must stop."""
    pass


class ReconcileError(ProvisionError):
    """Raised when the alias file cannot be read, staged, or replaced."""
    pass


class OperatorAbort(ProvisionError):
    """Raised when the operator cancels an interactive review."""
    pass
