from __future__ import annotations


class InvalidInputError(ValueError):
    """Malformed caller input. Raised before any state is touched."""


class RunNotFoundError(LookupError):
    pass


class RunConflictError(ValueError):
    """The run exists but cannot accept this operation right now."""


class RunBusyError(RunConflictError):
    pass


class RunTerminatedError(RunConflictError):
    pass


class PhaseConflictError(RunConflictError):
    pass


class GeneratorUnavailableError(RuntimeError):
    """The scenario generator failed after every allowed attempt.

    Retryable by the caller; the run has not been modified.
    """


class InvariantViolationError(AssertionError):
    pass
