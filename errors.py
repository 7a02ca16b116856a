# errors.py


class ExecError(Exception):
    """Base class for everything the execution engine reports to callers."""


class SpawnError(ExecError):
    """The OS refused to create the process, or the request could not be turned into one."""


class NotFound(ExecError):
    pass


class InvalidState(ExecError):
    """An internal invariant was violated. Indicates a bug, not a bad request."""


class OffsetOutOfRange(ExecError):
    pass


class JobBusy(ExecError):
    pass


class InvalidPath(ExecError):
    pass


class InvalidPayload(ExecError):
    pass
