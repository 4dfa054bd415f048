# app/utils/errors.py


class SchedulingError(Exception):
    """Base class for failures raised by the scheduled-email subsystem."""


class ValidationError(SchedulingError):
    """A scheduling request or record is missing required fields."""


class PersistenceError(SchedulingError):
    """The store could not read or write a record."""


class AuthorizationError(SchedulingError):
    """The caller is not allowed to perform the operation."""


class DeliveryError(SchedulingError):
    """The mail provider rejected or never received a send."""

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient
