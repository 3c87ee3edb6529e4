class TimeTrackingError(ValueError):
    """Base class for errors surfaced to the user who made the request."""


class ConflictError(TimeTrackingError):
    pass


class NotFoundError(TimeTrackingError):
    pass


class InvalidStateError(TimeTrackingError):
    pass
