"""Exception types shared by the attendance and notification modules."""


class FacilityError(Exception):
    """Base class for facility portal errors."""


class NotFoundError(FacilityError):
    """An id or token did not match any record."""


class InvalidTokenError(NotFoundError):
    """A check-in token did not match any member."""


class InvalidStateError(FacilityError):
    """A check-in was asked to leave a terminal state."""

    def __init__(self, check_in_id: int, current_status: str):
        self.check_in_id = check_in_id
        self.current_status = current_status
        super().__init__(
            f"Check-in {check_in_id} is already {current_status}, not pending"
        )


class ChannelUnavailable(FacilityError):
    """A notification provider has no credentials configured."""

    def __init__(self, channel: str, message: str | None = None):
        self.channel = channel
        super().__init__(message or f"{channel} provider not configured")


class ProviderError(FacilityError):
    """A notification provider call failed (network, auth, quota, timeout)."""

    def __init__(self, operation: str, cause: BaseException):
        self.operation = operation
        self.cause = cause
        detail = str(cause) or type(cause).__name__
        super().__init__(f"{operation} failed: {detail}")
