class StoreError(Exception):
    """Base exception for all booking store errors."""


class StoreUnavailableError(StoreError):
    """Raised when the backing store is unreachable or misconfigured."""


class RecordNotFoundError(StoreError):
    """Raised when a referenced record does not exist."""

    kind = "record"

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"{self.kind.capitalize()} not found: {record_id}")


class BookingNotFoundError(RecordNotFoundError):
    kind = "booking"


class PatientNotFoundError(RecordNotFoundError):
    kind = "patient"


class StoreWriteError(StoreError):
    """Raised when the store rejects a create, update or delete."""

    def __init__(
        self,
        reason: str,
        record_id: str | None = None,
        status: str | None = None,
    ) -> None:
        self.reason = reason
        self.record_id = record_id
        self.status = status
        super().__init__(f"Failed to write record: {reason}")


class BookingValidationError(Exception):
    """Raised when a form is missing required fields. Nothing is sent to the store."""

    def __init__(self, fields: list[str], message: str | None = None) -> None:
        self.fields = fields
        super().__init__(message or f"Missing or invalid fields: {', '.join(fields)}")


class InvalidTransitionError(Exception):
    """Raised when a workflow action is not allowed from the booking's current status."""

    def __init__(self, booking_id: str, current: str, action: str) -> None:
        self.booking_id = booking_id
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} booking {booking_id} from status '{current}'")
