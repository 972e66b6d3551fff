class LedgerBotError(Exception):
    """Base class for errors raised by the routing core."""


class DuplicateMessage(LedgerBotError):
    def __init__(self, message_id: str):
        super().__init__(f"Message {message_id} is already in flight")
        self.message_id = message_id


class AuthValidationError(LedgerBotError):
    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class AuthResolutionConflict(LedgerBotError):
    def __init__(self, address: str, bound_user_id: int):
        super().__init__(f"Address {address} is already bound to user #{bound_user_id}")
        self.address = address
        self.bound_user_id = bound_user_id


class ClassificationServiceError(LedgerBotError):
    def __init__(self, message: str, *, rate_limited: bool = False):
        super().__init__(message)
        self.rate_limited = rate_limited


class ClassificationTimeout(ClassificationServiceError):
    pass


class LowConfidenceIntent(LedgerBotError):
    def __init__(self, confidence: float):
        super().__init__(f"Confidence {confidence:.2f} is below the threshold")
        self.confidence = confidence


class HandlerFailure(LedgerBotError):
    def __init__(self, handler: str, cause: Exception):
        super().__init__(f"{handler} failed: {cause}")
        self.handler = handler
        self.cause = cause
