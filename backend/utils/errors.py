from fastapi import HTTPException, status

# ==============================
# Escrow error kinds
# ==============================
#
# Raised from service code and propagated unchanged to the HTTP layer.
# Every kind is a distinct class so callers can tell a guard violation
# from a bad request or a lost race.


class EscrowError(HTTPException):
    http_status = status.HTTP_400_BAD_REQUEST
    code = "ESCROW_ERROR"

    def __init__(self, message: str, **context):
        self.message = message
        self.context = context
        super().__init__(
            status_code=self.http_status,
            detail={"error": self.code, "message": message, **context},
        )


class InvalidTransition(EscrowError):
    code = "INVALID_TRANSITION"

    def __init__(self, current: str, requested: str, reason: str):
        self.current = current
        self.requested = requested
        self.reason = reason
        super().__init__(
            f"Cannot move order from {current} to {requested}: {reason}",
            current_status=current,
            requested_status=requested,
            reason=reason,
        )


class NotFound(EscrowError):
    http_status = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class Unauthorized(EscrowError):
    http_status = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"


class InsufficientBalance(EscrowError):
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, requested: int, available: int):
        super().__init__(
            "Insufficient balance for withdrawal",
            requested=requested,
            available=available,
        )


class BelowMinimum(EscrowError):
    code = "BELOW_MINIMUM"

    def __init__(self, requested: int, minimum: int):
        super().__init__(
            f"Minimum withdrawal is {minimum}",
            requested=requested,
            minimum=minimum,
        )


class ValidationError(EscrowError):
    http_status = 422
    code = "VALIDATION_ERROR"


class Conflict(EscrowError):
    http_status = status.HTTP_409_CONFLICT
    code = "CONFLICT"
