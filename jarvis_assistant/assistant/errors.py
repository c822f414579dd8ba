"""Error taxonomy for model gateway failures."""

from enum import Enum


class ErrorKind(Enum):
    """Classification every gateway must attach to a failure."""

    OVERLOADED = "overloaded"  # 503, retried
    RATE_LIMITED = "rate_limited"  # 429, retried
    BILLING_REQUIRED = "billing_required"  # needs a paid/billing project
    FATAL = "fatal"


class GatewayError(Exception):
    """A classified failure raised by a :class:`ModelGateway`."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.FATAL, status: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.status = status

    @property
    def transient(self) -> bool:
        return self.kind in (ErrorKind.OVERLOADED, ErrorKind.RATE_LIMITED)

    def __repr__(self) -> str:
        return f"GatewayError({str(self)!r}, kind={self.kind.value}, status={self.status})"


def classify_status(status: int | None, message: str = "") -> ErrorKind:
    """Map an HTTP status (and vendor message) to an :class:`ErrorKind`.

    Gateways call this once when translating their client's exceptions, so
    callers only ever branch on ``GatewayError.kind``.
    """
    if status == 503:
        return ErrorKind.OVERLOADED
    if status == 429:
        return ErrorKind.RATE_LIMITED
    lowered = message.lower()
    if status in (402, 403) or "billing" in lowered or "permission_denied" in lowered:
        return ErrorKind.BILLING_REQUIRED
    # Video models report a missing paid project as a missing entity
    if status == 404 and "requested entity was not found" in lowered:
        return ErrorKind.BILLING_REQUIRED
    return ErrorKind.FATAL
