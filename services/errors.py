"""Error taxonomy for the order board."""


class OrderBoardError(Exception):
    """Base class for order board errors."""


class StoreConnectionError(OrderBoardError):
    """
    Store unreachable, misconfigured, timed out or returned an unusable
    response. Triggers the local fallback.
    """


class ValidationError(OrderBoardError):
    """Input rejected before any persistence call."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(OrderBoardError):
    """Mutation or delete on an unknown id. Callers treat it as a no-op."""

    def __init__(self, kind: str, key: str):
        super().__init__(f"{kind} {key!r} not found")
        self.kind = kind
        self.key = key
