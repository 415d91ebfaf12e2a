"""Error taxonomy shared by the storefront services.

Malformed input is reported with Protean's ``ValidationError``; the errors
below describe the domain's own failure modes.
"""


class StorefrontError(Exception):
    """Base class for storefront domain errors."""


class NotFound(StorefrontError):
    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = str(identifier)
        super().__init__(f"{kind} {self.identifier} not found")


class InsufficientStock(StorefrontError):
    """A reservation asked for more units than are available."""

    def __init__(self, product_id: str, requested: int, available: int | None = None) -> None:
        self.product_id = str(product_id)
        self.requested = requested
        self.available = available
        message = f"Insufficient stock for product {self.product_id}: requested {requested}"
        if available is not None:
            message += f", available {available}"
        super().__init__(message)


class InvalidTransition(StorefrontError):
    """A state change that the owning state machine does not allow."""

    def __init__(self, kind: str, current: str, target: str, reason: str | None = None) -> None:
        self.kind = kind
        self.current = current
        self.target = target
        self.reason = reason
        message = f"{kind} cannot move from {current} to {target}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class DownstreamFailure(StorefrontError):
    """A follow-up step failed after the primary change was committed."""

    def __init__(self, effect: str, cause: Exception) -> None:
        self.effect = effect
        self.cause = cause
        super().__init__(f"{effect} failed: {cause}")
