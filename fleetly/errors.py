"""Domain errors raised by the pricing, matching and lifecycle modules.

Routers translate these into HTTP responses; nothing in the core imports
FastAPI.
"""


class FleetlyError(Exception):
    """Base class for every domain error."""


class NotFound(FleetlyError):
    pass


class IllegalTransition(FleetlyError):
    """The requested event is not legal from the request's current status."""

    def __init__(self, current, event):
        self.current = current
        self.event = event
        super().__init__(f"Illegal transition: {event} is not allowed from {current}")


class ActionNotPermitted(FleetlyError):
    """The actor's role (or identity) may not perform this action."""


class QuoteConflict(FleetlyError):
    """The quote cannot be created or changed in its current state."""


class InsufficientQuoteInput(FleetlyError):
    """Neither a pricing config nor a parseable budget range was available."""
