class ListenerError(Exception):
    """Base of errors raised by the metadata listener."""


class InvalidArgument(ListenerError, ValueError):
    """A value has the wrong type or is out of range, nothing was changed."""


class InvalidTransition(ListenerError, RuntimeError):
    """Operation is not allowed in the current listener state."""


class SubscriptionFailure(ListenerError):
    """Joining the metadata channel failed or timed out."""

    def __init__(self, reason):
        super().__init__(reason)
        # Reason as sent by the server, or "timeout".
        self.reason = reason
