"""
Exceptions raised by the eventline engine.

Business failures are never exceptions: events return Result.fail(...).
The classes here cover misuse of the engine and broken collaborator contracts.
"""


class EventChainError(Exception):
    """Base exception for all eventline errors."""


class ConfigurationError(EventChainError):
    """Raised by EventChain.execute() when the chain is misconfigured."""


class ChainStateError(EventChainError):
    """Raised when a chain is mutated or re-entered while it is executing."""


class KeyNotFound(EventChainError, KeyError):
    """Raised by EventContext.get() when the key is absent."""

    def __init__(self, key):
        self.key = key
        super().__init__(key)

    def __str__(self):
        return f"Key not found in context: {self.key!r}"


class ContractViolation(EventChainError):
    """
    Base class for broken Event/Middleware contracts.

    The chain treats these as fatal: they halt execution whatever the
    fault tolerance mode.
    """


class MiddlewareContractError(ContractViolation):
    """Raised when middleware calls next more than once or returns a non-Result."""

    def __init__(self, middleware, message):
        self.middleware = middleware
        super().__init__(f"{middleware.__class__.__name__}: {message}")


class EventContractError(ContractViolation):
    """Raised when an event's execute() returns something other than a Result."""

    def __init__(self, event, returned):
        self.event = event
        self.returned = returned
        super().__init__(
            f"{getattr(event, 'name', event.__class__.__name__)}.execute() "
            f"must return a Result, got {type(returned).__name__}"
        )


class PolicyDecisionError(EventChainError):
    """
    Raised when a custom decision function returns something other than a Verdict.

    The chain records it as a critical failure and halts.
    """

    def __init__(self, verdict):
        self.verdict = verdict
        super().__init__(
            f"Decision function returned {verdict!r}; expected Verdict.CONTINUE or Verdict.HALT")
