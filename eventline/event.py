"""
ChainableEvent - Base class for discrete units of business logic in an event chain.
"""


class ChainableEvent:
    """
    Base class for events in an event chain.
    Each event represents a discrete unit of business logic.

    Events should be stateless - all state flows through the EventContext.
    Expected business-rule failures are returned as Result.fail(...), not raised.

    Attributes:
        critical: When True, failures of this event are critical under the
            LENIENT fault tolerance mode even if the Result does not say so.
    """

    critical = False

    @property
    def name(self):
        """Name used in failure records and context markers."""
        return self.__class__.__name__

    def execute(self, context):
        """
        Execute the event logic.

        Args:
            context: EventContext containing shared state

        Returns:
            Result indicating success or failure

        Raises:
            NotImplementedError: This method must be implemented by subclasses
        """
        raise NotImplementedError(f"{self.__class__.__name__} must implement execute()")

    def __repr__(self):
        return f"{self.__class__.__name__}()"

    def __str__(self):
        return self.name


def event_name(event):
    """
    Name of any event-like object.

    The chain accepts anything with an execute(context) method, so objects
    without a name attribute fall back to their class name.
    """
    return getattr(event, 'name', None) or event.__class__.__name__
