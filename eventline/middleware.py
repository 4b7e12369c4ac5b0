"""
Middleware - Base class for cross-cutting concerns that wrap event execution.
"""


class Middleware:
    """
    Base class for middleware that wraps event execution.

    Middleware provides cross-cutting concerns like logging, timing, error handling, etc.
    The last registered middleware is the outermost layer - like gift wrapping,
    the last paper on is the first one off.
    """

    def execute(self, event, context, next_callable):
        """
        Execute the middleware logic.

        Args:
            event: The ChainableEvent being executed
            context: EventContext containing shared state
            next_callable: Function to call to continue the chain. Call it at
                most once; not calling it short-circuits the event.

        Returns:
            Result from the next callable, a modified result, or a Result of
            the middleware's own when short-circuiting

        Example:
            def execute(self, event, context, next_callable):
                # Before logic
                print(f"Before {event.name}")

                # Call next in chain
                result = next_callable(context)

                # After logic
                print(f"After {event.name}")

                return result
        """
        raise NotImplementedError(f"{self.__class__.__name__} must implement execute()")

    def __repr__(self):
        return f"{self.__class__.__name__}()"

    def __str__(self):
        return self.__class__.__name__
