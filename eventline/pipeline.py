"""
Pipeline builder - composes middleware into a single callable stage.
"""

from .exceptions import EventContractError, MiddlewareContractError
from .result import Result


def execute_event(event, context):
    """Base stage: actually executes the event."""
    result = event.execute(context)
    if not isinstance(result, Result):
        raise EventContractError(event, result)
    return result


def build_pipeline(middleware):
    """
    Build the middleware pipeline.

    Middleware is folded in registration order, each one wrapping the stage
    built so far. The last registered middleware therefore ends up outermost
    (runs first and last) and the first registered sits next to the event.
    Registering [A, B, C] gives C(B(A(event))).

    The builder holds no state: calling it twice with the same list gives
    two equivalent, independent stages.

    Args:
        middleware: Iterable of Middleware instances in registration order

    Returns:
        Function (event, context) -> Result that runs an event through all middleware
    """
    pipeline = execute_event
    for layer in middleware:
        pipeline = _create_middleware_wrapper(layer, pipeline)
    return pipeline


def _create_middleware_wrapper(middleware, next_pipeline):
    """
    Create a stage that calls middleware with a single-use continuation.

    Args:
        middleware: Middleware instance to wrap
        next_pipeline: The next stage in the pipeline

    Returns:
        Function that executes the middleware
    """
    def wrapper(event, context):
        called = False

        def next_callable(ctx):
            nonlocal called
            if called:
                raise MiddlewareContractError(middleware, "next_callable invoked more than once")
            called = True
            return next_pipeline(event, ctx)

        result = middleware.execute(event, context, next_callable)
        if not isinstance(result, Result):
            raise MiddlewareContractError(
                middleware, f"execute() must return a Result, got {type(result).__name__}")
        return result

    return wrapper
