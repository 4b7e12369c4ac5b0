"""
Reusable events for eventline chains.

These cover the glue most chains need: wrapping plain functions, checking
that required inputs are present, fanning out independent sub-tasks, and
nesting one chain inside another.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

from eventline import ChainableEvent, Result

logger = logging.getLogger(__name__)


def _to_result(value):
    """Map a plain function's return value to a Result."""
    if isinstance(value, Result):
        return value
    if value is False:
        return Result.fail('returned False')
    return Result.ok(data=value)


class FunctionEvent(ChainableEvent):
    """
    Wrap a plain callable as an event.

    The callable receives the EventContext. A returned Result is passed
    through; False becomes a failure; anything else is a success carrying
    the value as data.
    """

    def __init__(self, func, name=None, critical=False):
        """
        Initialize the FunctionEvent.

        Args:
            func: Callable taking the context
            name: Event name (default: the function's __name__)
            critical: Mark failures of this event as critical
        """
        self.func = func
        self._name = name or getattr(func, '__name__', 'FunctionEvent')
        self.critical = critical

    @property
    def name(self):
        return self._name

    def execute(self, context):
        return _to_result(self.func(context))

    def __repr__(self):
        return f"FunctionEvent({self._name})"


class RequireKeysEvent(ChainableEvent):
    """
    Validate that the context holds every required key.

    Fails with data={'missing': [...]} listing absent keys in the given order.
    """

    def __init__(self, *keys, critical=False):
        self.keys = keys
        self.critical = critical

    def execute(self, context):
        missing = [key for key in self.keys if not context.has(key)]
        if missing:
            return Result.fail(f"Missing required keys: {', '.join(map(str, missing))}",
                               data={'missing': missing})
        return Result.ok()


class FanOutEvent(ChainableEvent):
    """
    Run independent sub-tasks concurrently and join them all before returning.

    Each task is a callable taking the context and returning what a
    FunctionEvent would. Tasks must not write overlapping context keys.
    The event fails if any task fails or raises; the chain only ever sees
    the joined outcome.

    Sets in result data:
        - 'results': List of per-task Results, in task order
    """

    def __init__(self, *tasks, max_workers=None, name=None):
        """
        Initialize the FanOutEvent.

        Args:
            tasks: Callables taking the context
            max_workers: Thread pool size (default: one per task)
            name: Event name (default: class name)
        """
        self.tasks = tasks
        self.max_workers = max_workers
        self._name = name

    @property
    def name(self):
        return self._name or self.__class__.__name__

    def execute(self, context):
        if not self.tasks:
            return Result.ok(data={'results': []})

        workers = self.max_workers or len(self.tasks)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(task, context) for task in self.tasks]

        results = []
        errors = []
        for task, future in zip(self.tasks, futures):
            task_name = getattr(task, '__name__', repr(task))
            try:
                result = _to_result(future.result())
            except Exception as e:
                logger.warning("Fan-out task %s raised: %s", task_name, e)
                result = Result.fail(e)
            if not result.success:
                errors.append(f"{task_name}: {result.error}")
            results.append(result)

        if errors:
            return Result.fail('; '.join(errors), data={'results': results})
        return Result.ok(data={'results': results})


class SubChainEvent(ChainableEvent):
    """
    Run a nested EventChain against the same context.

    The nested chain's ChainResult is carried as the outcome's data. The
    outcome is critical when any nested failure was critical.
    """

    def __init__(self, chain, name=None):
        self.chain = chain
        self._name = name

    @property
    def name(self):
        return self._name or self.chain.name

    def execute(self, context):
        chain_result = self.chain.execute(context)
        if chain_result.success:
            return Result.ok(data=chain_result)
        error = chain_result.error
        if error is None:
            error = f"{self.name} halted"
        return Result.fail(
            error,
            data=chain_result,
            critical=any(failure.critical for failure in chain_result.failures),
        )
