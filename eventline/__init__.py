"""
eventline - Sequential workflows with composable middleware

eventline runs a fixed, ordered list of events against a shared context:
- Events represent individual steps in a process
- Context carries shared state between events
- Middleware adds reusable behaviors around event execution
- A fault tolerance policy decides whether the chain continues after a failure
- The chain orchestrates the sequential flow and reports a ChainResult

Example:
    from eventline import EventChain, ChainableEvent, EventContext, Result

    class MyEvent(ChainableEvent):
        def execute(self, context):
            value = context.get('input')
            context.set('output', value * 2)
            return Result.ok()

    chain = EventChain()
    chain.add_event(MyEvent())

    result = chain.execute(EventContext({'input': 5}))
    print(result.context.get('output'))  # 10
"""

import logging

__version__ = "1.0.0"
__author__ = "eventline Contributors"

from .chain import EventChain
from .context import EventContext
from .event import ChainableEvent, event_name
from .exceptions import (
    ChainStateError,
    ConfigurationError,
    ContractViolation,
    EventChainError,
    EventContractError,
    KeyNotFound,
    MiddlewareContractError,
    PolicyDecisionError,
)
from .middleware import Middleware
from .pipeline import build_pipeline
from .policy import (
    BestEffortPolicy,
    CustomPolicy,
    ExecutionState,
    FaultTolerance,
    LenientPolicy,
    Policy,
    StrictPolicy,
    Verdict,
    resolve_policy,
)
from .result import ChainResult, ChainStatus, EventFailure, Result

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    'EventChain',
    'EventContext',
    'ChainableEvent',
    'event_name',
    'Middleware',
    'Result',
    'ChainResult',
    'ChainStatus',
    'EventFailure',
    'build_pipeline',

    # Fault tolerance
    'FaultTolerance',
    'Verdict',
    'ExecutionState',
    'Policy',
    'StrictPolicy',
    'LenientPolicy',
    'BestEffortPolicy',
    'CustomPolicy',
    'resolve_policy',

    # Errors
    'EventChainError',
    'ConfigurationError',
    'ChainStateError',
    'KeyNotFound',
    'ContractViolation',
    'MiddlewareContractError',
    'EventContractError',
    'PolicyDecisionError',
]
