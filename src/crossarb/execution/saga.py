"""
Explicit state machine for one arbitrage execution.

The orchestrator drives an execution by feeding events into
``transition``; every state visited is kept in a ``SagaTrace`` and
returned with the result.

Transfer strategy:
    VALIDATING -> (SKIP_BUY | BUYING) -> TRANSFERRING -> SELLING -> SETTLED_*

Hedged strategy:
    VALIDATING -> BUYING -> HEDGING -> [ROLLING_BACK] -> SETTLED_*
"""

from dataclasses import dataclass, field
from enum import Enum


class SagaState(str, Enum):
    """Execution states."""

    VALIDATING = "validating"
    SKIP_BUY = "skip_buy"
    BUYING = "buying"
    TRANSFERRING = "transferring"
    SELLING = "selling"
    HEDGING = "hedging"
    ROLLING_BACK = "rolling_back"
    SETTLED_SUCCESS = "settled_success"
    SETTLED_FAILED = "settled_failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SagaState.SETTLED_SUCCESS, SagaState.SETTLED_FAILED)


class SagaEvent(str, Enum):
    """Inputs that move an execution forward."""

    VALIDATED = "validated"
    ASSET_HELD = "asset_held"
    HEDGE_REQUIRED = "hedge_required"  # buy filled on the hedged path
    ACQUIRED = "acquired"  # bought, or already held
    TRANSFERRED = "transferred"
    SOLD = "sold"
    HEDGES_FAILED = "hedges_failed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


class InvalidTransitionError(ValueError):
    """Event not accepted in the current state."""

    def __init__(self, state: SagaState, event: SagaEvent) -> None:
        super().__init__(f"event '{event.value}' not allowed in state '{state.value}'")
        self.state = state
        self.event = event


TRANSITIONS: dict[SagaState, dict[SagaEvent, SagaState]] = {
    SagaState.VALIDATING: {
        SagaEvent.VALIDATED: SagaState.BUYING,
        SagaEvent.ASSET_HELD: SagaState.SKIP_BUY,
    },
    SagaState.SKIP_BUY: {
        SagaEvent.ACQUIRED: SagaState.TRANSFERRING,
    },
    SagaState.BUYING: {
        SagaEvent.ACQUIRED: SagaState.TRANSFERRING,
        SagaEvent.HEDGE_REQUIRED: SagaState.HEDGING,
    },
    SagaState.TRANSFERRING: {
        SagaEvent.TRANSFERRED: SagaState.SELLING,
    },
    SagaState.SELLING: {
        SagaEvent.SOLD: SagaState.SETTLED_SUCCESS,
    },
    SagaState.HEDGING: {
        SagaEvent.SOLD: SagaState.SETTLED_SUCCESS,
        SagaEvent.HEDGES_FAILED: SagaState.ROLLING_BACK,
    },
    SagaState.ROLLING_BACK: {
        SagaEvent.ROLLED_BACK: SagaState.SETTLED_FAILED,
    },
}

# Compensating action owed when a state fails
COMPENSATIONS: dict[SagaState, str | None] = {
    SagaState.VALIDATING: None,
    SagaState.SKIP_BUY: None,
    SagaState.BUYING: None,
    SagaState.TRANSFERRING: None,  # bought asset stays on the buy exchange
    SagaState.SELLING: None,
    SagaState.HEDGING: "reverse the buy leg",
    SagaState.ROLLING_BACK: None,
}


def compensation_for(state: SagaState) -> str | None:
    """Compensating action owed when ``state`` fails, if any."""
    return COMPENSATIONS.get(state)


def transition(state: SagaState, event: SagaEvent) -> SagaState:
    """
    Next state for an event.

    ``FAILED`` settles any non-terminal state.

    Raises:
        InvalidTransitionError: If the event is not valid in ``state``.
    """
    if state.is_terminal:
        raise InvalidTransitionError(state, event)
    if event is SagaEvent.FAILED:
        return SagaState.SETTLED_FAILED
    try:
        return TRANSITIONS[state][event]
    except KeyError:
        raise InvalidTransitionError(state, event) from None


@dataclass
class SagaTrace:
    """Ordered record of the states one execution visited."""

    state: SagaState = SagaState.VALIDATING
    history: list[SagaState] = field(default_factory=lambda: [SagaState.VALIDATING])

    def advance(self, event: SagaEvent) -> SagaState:
        self.state = transition(self.state, event)
        self.history.append(self.state)
        return self.state

    def fail(self) -> SagaState:
        """Settle as failed unless already settled."""
        if not self.state.is_terminal:
            self.advance(SagaEvent.FAILED)
        return self.state

    @property
    def settled(self) -> bool:
        return self.state.is_terminal

    def as_tuple(self) -> tuple[str, ...]:
        return tuple(state.value for state in self.history)
