"""Selection session states and the transitions allowed between them."""

from __future__ import annotations

from enum import Enum


class SelectionState(str, Enum):
    """A session is either waiting for a command or waiting for a click."""

    IDLE = "IDLE"
    SELECTING = "SELECTING"


# Starting over while selecting goes through IDLE first.
VALID_TRANSITIONS: dict[SelectionState, set[SelectionState]] = {
    SelectionState.IDLE: {SelectionState.SELECTING},
    SelectionState.SELECTING: {SelectionState.IDLE},
}


def can_transition(current: SelectionState, target: SelectionState) -> bool:
    return target in VALID_TRANSITIONS[current]
