from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Sequence, Tuple


class Direction(IntEnum):
    """Sign of the exposure requested by an action."""

    FLAT = 0
    LONG = 1
    SHORT = -1


@dataclass(frozen=True)
class ActionSpec:
    """One entry of the static action enumeration."""

    index: int
    direction: Direction
    magnitude: float

    @property
    def is_hold(self) -> bool:
        return self.direction is Direction.FLAT

    @property
    def name(self) -> str:
        if self.is_hold:
            return "HOLD"
        return f"{self.direction.name}({self.magnitude:g})"


def build_action_set(sizes: Sequence[float]) -> Tuple[ActionSpec, ...]:
    """Return ``HOLD`` followed by one LONG and one SHORT per size.

    The order is fixed for the whole session so that column ``i`` of every
    value table always refers to the same action.
    """

    actions = [ActionSpec(0, Direction.FLAT, 0.0)]
    for size in sizes:
        actions.append(ActionSpec(len(actions), Direction.LONG, float(size)))
    for size in sizes:
        actions.append(ActionSpec(len(actions), Direction.SHORT, float(size)))
    return tuple(actions)
