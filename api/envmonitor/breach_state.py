"""
Edge detection over per-cycle breach flags.

Each BreachKey gets its own EdgeLatch: set when its condition turns true,
released the moment it turns false. There is no hysteresis and no
coupling between keys. Only the rising edge is reported; clearing is
silent.

A flag that is False because the reading was indeterminate releases the
latch like any other False, so a sensor dropout resets the breach and the
next out-of-bounds sample raises a fresh incident.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping

from .models import BreachKey

logger = logging.getLogger(__name__)


class Edge(str, Enum):
    ENTERING = "entering"


@dataclass(frozen=True)
class BreachEdge:
    key: BreachKey
    edge: Edge = Edge.ENTERING


class EdgeLatch:
    __slots__ = ("active",)

    def __init__(self) -> None:
        self.active = False

    def update(self, flag: bool) -> bool:
        """Feed the current flag; True only on a False -> True transition."""
        entering = flag and not self.active
        self.active = bool(flag)
        return entering


class BreachTracker:
    def __init__(self, keys: Iterable[BreachKey] = tuple(BreachKey)) -> None:
        self._latches: Dict[BreachKey, EdgeLatch] = {k: EdgeLatch() for k in keys}

    @property
    def active(self) -> FrozenSet[BreachKey]:
        return frozenset(k for k, latch in self._latches.items() if latch.active)

    def update(self, flags: Mapping[BreachKey, bool]) -> List[BreachEdge]:
        events: List[BreachEdge] = []
        for key, latch in self._latches.items():
            was_active = latch.active
            if latch.update(flags.get(key, False)):
                logger.info("breach entered: %s", key.value)
                events.append(BreachEdge(key))
            elif was_active and not latch.active:
                logger.debug("breach cleared: %s", key.value)
        return events

    def reset(self) -> None:
        for latch in self._latches.values():
            latch.active = False
