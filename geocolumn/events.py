"""
Structural events reported by the grid, and their delivery to listeners.

Events are plain records. The grid collects the events of a step into a list,
returns it, and hands the same list to every registered listener before the
step returns.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Tuple, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SteepDensityGradientDetected:
    location: Tuple[int, int]
    depth_km: float
    gradient_magnitude: float  # kg/m³ between adjacent layers
    boundary_type: str


@dataclass(frozen=True)
class SignificantMaterialFluxDetected:
    source: Tuple[int, int]
    target: Tuple[int, int]
    depth_km: float
    flux_rate: float  # kg/(m²·s), magnitude


GridEvent = Union[SteepDensityGradientDetected, SignificantMaterialFluxDetected]
Listener = Callable[[GridEvent], None]


class EventDispatcher:
    """Synchronous fire-and-forget delivery to registered listeners."""

    def __init__(self, log: logging.Logger = logger):
        self._listeners: List[Listener] = []
        self.logger = log

    def add_listener(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    @property
    def listeners(self) -> List[Listener]:
        return list(self._listeners)

    def dispatch(self, events: List[GridEvent]) -> None:
        """Deliver each event to each listener; a failing listener is logged and skipped."""
        for event in events:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    self.logger.exception("Listener %r failed on %s", listener, type(event).__name__)
