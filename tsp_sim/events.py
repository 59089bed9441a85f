from dataclasses import dataclass
from typing import Callable, Union

from .geometry import Route


@dataclass(frozen=True)
class Started:
    pass


@dataclass(frozen=True)
class Iteration:
    count: int


@dataclass(frozen=True)
class NewChampion:
    route: Route
    iteration: int


@dataclass(frozen=True)
class Finished:
    pass


SimulationEvent = Union[Started, Iteration, NewChampion, Finished]
EventCallback = Callable[[SimulationEvent], None]
