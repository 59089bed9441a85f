import math
from dataclasses import dataclass, field
from typing import Dict, List, Sequence


@dataclass(frozen=True)
class Point:
    name: str
    x: float
    y: float

    def distance(self, other: "Point") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def to_dict(self) -> Dict:
        return {"name": self.name, "x": self.x, "y": self.y}


def path_length(locations: Sequence[Point]) -> float:
    # Open path: the last point does not connect back to the first.
    dist = 0.0
    for i in range(len(locations) - 1):
        dist += locations[i].distance(locations[i + 1])
    return float(dist)


@dataclass
class Route:
    """
    Ordered visit of every point plus its cached path length.

    Anything that reorders ``locations`` must call ``refresh`` before the route
    is ranked again.
    """

    locations: List[Point] = field(default_factory=list)
    length: float = 0.0

    @classmethod
    def from_locations(cls, locations: Sequence[Point]) -> "Route":
        locations = list(locations)
        return cls(locations=locations, length=path_length(locations))

    def refresh(self) -> "Route":
        self.length = path_length(self.locations)
        return self

    def swap(self, i: int, j: int) -> None:
        self.locations[i], self.locations[j] = self.locations[j], self.locations[i]

    def copy(self) -> "Route":
        return Route(locations=self.locations[:], length=self.length)

    @property
    def names(self) -> List[str]:
        return [p.name for p in self.locations]

    def __len__(self) -> int:
        return len(self.locations)

    def to_dict(self) -> Dict:
        return {
            "length": self.length,
            "locations": [p.to_dict() for p in self.locations],
        }
