import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import numpy as np
import tsplib95

from .geometry import Point, Route, path_length


@dataclass
class Instance:
    name: str
    path: Optional[Path]
    points: List[Point]
    reference: Optional[float] = None


def _solution_candidates(path: Path) -> Iterable[Path]:
    yield path.with_suffix(".opt.tour")
    for ext in (".opt.tour", ".opt", ".tour"):
        yield path.parent / "solutions" / f"{path.stem}{ext}"


def _load_reference(points: Sequence[Point], path: Path) -> Optional[float]:
    # Open-path length of a published tour, when one sits next to the instance.
    by_name = {p.name: p for p in points}
    for candidate in _solution_candidates(path):
        if not candidate.exists():
            continue
        try:
            tour_file = tsplib95.parse(candidate.read_text())
            nodes = [str(n) for n in tour_file.tours[0]]
        except Exception:
            continue
        if sorted(nodes) != sorted(by_name):
            continue
        return path_length([by_name[n] for n in nodes])
    return None


def load_tsplib(path: Path) -> Instance:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)
    problem = tsplib95.load(path)
    if not problem.node_coords:
        raise ValueError(f"{path} has no NODE_COORD_SECTION")
    points = [
        Point(name=str(node), x=float(coords[0]), y=float(coords[1]))
        for node, coords in sorted(problem.node_coords.items())
    ]
    return Instance(
        name=problem.name or path.stem,
        path=path,
        points=points,
        reference=_load_reference(points, path),
    )


def parse_points(items) -> List[Point]:
    if not isinstance(items, list):
        raise ValueError("expected a list of {name, x, y} objects")
    points: List[Point] = []
    seen = set()
    for idx, item in enumerate(items):
        try:
            name = str(item["name"])
            x = float(item["x"])
            y = float(item["y"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"point #{idx} is malformed: {item!r}") from exc
        if not np.isfinite([x, y]).all():
            raise ValueError(f"point {name!r} has non-finite coordinates")
        if name in seen:
            raise ValueError(f"duplicate point name {name!r}")
        seen.add(name)
        points.append(Point(name=name, x=x, y=y))
    return points


def load_points_json(path: Path) -> List[Point]:
    path = Path(path)
    try:
        items = json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc
    return parse_points(items)


def load_instance(path: Path) -> Instance:
    path = Path(path)
    if path.suffix.lower() == ".tsp":
        return load_tsplib(path)
    return Instance(name=path.stem, path=path, points=load_points_json(path))


def random_points(count: int, seed: Optional[int] = None, extent: float = 100.0) -> List[Point]:
    if count < 0:
        raise ValueError("count must not be negative")
    rng = np.random.default_rng(seed)
    coords = rng.uniform(0.0, extent, size=(count, 2))
    return [Point(name=f"P{i}", x=float(x), y=float(y)) for i, (x, y) in enumerate(coords)]


def save_route(route: Route, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(route.to_dict(), indent=2))
