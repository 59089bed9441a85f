import math
import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import networkx as nx
from networkx.algorithms import approximation as approx

from .evolutionary import Simulation
from .events import EventCallback, Iteration, NewChampion
from .geometry import Point, Route


@dataclass
class RunReport:
    route: Route
    length: float
    runtime: float
    gap: float
    solver_name: str
    iterations: int


def gap(length: float, reference: Optional[float]) -> float:
    if reference is None or math.isclose(reference, 0.0):
        return float("inf")
    return (length - reference) / reference


def complete_graph(points: Sequence[Point]) -> nx.Graph:
    graph = nx.Graph()
    graph.add_nodes_from(range(len(points)))
    for i, a in enumerate(points):
        for j in range(i + 1, len(points)):
            graph.add_edge(i, j, weight=a.distance(points[j]))
    return graph


def baseline_route(points: Sequence[Point]) -> Route:
    """Christofides-based open path from networkx, for comparison with the GA."""
    if len(points) <= 3:
        return Route.from_locations(points)
    order = approx.traveling_salesman_problem(
        complete_graph(points), weight="weight", cycle=False
    )
    seen = set()
    locations: List[Point] = []
    for node in order:
        if node not in seen:
            seen.add(node)
            locations.append(points[node])
    return Route.from_locations(locations)


def evaluate_simulation(
    simulation: Simulation,
    reference: Optional[float] = None,
    time_budget: Optional[float] = None,
    stop: Optional[threading.Event] = None,
    callback: Optional[EventCallback] = None,
) -> RunReport:
    if stop is None:
        stop = threading.Event()
    progress = {"iterations": 0}

    def on_event(event) -> None:
        if callback is not None:
            callback(event)
        if isinstance(event, Iteration):
            progress["iterations"] = max(progress["iterations"], event.count)
        elif isinstance(event, NewChampion):
            progress["iterations"] = max(progress["iterations"], event.iteration)

    timer = threading.Timer(time_budget, stop.set) if time_budget else None
    start = time.perf_counter()
    if timer:
        timer.start()
    try:
        route = simulation.run(stop, on_event)
    finally:
        if timer:
            timer.cancel()
    runtime = time.perf_counter() - start
    return RunReport(
        route=route,
        length=route.length,
        runtime=runtime,
        gap=gap(route.length, reference),
        solver_name=simulation.__class__.__name__,
        iterations=progress["iterations"],
    )


def aggregate_reports(reports: List[RunReport]) -> Dict[str, float]:
    if not reports:
        return {"length": float("inf"), "gap": float("inf"), "runtime": float("inf")}
    length = sum(r.length for r in reports) / len(reports)
    gap_ = sum(r.gap for r in reports if r.gap != float("inf")) / max(
        1, sum(1 for r in reports if r.gap != float("inf"))
    )
    runtime = sum(r.runtime for r in reports) / len(reports)
    return {"length": length, "best": min(r.length for r in reports), "gap": gap_, "runtime": runtime}
