import threading

import pytest

from tsp_sim.events import Finished, Iteration, NewChampion, Started
from tsp_sim.evolutionary import GeneticSimulation
from tsp_sim.geometry import Point, Route, path_length
from tsp_sim.parallel import EventFanIn, ParallelConfig, ParallelSimulation


def _square():
    return [Point("A", 0.0, 0.0), Point("B", 0.0, 10.0), Point("C", 10.0, 10.0), Point("D", 10.0, 0.0)]


def _scattered(n: int):
    return [Point(f"P{i}", float(i * 37 % 50), float(i * 23 % 41)) for i in range(n)]


def _config(points, **overrides) -> ParallelConfig:
    params = dict(
        locations=points,
        population_size=20,
        max_iterations=300,
        assume_convergence=100,
        report_interval=10,
        workers=2,
        random_seed=3,
    )
    params.update(overrides)
    return ParallelConfig(**params)


def _route(length: float) -> Route:
    return Route(locations=[Point("A", 0.0, 0.0), Point("B", 0.0, length)], length=length)


def test_fan_in_announces_start_once_all_workers_started() -> None:
    events = []
    fan_in = EventFanIn(3, events.append)
    fan_in.handle(0, Started())
    fan_in.handle(2, Started())
    assert events == []
    fan_in.handle(1, Started())
    assert events == [Started()]


def test_fan_in_sums_latest_iterations() -> None:
    events = []
    fan_in = EventFanIn(2, events.append)
    fan_in.handle(0, Started())
    fan_in.handle(1, Started())
    fan_in.handle(0, Iteration(10))
    fan_in.handle(1, Iteration(5))
    fan_in.handle(0, Iteration(20))

    assert events[1:] == [Iteration(10), Iteration(15), Iteration(25)]


def test_fan_in_forwards_only_strictly_shorter_champions() -> None:
    events = []
    fan_in = EventFanIn(2, events.append)
    fan_in.handle(0, Started())
    fan_in.handle(1, Started())
    first, tie, better = _route(10.0), _route(10.0), _route(5.0)

    fan_in.handle(0, NewChampion(first, 0))
    fan_in.handle(1, NewChampion(tie, 0))
    fan_in.handle(1, NewChampion(better, 40))

    assert events[1:] == [NewChampion(first, 0), Iteration(40), NewChampion(better, 40)]
    assert fan_in.champion is better


def test_fan_in_reports_iterations_carried_by_champions() -> None:
    events = []
    fan_in = EventFanIn(2, events.append)
    fan_in.handle(0, Started())
    fan_in.handle(1, Started())
    fan_in.handle(0, NewChampion(_route(5.0), 0))
    fan_in.handle(1, Iteration(30))
    fan_in.handle(1, NewChampion(_route(8.0), 45))
    fan_in.handle(1, NewChampion(_route(9.0), 45))

    assert events[1:] == [NewChampion(_route(5.0), 0), Iteration(30), Iteration(45)]
    assert fan_in.total_iterations == 45


def test_fan_in_holds_progress_until_started() -> None:
    events = []
    fan_in = EventFanIn(2, events.append)
    route = _route(7.0)
    fan_in.handle(0, Started())
    fan_in.handle(0, NewChampion(route, 0))
    fan_in.handle(0, Iteration(1000))
    assert events == []

    fan_in.handle(1, Started())
    assert events == [Started(), NewChampion(route, 1000)]


def test_fan_in_counts_finished_workers() -> None:
    fan_in = EventFanIn(2, lambda event: None)
    fan_in.handle(0, Finished())
    assert not fan_in.all_finished
    fan_in.handle(1, Finished())
    assert fan_in.all_finished


def test_worker_configs_get_distinct_seeds() -> None:
    cfg = _config(_square(), random_seed=10, workers=3)
    assert [cfg.worker_config(i).random_seed for i in range(3)] == [10, 11, 12]
    assert cfg.worker_config(1).locations == cfg.locations
    unseeded = _config(_square(), random_seed=None)
    assert unseeded.worker_config(1).random_seed is None


def test_two_workers_find_square_optimum() -> None:
    events = []
    route = ParallelSimulation(_config(_square())).run(threading.Event(), events.append)

    assert route.length == 30.0
    assert sorted(route.names) == ["A", "B", "C", "D"]

    kinds = [type(e) for e in events]
    assert kinds[0] is Started and kinds.count(Started) == 1
    assert kinds[-1] is Finished and kinds.count(Finished) == 1

    counts = [e.count for e in events if isinstance(e, Iteration)]
    assert counts == sorted(counts)
    assert counts[-1] <= 2 * 300

    lengths = [e.route.length for e in events if isinstance(e, NewChampion)]
    assert lengths
    assert all(b < a for a, b in zip(lengths, lengths[1:]))
    assert lengths[-1] == route.length


def test_single_worker_orchestration() -> None:
    events = []
    route = ParallelSimulation(_config(_scattered(8), workers=1)).run(threading.Event(), events.append)
    assert sorted(route.names) == sorted(p.name for p in _scattered(8))
    assert [type(e) for e in events][0] is Started
    assert events[-1] == Finished()


def test_degenerate_points_across_workers() -> None:
    points = [Point("A", 0.0, 0.0), Point("B", 0.0, 10.0)]
    events = []
    route = ParallelSimulation(_config(points, workers=3)).run(threading.Event(), events.append)

    assert route.length == 10.0
    assert events == [Started(), NewChampion(Route.from_locations(points), 0), Finished()]


def test_cancelled_before_start_still_finishes() -> None:
    points = _scattered(10)
    stop = threading.Event()
    stop.set()
    events = []
    cfg = _config(points, max_iterations=None, assume_convergence=None, workers=3)

    route = ParallelSimulation(cfg).run(stop, events.append)

    assert sorted(route.names) == sorted(p.name for p in points)
    assert route.length == pytest.approx(path_length(route.locations))
    kinds = [type(e) for e in events]
    assert kinds[0] is Started and kinds.count(Started) == 1
    assert kinds[-1] is Finished and kinds.count(Finished) == 1
    assert NewChampion in kinds


def test_cancel_during_run_stops_every_worker() -> None:
    stop = threading.Event()
    events = []

    def on_event(event):
        events.append(event)
        if isinstance(event, Iteration) and event.count >= 20:
            stop.set()

    cfg = _config(_scattered(12), max_iterations=None, assume_convergence=None, report_interval=5)
    route = ParallelSimulation(cfg).run(stop, on_event)

    assert events[-1] == Finished()
    champions = [e for e in events if isinstance(e, NewChampion)]
    assert route.length <= champions[-1].route.length


def test_invalid_configuration_raises_before_any_event() -> None:
    events = []
    for cfg in (_config(_square(), workers=0), _config(_square(), population_size=7)):
        with pytest.raises(ValueError):
            ParallelSimulation(cfg).run(threading.Event(), events.append)
    assert events == []


def test_worker_failure_reaches_the_caller(monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(self, stop, callback):
        raise RuntimeError("worker crashed")

    monkeypatch.setattr(GeneticSimulation, "run", boom)
    with pytest.raises(RuntimeError, match="worker crashed"):
        ParallelSimulation(_config(_square())).run(threading.Event(), lambda event: None)


def test_callback_failure_stops_workers() -> None:
    def on_event(event):
        raise KeyError("display gone")

    cfg = _config(_scattered(10), max_iterations=None, assume_convergence=None)
    with pytest.raises(KeyError):
        ParallelSimulation(cfg).run(threading.Event(), on_event)
