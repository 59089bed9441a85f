import concurrent.futures
import copy
import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .evolutionary import GeneticSimulation, Simulation, SimulationConfig
from .events import EventCallback, Finished, Iteration, NewChampion, SimulationEvent, Started
from .geometry import Route


logger = logging.getLogger(__name__)


@dataclass
class ParallelConfig(SimulationConfig):
    population_size: int = 200
    workers: int = 4
    poll_interval: float = 0.001

    def validate(self) -> None:
        super().validate()
        if self.workers < 1:
            raise ValueError(f"workers must be at least 1, got {self.workers}")
        if self.poll_interval < 0:
            raise ValueError("poll_interval must not be negative")

    def worker_config(self, index: int) -> SimulationConfig:
        worker_cfg = copy.deepcopy(self)
        if self.random_seed is not None:
            worker_cfg.random_seed = self.random_seed + index
        return worker_cfg


class EventFanIn:
    """
    Folds the event streams of several workers into one ordered stream.

    ``Started`` goes out once every worker has started, iteration counts are
    the sum of each worker's latest count, and only strictly shorter champions
    are forwarded. Progress seen before ``Started`` is held back.
    """

    def __init__(self, workers: int, callback: EventCallback):
        self.workers = workers
        self.callback = callback
        self.iterations: List[int] = [0] * workers
        self.started = 0
        self.finished = 0
        self.announced = False
        self.champion: Optional[Route] = None

    @property
    def total_iterations(self) -> int:
        return sum(self.iterations)

    @property
    def all_finished(self) -> bool:
        return self.finished >= self.workers

    def handle(self, worker: int, event: SimulationEvent) -> None:
        if isinstance(event, Started):
            self.started += 1
            if self.started >= self.workers and not self.announced:
                self.announced = True
                self.callback(Started())
                if self.champion is not None:
                    self.callback(NewChampion(self.champion, self.total_iterations))
        elif isinstance(event, Iteration):
            self.iterations[worker] = max(self.iterations[worker], event.count)
            if self.announced:
                self.callback(Iteration(self.total_iterations))
        elif isinstance(event, NewChampion):
            if event.iteration > self.iterations[worker]:
                self.iterations[worker] = event.iteration
                if self.announced:
                    self.callback(Iteration(self.total_iterations))
            self.offer(event.route)
        elif isinstance(event, Finished):
            self.finished += 1

    def offer(self, route: Route) -> bool:
        if self.champion is not None and route.length >= self.champion.length:
            return False
        self.champion = route
        if self.announced:
            self.callback(NewChampion(route, self.total_iterations))
        return True

    def drain(self, channels: Sequence["queue.Queue[SimulationEvent]"]) -> int:
        # Bounded per channel so a chatty worker cannot starve the others.
        handled = 0
        for index, channel in enumerate(channels):
            for _ in range(channel.qsize()):
                try:
                    event = channel.get_nowait()
                except queue.Empty:
                    break
                self.handle(index, event)
                handled += 1
        return handled


class ParallelSimulation(Simulation):
    """
    Runs ``config.workers`` independent genetic searches on threads and merges
    their progress into a single event stream.

    The caller's callback is only ever invoked from the thread calling ``run``.
    """

    name = "parallel"

    def __init__(self, config: ParallelConfig):
        self.cfg = config

    def run(self, stop: threading.Event, callback: EventCallback) -> Route:
        cfg = self.cfg
        cfg.validate()
        n = cfg.workers
        fan_in = EventFanIn(n, callback)
        channels: List["queue.Queue[SimulationEvent]"] = [queue.Queue() for _ in range(n)]
        flags = [threading.Event() for _ in range(n)]
        workers = [
            GeneticSimulation(cfg.worker_config(i), label=f"worker-{i}") for i in range(n)
        ]
        logger.info("starting %d workers over %d locations", n, len(cfg.locations))

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=n, thread_name_prefix="tsp-sim-worker"
        ) as ex:
            futures = [
                ex.submit(worker.run, flag, channel.put)
                for worker, flag, channel in zip(workers, flags, channels)
            ]
            try:
                self._aggregate(stop, fan_in, channels, futures)
            finally:
                for flag in flags:
                    flag.set()
                concurrent.futures.wait(futures)
            routes = [f.result() for f in futures]

        # Events queued while the workers were winding down.
        fan_in.drain(channels)
        best = min(routes, key=lambda r: r.length)
        fan_in.offer(best)
        logger.info(
            "all workers joined, best length=%.3f, total iterations=%d",
            best.length,
            fan_in.total_iterations,
        )
        callback(Finished())
        return best

    def _aggregate(
        self,
        stop: threading.Event,
        fan_in: EventFanIn,
        channels: Sequence["queue.Queue[SimulationEvent]"],
        futures: Sequence[concurrent.futures.Future],
    ) -> None:
        while not stop.is_set():
            handled = fan_in.drain(channels)
            if fan_in.all_finished or all(f.done() for f in futures):
                return
            if not handled:
                time.sleep(self.cfg.poll_interval)
        logger.debug("stop requested; signalling %d workers", len(futures))
