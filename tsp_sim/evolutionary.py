import logging
import random
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .events import EventCallback, Finished, Iteration, NewChampion, Started
from .geometry import Point, Route
from .operators import (
    DEFAULT_MUTATION_CASCADE,
    breed,
    initial_population,
    mutate_population,
    select_mating_pool,
)


logger = logging.getLogger(__name__)

MIN_POOL_SIZE = 5


@dataclass
class SimulationConfig:
    locations: List[Point] = field(default_factory=list)
    population_size: int = 100
    max_iterations: Optional[int] = 100_000
    assume_convergence: Optional[int] = 25_000
    pool_size: int = 7
    seed_size: int = 7
    early_splice_probability: float = 0.05
    max_slice_fraction: float = 0.5
    mutation_cascade: Tuple[Tuple[float, float], ...] = DEFAULT_MUTATION_CASCADE
    selection_attempts: int = 10
    report_interval: int = 1000
    random_seed: Optional[int] = None

    def validate(self) -> None:
        if self.pool_size < MIN_POOL_SIZE:
            raise ValueError(f"pool_size must be at least {MIN_POOL_SIZE}, got {self.pool_size}")
        if self.population_size <= self.pool_size:
            raise ValueError(
                f"population_size ({self.population_size}) must exceed pool_size ({self.pool_size})"
            )
        for name in ("max_iterations", "assume_convergence"):
            value = getattr(self, name)
            if value is not None and value < 1:
                raise ValueError(f"{name} must be positive when set, got {value}")
        if (
            self.max_iterations is not None
            and self.assume_convergence is not None
            and self.max_iterations <= self.assume_convergence
        ):
            raise ValueError(
                f"max_iterations ({self.max_iterations}) must exceed "
                f"assume_convergence ({self.assume_convergence})"
            )
        if self.seed_size < 0:
            raise ValueError("seed_size must not be negative")
        for name in ("early_splice_probability", "max_slice_fraction"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must lie in [0, 1], got {value}")
        if not self.mutation_cascade:
            raise ValueError("mutation_cascade must not be empty")
        for weight, fraction in self.mutation_cascade:
            if weight < 0 or not 0.0 <= fraction <= 1.0:
                raise ValueError(f"invalid mutation_cascade entry ({weight}, {fraction})")
        if sum(w for w, _ in self.mutation_cascade) <= 0:
            raise ValueError("mutation_cascade weights must not all be zero")
        if self.selection_attempts < 1:
            raise ValueError("selection_attempts must be at least 1")
        if self.report_interval < 1:
            raise ValueError("report_interval must be at least 1")
        if len(set(self.locations)) != len(self.locations):
            raise ValueError("locations must not contain duplicate points")


class Simulation(ABC):
    name: str = "base"

    @abstractmethod
    def run(self, stop: threading.Event, callback: EventCallback) -> Route:
        raise NotImplementedError


class GeneticSimulation(Simulation):
    """
    One genetic-algorithm search over open paths through ``config.locations``.

    ``run`` emits ``Started``, then ``NewChampion``/``Iteration`` in generation
    order, then ``Finished``, and returns the shortest route found. ``stop`` is
    checked once per generation.
    """

    name = "genetic"

    def __init__(self, config: SimulationConfig, rng: random.Random = None, label: str = "worker"):
        self.cfg = config
        self.rng = rng or random.Random(config.random_seed)
        self.label = label

    def run(self, stop: threading.Event, callback: EventCallback) -> Route:
        cfg = self.cfg
        cfg.validate()
        callback(Started())

        if len(cfg.locations) <= 2:
            champion = Route.from_locations(cfg.locations)
            callback(NewChampion(champion.copy(), 0))
            callback(Finished())
            return champion

        logger.info(
            "%s: starting with %d locations, population=%d, max_iterations=%s, assume_convergence=%s",
            self.label,
            len(cfg.locations),
            cfg.population_size,
            cfg.max_iterations,
            cfg.assume_convergence,
        )
        population = initial_population(cfg.locations, cfg.population_size, self.rng)
        mating_pool = self.select(population)
        champion = mating_pool[0]
        callback(NewChampion(champion.copy(), 0))

        iteration = 0
        stale = 0
        while not stop.is_set():
            iteration += 1
            population = self.next_generation(mating_pool)
            mating_pool = self.select(population)
            if mating_pool[0].length < champion.length:
                champion = mating_pool[0]
                stale = 0
                logger.debug("%s: champion %.3f at iteration %d", self.label, champion.length, iteration)
                callback(NewChampion(champion.copy(), iteration))
            else:
                stale += 1
            if iteration % cfg.report_interval == 0:
                callback(Iteration(iteration))
            if cfg.max_iterations is not None and iteration >= cfg.max_iterations:
                break
            if cfg.assume_convergence is not None and stale >= cfg.assume_convergence:
                break
        else:
            logger.debug("%s: stop requested after %d iterations", self.label, iteration)

        if iteration % cfg.report_interval:
            callback(Iteration(iteration))
        logger.info("%s: finished after %d iterations, length=%.3f", self.label, iteration, champion.length)
        callback(Finished())
        return champion.copy()

    def select(self, population: List[Route]) -> List[Route]:
        return select_mating_pool(population, self.cfg.pool_size, self.rng, self.cfg.selection_attempts)

    def next_generation(self, mating_pool: List[Route]) -> List[Route]:
        cfg = self.cfg
        survivors = len(mating_pool)
        seed_count = min(cfg.seed_size, cfg.population_size - survivors)
        children_count = cfg.population_size - survivors - seed_count

        seeds = [mating_pool[i % survivors].copy() for i in range(seed_count)]
        mutate_population(seeds, float("-inf"), self.rng, cfg.mutation_cascade)

        children = breed(
            mating_pool,
            children_count,
            self.rng,
            early_splice_probability=cfg.early_splice_probability,
            max_slice_fraction=cfg.max_slice_fraction,
        )
        # The last slot is the random pick, so the weakest elite sets the bar.
        mutate_population(children, mating_pool[-2].length, self.rng, cfg.mutation_cascade)

        return seeds + children + list(mating_pool)
