import random
from typing import List, Sequence, Tuple

from .geometry import Point, Route


# (weight, fraction of route positions swapped); a zero fraction still swaps once.
MutationCascade = Sequence[Tuple[float, float]]

DEFAULT_MUTATION_CASCADE: Tuple[Tuple[float, float], ...] = (
    (0.55, 0.0),
    (0.25, 0.05),
    (0.15, 0.15),
    (0.05, 0.35),
)


def random_route(points: Sequence[Point], rng: random.Random) -> Route:
    locations = list(points)
    rng.shuffle(locations)
    return Route.from_locations(locations)


def initial_population(points: Sequence[Point], size: int, rng: random.Random) -> List[Route]:
    return [random_route(points, rng) for _ in range(size)]


def select_mating_pool(
    population: Sequence[Route], pool_size: int, rng: random.Random, attempts: int = 10
) -> List[Route]:
    """
    Pick the ``pool_size - 1`` shortest distinct routes in ascending order and
    append one route drawn at random from the population.

    The random slot prefers a route not already in the pool; after ``attempts``
    misses the last draw is kept anyway.
    """
    elite_size = pool_size - 1
    pool: List[Route] = []
    for route in population:
        if len(pool) == elite_size and route.length >= pool[-1].length:
            continue
        if route in pool:
            continue
        pos = len(pool)
        for k, mate in enumerate(pool):
            if route.length < mate.length:
                pos = k
                break
        pool.insert(pos, route)
        del pool[elite_size:]
    while len(pool) < elite_size:
        # Fewer distinct routes than elite slots (tiny point sets).
        pool.append(pool[-1])

    pick = population[0]
    for _ in range(max(1, attempts)):
        pick = rng.choice(population)
        if pick not in pool:
            break
    pool.append(pick)
    return pool


def dna_slice_bounds(length: int, rng: random.Random, max_fraction: float = 0.5) -> Tuple[int, int]:
    if length <= 4:
        floor = 1
    elif length <= 10:
        floor = 2
    else:
        floor = 3
    if length <= floor:
        return 0, length
    start = rng.randrange(0, length - floor)
    upper = int(length * max_fraction) + floor
    size = rng.randrange(floor, upper) if upper > floor else floor
    return start, min(start + size, length)


def crossover(
    parent_x: Route,
    parent_y: Route,
    rng: random.Random,
    early_splice_probability: float = 0.05,
    max_slice_fraction: float = 0.5,
) -> Route:
    """
    Order-preserving recombination: a contiguous slice of ``parent_x`` is
    spliced, as a unit, into the order of ``parent_y``.

    The slice lands where its first point sits in ``parent_y``. With
    ``early_splice_probability`` per child it lands instead at a uniformly
    chosen earlier position.
    """
    start, end = dna_slice_bounds(len(parent_x), rng, max_slice_fraction)
    dna = parent_x.locations[start:end]
    in_dna = set(dna)
    rest: List[Point] = []
    natural = 0
    for loc in parent_y.locations:
        if loc == dna[0]:
            natural = len(rest)
        if loc not in in_dna:
            rest.append(loc)
    pos = natural
    if natural > 0 and rng.random() < early_splice_probability:
        pos = rng.randrange(natural)
    return Route.from_locations(rest[:pos] + dna + rest[pos:])


def breed(
    mating_pool: Sequence[Route],
    count: int,
    rng: random.Random,
    early_splice_probability: float = 0.05,
    max_slice_fraction: float = 0.5,
) -> List[Route]:
    # Consecutive pairs of a reshuffled copy of the pool, until enough children.
    children: List[Route] = []
    couples = list(mating_pool)
    while len(children) < count:
        for x, y in zip(couples, couples[1:]):
            children.append(crossover(x, y, rng, early_splice_probability, max_slice_fraction))
            if len(children) >= count:
                break
        rng.shuffle(couples)
    return children


def mutation_swaps(length: int, rng: random.Random, cascade: MutationCascade = DEFAULT_MUTATION_CASCADE) -> int:
    weights = [w for w, _ in cascade]
    _, fraction = rng.choices(list(cascade), weights=weights)[0]
    return max(1, int(round(fraction * length)))


def mutate(route: Route, rng: random.Random, cascade: MutationCascade = DEFAULT_MUTATION_CASCADE) -> Route:
    n = len(route)
    if n < 2:
        return route
    for _ in range(mutation_swaps(n, rng, cascade)):
        route.swap(rng.randrange(n), rng.randrange(n))
    return route.refresh()


def mutate_population(
    routes: Sequence[Route],
    threshold: float,
    rng: random.Random,
    cascade: MutationCascade = DEFAULT_MUTATION_CASCADE,
) -> int:
    """Mutate, in place, every route longer than ``threshold``; returns how many."""
    mutated = 0
    for route in routes:
        if route.length > threshold:
            mutate(route, rng, cascade)
            mutated += 1
    return mutated
