import argparse
import concurrent.futures
import logging
import threading
import time
from pathlib import Path
from typing import List, Optional

from tsp_sim.data import Instance, load_instance, random_points, save_route
from tsp_sim.evaluation import RunReport, aggregate_reports, baseline_route, evaluate_simulation, gap
from tsp_sim.events import Finished, Iteration, NewChampion, Started
from tsp_sim.evolutionary import GeneticSimulation, Simulation
from tsp_sim.parallel import ParallelConfig, ParallelSimulation


def log(msg: str) -> None:
    ts = time.strftime("%H:%M:%S")
    print(f"[{ts}] {msg}", flush=True)


class ProgressPrinter:
    def __init__(self, quiet: bool = False):
        self.quiet = quiet
        self.iterations = 0
        self.champion_iteration = 0

    def __call__(self, event) -> None:
        if isinstance(event, Started):
            log("simulation started")
        elif isinstance(event, Iteration):
            self.iterations = event.count
            if not self.quiet:
                log(f"iterations={event.count:06d}")
        elif isinstance(event, NewChampion):
            self.champion_iteration = event.iteration
            log(f"new champion: distance={event.route.length:.3f} iteration={event.iteration:06d}")
        elif isinstance(event, Finished):
            log("simulation finished")


def _limit(value: int) -> Optional[int]:
    return value if value and value > 0 else None


def _load(args) -> Instance:
    if args.points:
        return load_instance(Path(args.points))
    if args.random is None:
        raise SystemExit("pass --points FILE or --random N")
    return Instance(name=f"random-{args.random}", path=None, points=random_points(args.random, seed=args.seed))


def build_simulation(args, instance: Instance, seed: Optional[int] = None) -> Simulation:
    cfg = ParallelConfig(
        locations=instance.points,
        population_size=args.population,
        max_iterations=_limit(args.max_iterations),
        assume_convergence=_limit(args.assume_convergence),
        workers=args.workers,
        random_seed=seed,
    )
    # Fail before any thread starts.
    cfg.validate()
    if cfg.workers == 1:
        return GeneticSimulation(cfg)
    return ParallelSimulation(cfg)


def run_interruptible(simulation: Simulation, reference, time_budget, callback) -> RunReport:
    stop = threading.Event()
    with concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="tsp-sim") as ex:
        future = ex.submit(evaluate_simulation, simulation, reference, time_budget, stop, callback)
        while True:
            try:
                return future.result(timeout=0.25)
            except concurrent.futures.TimeoutError:
                continue
            except KeyboardInterrupt:
                log("interrupted; waiting for workers to stop...")
                stop.set()


def run(args) -> None:
    instance = _load(args)
    log(f"loaded {instance.name} with {len(instance.points)} locations")
    reports: List[RunReport] = []
    for attempt in range(args.repeat):
        seed = None if args.seed is None else args.seed + attempt * 1000
        try:
            simulation = build_simulation(args, instance, seed=seed)
        except ValueError as exc:
            raise SystemExit(f"invalid configuration: {exc}")
        if args.repeat > 1:
            log(f"run {attempt + 1}/{args.repeat}")
        printer = ProgressPrinter(quiet=args.quiet)
        report = run_interruptible(simulation, instance.reference, args.time_budget, printer)
        reports.append(report)
        log(
            f"best distance={report.length:.3f} iterations={report.iterations} "
            f"runtime={report.runtime:.2f}s gap={report.gap:.4f}"
        )
        log("route: " + " -> ".join(report.route.names))

    best = min(reports, key=lambda r: r.length)
    if args.repeat > 1:
        summary = aggregate_reports(reports)
        log(
            f"mean distance={summary['length']:.3f} best={summary['best']:.3f} "
            f"mean runtime={summary['runtime']:.2f}s"
        )
    if args.output:
        save_route(best.route, Path(args.output))
        log(f"wrote best route to {args.output}")


def baseline(args) -> None:
    instance = _load(args)
    start = time.perf_counter()
    route = baseline_route(instance.points)
    runtime = time.perf_counter() - start
    log(f"baseline distance={route.length:.3f} runtime={runtime:.2f}s")
    if instance.reference is not None:
        log(f"reference distance={instance.reference:.3f} gap={gap(route.length, instance.reference):.4f}")


def _add_input_args(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--points", help="TSPLIB .tsp file or JSON list of {name, x, y}")
    source.add_argument("--random", type=int, help="generate N random points")
    parser.add_argument("--seed", type=int, default=None)


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="TSP genetic-algorithm simulator")
    parser.add_argument("--log-level", default="WARNING")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Search for a short route with one or more GA workers")
    _add_input_args(run_parser)
    run_parser.add_argument("--workers", type=int, default=4)
    run_parser.add_argument("--population", type=int, default=200)
    run_parser.add_argument("--max-iterations", type=int, default=100_000, help="0 disables the limit")
    run_parser.add_argument("--assume-convergence", type=int, default=25_000, help="0 disables the limit")
    run_parser.add_argument("--time-budget", type=float, default=None, help="seconds before stopping")
    run_parser.add_argument("--repeat", type=int, default=1)
    run_parser.add_argument("--output", default=None, help="write the best route as JSON")
    run_parser.add_argument("--quiet", action="store_true", help="do not print iteration counts")
    run_parser.set_defaults(func=run)

    baseline_parser = subparsers.add_parser("baseline", help="networkx Christofides baseline")
    _add_input_args(baseline_parser)
    baseline_parser.set_defaults(func=baseline)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    main()
