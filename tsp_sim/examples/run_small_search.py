import threading

from tsp_sim.data import random_points
from tsp_sim.evaluation import baseline_route
from tsp_sim.events import NewChampion
from tsp_sim.parallel import ParallelConfig, ParallelSimulation


def main():
    points = random_points(25, seed=7)
    cfg = ParallelConfig(
        locations=points,
        population_size=60,
        max_iterations=3_000,
        assume_convergence=1_000,
        workers=2,
        random_seed=7,
    )
    sim = ParallelSimulation(cfg)

    def on_event(event):
        if isinstance(event, NewChampion):
            print(f"iteration {event.iteration}: distance={event.route.length:.2f}")

    best = sim.run(threading.Event(), on_event)
    print(f"best distance={best.length:.2f} route={' '.join(best.names)}")
    print(f"networkx baseline distance={baseline_route(points).length:.2f}")


if __name__ == "__main__":
    main()
