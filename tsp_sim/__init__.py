"""
Genetic-algorithm search for short routes through 2-D points, with a
multi-threaded orchestrator that merges several independent searches.
"""

__all__ = [
    "data",
    "evaluation",
    "events",
    "evolutionary",
    "geometry",
    "operators",
    "parallel",
]
