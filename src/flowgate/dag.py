# dag.py
from __future__ import annotations

import logging
from collections import deque
from typing import Dict, Iterator, List, Optional, Set, Tuple

from .errors import CycleError, DeveloperError, MissingJobError
from .model import Job

logger = logging.getLogger(__name__)


class JobGraph:
    """
    Ordered collection of jobs keyed by name.

    Jobs are added in construction order and every `needs` target must
    already be present, so the graph is acyclic by construction. Insertion
    order is kept for output.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}

    def add_job(self, job: Job) -> Job:
        if job.name in self._jobs:
            raise DeveloperError(f"duplicate job name '{job.name}'")
        for dep in job.needs:
            if dep not in self._jobs:
                raise MissingJobError(job.name, dep, sorted(self._jobs))
        self._jobs[job.name] = job
        logger.debug("job added: %s (needs=%s)", job.name, job.needs)
        return job

    def get(self, name: str) -> Optional[Job]:
        return self._jobs.get(name)

    def __getitem__(self, name: str) -> Job:
        return self._jobs[name]

    def __contains__(self, name: object) -> bool:
        return name in self._jobs

    def __iter__(self) -> Iterator[Job]:
        return iter(self._jobs.values())

    def __len__(self) -> int:
        return len(self._jobs)

    @property
    def names(self) -> List[str]:
        return list(self._jobs)

    def jobs(self) -> List[Job]:
        return list(self._jobs.values())

    def levels(self) -> List[List[str]]:
        adj, indeg = build_dag(self.jobs())
        return topo_levels(adj, indeg)

    def check_acyclic(self) -> None:
        """Raise CycleError or MissingJobError if the graph is not a valid DAG."""
        self.levels()

    def to_dict(self) -> Dict[str, dict]:
        return {name: job.to_dict() for name, job in self._jobs.items()}


def build_dag(jobs: List[Job]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Adjacency and in-degree maps for `jobs`.

    Edge direction is need -> job (the need runs first).
    """
    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise DeveloperError(f"duplicate job names found: {dupes}")

    name_set = set(names)
    adj: Dict[str, Set[str]] = {n: set() for n in name_set}
    indeg: Dict[str, int] = {n: 0 for n in name_set}

    for job in jobs:
        for need in job.needs:
            if need not in name_set:
                raise MissingJobError(job.name, need, sorted(name_set))
            if job.name not in adj[need]:
                adj[need].add(job.name)
                indeg[job.name] += 1

    return adj, indeg


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Topological "levels": jobs in the same level have no edges between them.
    """
    indeg = dict(indeg)  # copy (we mutate it)
    q = deque(sorted([n for n, d in indeg.items() if d == 0]))

    levels: List[List[str]] = []
    processed = 0

    while q:
        level_size = len(q)
        level: List[str] = []

        for _ in range(level_size):
            node = q.popleft()
            level.append(node)
            processed += 1

            for child in sorted(adj.get(node, set())):
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

        levels.append(level)

    if processed != len(indeg):
        remaining = sorted([n for n, d in indeg.items() if d > 0])
        raise CycleError(remaining)

    return levels
