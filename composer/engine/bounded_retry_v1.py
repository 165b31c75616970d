from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

VERSION = "bounded_retry_v1"

StateT = TypeVar("StateT")


@dataclass(frozen=True)
class BoundedRunV1(Generic[StateT]):
    state: StateT
    iterations: int
    converged: bool


def run_bounded_v1(
    initial: StateT,
    *,
    step: Callable[[StateT, int], StateT],
    is_done: Callable[[StateT], bool],
    max_iterations: int,
) -> BoundedRunV1[StateT]:
    """
    Apply `step` until `is_done` holds or `max_iterations` steps were taken.

    Termination does not depend on the behavior of `step`; when the ceiling is
    reached the last state is returned with converged=False so the caller can
    degrade instead of failing.
    """
    ceiling = max(int(max_iterations), 0) if not isinstance(max_iterations, bool) else 0
    state = initial
    iterations = 0
    while iterations < ceiling:
        if is_done(state):
            return BoundedRunV1(state=state, iterations=iterations, converged=True)
        state = step(state, iterations)
        iterations += 1
    return BoundedRunV1(state=state, iterations=iterations, converged=bool(is_done(state)))
