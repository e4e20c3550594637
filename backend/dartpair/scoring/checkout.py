from __future__ import annotations

from functools import lru_cache
from itertools import product

from dartpair.scoring.board import BULL, Dart

MAX_CHECKOUT = 170

# Finishing doubles in the order most players would rather be left on.
PREFERRED_DOUBLES: tuple[int, ...] = (20, 16, 18, 10, 8, 12, 6, 4, 2)
PREFERRED_TREBLES: tuple[int, ...] = (20, 19, 18, 17, 16)

SCORING_DARTS: tuple[Dart, ...] = (
    *(Dart(v, m) for v in range(1, 21) for m in (1, 2, 3)),
    Dart(BULL, 1),
    Dart(BULL, 2),
)
FINISHING_DARTS: tuple[Dart, ...] = tuple(d for d in SCORING_DARTS if d.is_double)


def _finish_rank(d: Dart) -> int:
    if d.value == BULL:
        return 30
    if d.value in PREFERRED_DOUBLES:
        return PREFERRED_DOUBLES.index(d.value)
    return 15 + (20 - d.value)


def _setup_rank(d: Dart) -> int:
    if d.value == BULL:
        return 60 if d.multiplier == 1 else 30
    if d.multiplier == 3:
        if d.value in PREFERRED_TREBLES:
            return 5 + (20 - d.value)
        return 25 + (20 - d.value)
    if d.multiplier == 2:
        return 20 + _finish_rank(d)
    return 40 + (20 - d.value)


def _route_key(route: tuple[Dart, ...]) -> tuple[int, int, int, str]:
    labels = ",".join(d.label for d in route)
    return (len(route), _finish_rank(route[-1]), sum(_setup_rank(d) for d in route[:-1]), labels)


def _routes(remaining: int, darts_left: int) -> list[tuple[Dart, ...]]:
    found: list[tuple[Dart, ...]] = []
    for setup_count in range(darts_left):
        for setup in product(SCORING_DARTS, repeat=setup_count):
            left = remaining - sum(d.score for d in setup)
            if left < 2:
                continue
            for finish in FINISHING_DARTS:
                if finish.score == left:
                    found.append((*setup, finish))
    return found


@lru_cache(maxsize=512)
def suggest_checkouts(remaining: int, *, max_darts: int = 3, limit: int = 3) -> tuple[tuple[Dart, ...], ...]:
    """
    Double-out checkout routes for `remaining`, best first.

    Routes are ranked by dart count, then by how common the finishing double is,
    then by how natural the setup darts are. Permutations of the same setup are
    collapsed into one route.
    """
    if max_darts not in (1, 2, 3):
        raise ValueError("max_darts must be 1, 2, or 3")
    if limit <= 0 or remaining < 2 or remaining > MAX_CHECKOUT:
        return tuple()

    out: list[tuple[Dart, ...]] = []
    seen: set[tuple[tuple[Dart, ...], Dart]] = set()
    for route in sorted(_routes(remaining, max_darts), key=_route_key):
        key = (tuple(sorted(route[:-1], key=lambda d: (d.value, d.multiplier))), route[-1])
        if key in seen:
            continue
        seen.add(key)
        out.append(route)
        if len(out) >= limit:
            break
    return tuple(out)


def checkout_hint(remaining: int) -> list[str]:
    """Labels of the best route for `remaining`, or an empty list."""
    routes = suggest_checkouts(remaining, limit=1)
    if not routes:
        return []
    return [d.label for d in routes[0]]
