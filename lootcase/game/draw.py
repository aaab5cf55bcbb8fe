"""Weighted reward draw for case openings.

Pools are walked in a fixed order: descending ``drop_rate``, ties broken by item
id. ``order_pool`` produces that order and every reader of case items goes
through it, so the same pool and the same random value always select the same
item.
"""

import random
from collections.abc import Callable, Iterable, Sequence
from typing import TypeAlias

from lootcase.schema.db import CaseItem

RNG = random.SystemRandom()

RandomSource: TypeAlias = Callable[[], float]


class PoolConfigurationError(ValueError): ...


def order_pool(items: Iterable[CaseItem]) -> list[CaseItem]:
    return sorted(items, key=lambda item: (-item.drop_rate, item.id))


def total_weight(pool: Sequence[CaseItem]) -> float:
    if not pool:
        raise PoolConfigurationError("No items found in case")
    total = 0.0
    for item in pool:
        if item.drop_rate < 0:
            raise PoolConfigurationError(f"Case item {item.id} has a negative drop rate")
        total += float(item.drop_rate)
    if total <= 0:
        raise PoolConfigurationError("Case items have no positive drop rate")
    return total


def draw(pool: Sequence[CaseItem], rng: RandomSource = RNG.random) -> CaseItem:
    """
    Select one item with probability ``drop_rate / total``.

    ``rng`` must return a float in [0, 1). The pool is walked in the order given.
    If rounding leaves the target just above the running sum, the last item is
    returned, which slightly favours it in that pathological case.
    """
    total = total_weight(pool)
    target = rng() * total
    cumulative = 0.0
    for item in pool:
        cumulative += float(item.drop_rate)
        if target <= cumulative:
            return item
    return pool[-1]
