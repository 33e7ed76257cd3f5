"""Balanced partitioning of work items into a fixed number of groups.

Every split in AlignForge goes through :func:`balanced_split`: sequence
names into chunk files, and chunk pairs into cluster jobs. The
assignment is greedy (heaviest item first, into the lightest group) and
fully deterministic, because batch numbers and chunk file names are
derived from group positions and must not move between a crashed run
and its restart.

Example:
    >>> from alignforge.parallel.partition import balanced_split
    >>> balanced_split(2, ["a", "b", "c"])
    [['a', 'c'], ['b']]
    >>> balanced_split(2, [5, 1, 4], cost=lambda x: x)
    [[5], [4, 1]]
"""

from __future__ import annotations

import heapq
import logging
from typing import Callable, Iterable, Sequence, TypeVar

from alignforge.errors import InvalidArgumentError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _unit_cost(item: object) -> int:
    return 1


def balanced_split(
    k: int,
    items: Iterable[T],
    cost: Callable[[T], float] | None = None,
) -> list[list[T]]:
    """Split items into k groups of approximately equal total cost.

    Items are taken in descending cost order (stable, so equal-cost
    items keep their input order) and each goes to the group with the
    lowest running total; ties between groups go to the lowest index.
    With the default unit cost this is a round-robin deal, so group
    totals differ by at most one.

    Args:
        k: Number of groups to produce.
        items: Items to distribute.
        cost: Function giving each item's cost (default: 1 per item).

    Returns:
        Exactly k lists. Some are empty when there are fewer items
        than groups.

    Raises:
        InvalidArgumentError: If k is not a positive integer or an item
            has a negative cost.
    """
    if isinstance(k, bool) or not isinstance(k, int) or k <= 0:
        raise InvalidArgumentError(f"Group count must be a positive integer, got {k!r}")

    cost = cost or _unit_cost
    weighted = []
    for item in items:
        item_cost = cost(item)
        if item_cost < 0:
            raise InvalidArgumentError(f"Negative cost {item_cost} for item {item!r}")
        weighted.append((item_cost, item))

    # sorted() is stable: equal costs keep input order
    weighted = sorted(weighted, key=lambda pair: pair[0], reverse=True)

    groups: list[list[T]] = [[] for _ in range(k)]
    heap = [(0, index) for index in range(k)]

    for item_cost, item in weighted:
        total, index = heapq.heappop(heap)
        groups[index].append(item)
        heapq.heappush(heap, (total + item_cost, index))

    logger.debug(f"Split {len(weighted)} items into {k} groups")

    return groups


def group_costs(
    groups: Sequence[Sequence[T]],
    cost: Callable[[T], float] | None = None,
) -> list[float]:
    """Total cost of each group.

    Args:
        groups: Groups as returned by balanced_split.
        cost: Function giving each item's cost (default: 1 per item).

    Returns:
        One total per group, in group order.
    """
    cost = cost or _unit_cost
    return [sum(cost(item) for item in group) for group in groups]
