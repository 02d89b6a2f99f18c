"""
backoffice/billing/aggregation.py

Generic group-and-fold used by invoice synthesis and every report.

aggregate(records, key_of, fold, init):
- every distinct key present in the input appears exactly once in the output
- keys keep first-seen order (dict insertion order)
- within a key, fold runs in input order
- nothing is sorted here: callers that need order-dependent folds (running
  balances) must presort their input
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, Dict, Hashable, Iterable, List, Tuple, TypeVar

from .money import ZERO

logger = logging.getLogger(__name__)

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)
A = TypeVar("A")


def aggregate(
    records: Iterable[T],
    key_of: Callable[[T], K],
    fold: Callable[[A, T], A],
    init: Callable[[K], A],
) -> Dict[K, A]:
    groups: Dict[K, A] = {}
    count = 0
    for record in records:
        key = key_of(record)
        acc = groups[key] if key in groups else init(key)
        groups[key] = fold(acc, record)
        count += 1
    logger.debug("aggregated %d records into %d groups", count, len(groups))
    return groups


def sum_by(
    records: Iterable[T],
    key_of: Callable[[T], K],
    value_of: Callable[[T], Decimal],
) -> Dict[K, Decimal]:
    """Additive special case: total of value_of per key."""
    return aggregate(records, key_of, lambda acc, r: acc + value_of(r), lambda _k: ZERO)


def ordered(groups: Dict[K, A], sort_key: Callable[[Tuple[K, A]], object]) -> List[A]:
    """Deterministic output ordering for a grouped mapping."""
    return [acc for _key, acc in sorted(groups.items(), key=sort_key)]
