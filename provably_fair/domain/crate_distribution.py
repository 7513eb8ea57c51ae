"""Weighted item selection for crates.

A distribution is validated once, when it is built, and kept as a cumulative
weight array. Draws binary-search that array, so a draw never renormalises or
re-validates the weights.
"""

import math
from numbers import Real
from typing import Any, Iterable, List, Tuple

import numpy as np

from provably_fair.exceptions import (
    InvalidCrateDistributionError,
    WeightSumMismatchError,
)

WEIGHT_SUM_TOLERANCE = 1e-6


def _parse_item(item: Any) -> Tuple[str, float]:
    """Accept ``(item_id, weight)`` pairs or ``{"item_id": ..., "weight": ...}`` dicts."""
    if isinstance(item, dict):
        item_id, weight = item.get("item_id"), item.get("weight")
    else:
        try:
            item_id, weight = item
        except (TypeError, ValueError):
            raise InvalidCrateDistributionError(f"crate item must be an (item_id, weight) pair, got {item!r}")

    if not isinstance(item_id, str) or not item_id:
        raise InvalidCrateDistributionError(f"crate item id must be a non-empty string, got {item_id!r}")
    if isinstance(weight, bool) or not isinstance(weight, Real):
        raise InvalidCrateDistributionError(f"weight of {item_id!r} must be a number, got {weight!r}")
    weight = float(weight)
    if not math.isfinite(weight) or weight <= 0.0:
        raise InvalidCrateDistributionError(f"weight of {item_id!r} must be positive and finite, got {weight}")
    return item_id, weight


class CrateDistribution:
    def __init__(self, crate_id: str, items: Iterable[Any]):
        """Validate the crate's items and build the cumulative weight array.

        Args:
            crate_id (str): Crate the distribution belongs to
            items (Iterable[Any]): (item_id, weight) pairs in draw order

        Raises:
            InvalidCrateDistributionError: Empty crate, duplicate ids or non-positive weights
            WeightSumMismatchError: Weights do not sum to 1 within WEIGHT_SUM_TOLERANCE
        """
        parsed = [_parse_item(item) for item in items]
        if not parsed:
            raise InvalidCrateDistributionError(f"crate {crate_id!r} has no items")

        item_ids = [item_id for item_id, _ in parsed]
        if len(set(item_ids)) != len(item_ids):
            raise InvalidCrateDistributionError(f"crate {crate_id!r} has duplicate item ids")

        weights = [weight for _, weight in parsed]
        weight_sum = math.fsum(weights)
        if abs(weight_sum - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise WeightSumMismatchError(
                f"weights of crate {crate_id!r} sum to {weight_sum}, expected 1.0"
            )

        self.crate_id = crate_id
        self.item_ids: Tuple[str, ...] = tuple(item_ids)
        self.weights = np.asarray(weights, dtype=np.float64)
        self.cumulative = np.cumsum(self.weights)
        self.total = float(self.cumulative[-1])

    def __len__(self) -> int:
        return len(self.item_ids)

    def select_index(self, outcome: float) -> int:
        """Index of the first item whose cumulative bound is >= outcome * total.

        The index is clamped to the last item so an outcome arbitrarily close
        to 1 can never run past the end of the array.
        """
        if not 0.0 <= outcome < 1.0:
            raise ValueError(f"outcome must be in [0, 1), got {outcome}")
        scaled = outcome * self.total
        index = int(np.searchsorted(self.cumulative, scaled, side="left"))
        return min(index, len(self.item_ids) - 1)

    def select(self, outcome: float) -> str:
        return self.item_ids[self.select_index(outcome)]

    def as_items(self) -> List[List[Any]]:
        """JSON friendly ``[[item_id, weight], ...]`` snapshot."""
        return [[item_id, float(weight)] for item_id, weight in zip(self.item_ids, self.weights)]
