"""Crate catalog collaborator interface.

The crate catalog is owned by another service; the engine only reads the
distribution of a crate. Distributions are validated when they enter the
catalog, so a malformed crate is rejected at configuration time instead of
being renormalised at draw time.
"""

import json
import logging
import pathlib
from typing import Any, Dict, Iterable, Mapping

from provably_fair.domain.crate_distribution import CrateDistribution
from provably_fair.exceptions import CrateNotFoundError


class CrateCatalog:
    def get_distribution(self, crate_id: str) -> CrateDistribution:
        raise NotImplementedError


class StaticCrateCatalog(CrateCatalog):
    def __init__(self, crates: Mapping[str, Iterable[Any]] | None = None):
        """Build and validate every distribution up front

        Args:
            crates (Mapping[str, Iterable[Any]] | None, optional): crate_id -> (item_id, weight) pairs

        Raises:
            InvalidCrateDistributionError: A crate is malformed
            WeightSumMismatchError: A crate's weights do not sum to 1
        """
        self._distributions: Dict[str, CrateDistribution] = {}
        for crate_id, items in (crates or {}).items():
            self.register(crate_id, items)

    def register(self, crate_id: str, items: Iterable[Any]) -> CrateDistribution:
        distribution = CrateDistribution(crate_id, items)
        self._distributions[crate_id] = distribution
        return distribution

    def get_distribution(self, crate_id: str) -> CrateDistribution:
        try:
            return self._distributions[crate_id]
        except KeyError:
            raise CrateNotFoundError(f"crate {crate_id!r} is not in the catalog")

    def __contains__(self, crate_id: str) -> bool:
        return crate_id in self._distributions


def load_crate_catalog(path: str | None) -> StaticCrateCatalog:
    """Load ``{"crate_id": [{"item_id": ..., "weight": ...}, ...]}`` from a JSON file.

    An unset path yields an empty catalog.
    """
    if not path:
        return StaticCrateCatalog()
    crates = json.loads(pathlib.Path(path).read_text(encoding="utf-8"))
    catalog = StaticCrateCatalog(crates)
    logging.info(f"Loaded {len(crates)} crates from {path}")
    return catalog
