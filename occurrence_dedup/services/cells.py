"""Mapping of (geohash, species, year) cells to dense integer indices."""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List

import pygeohash

from ..config import GEOHASH_PRECISION
from ..errors import IndexerFrozenError
from ..models import CellKey

logger = logging.getLogger(__name__)


class CellIndexer:
    """Assign every distinct :class:`CellKey` a stable index ``0..n-1``.

    The indexer has a single-writer-then-read-only lifecycle: the aggregation
    pass grows it, then :meth:`freeze` fixes the cell space before vectors are
    built and shared with the similarity workers. It is not thread-safe while
    still growing.
    """

    def __init__(self, precision: int = GEOHASH_PRECISION) -> None:
        if precision < 1:
            raise ValueError(f"geohash precision must be positive, got {precision}")
        self.precision = precision
        self._index: Dict[CellKey, int] = {}
        self._keys: List[CellKey] = []
        self._frozen = False

    def encode(self, latitude: float, longitude: float, species_id: int, year: int) -> CellKey:
        """Combine the geohash of (*latitude*, *longitude*) with species and year."""
        geohash = pygeohash.encode(float(latitude), float(longitude), precision=self.precision)
        return CellKey(geohash, int(species_id), int(year))

    def index_of(self, key: CellKey) -> int:
        """Return the index of *key*, assigning the next free one on first sight."""
        index = self._index.get(key)
        if index is not None:
            return index
        if self._frozen:
            raise IndexerFrozenError(f"cell {key} was not observed before the indexer was frozen")
        index = len(self._keys)
        self._index[key] = index
        self._keys.append(key)
        return index

    def key_of(self, index: int) -> CellKey:
        return self._keys[index]

    def cell_count(self) -> int:
        return len(self._keys)

    def freeze(self) -> "CellIndexer":
        """Make the indexer read-only and return it."""
        if not self._frozen:
            self._frozen = True
            logger.info("Cell space fixed at %d cells (geohash precision %d)", len(self._keys), self.precision)
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __iter__(self) -> Iterator[CellKey]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)


__all__ = ["CellIndexer"]
