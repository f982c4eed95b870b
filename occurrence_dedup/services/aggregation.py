"""Aggregation of raw occurrence rows into per-(dataset, cell) counts."""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Counter as CounterType, Iterable, List, Optional, Tuple

from ..models import DatasetCellCount, OccurrenceRecord
from .cells import CellIndexer

logger = logging.getLogger(__name__)


def _missing(value: Optional[float]) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def is_valid(record: OccurrenceRecord) -> bool:
    """Return ``True`` if *record* can be placed in a cell.

    Records without a dataset, a year, coordinates or a species, or with
    latitude >= 90 / longitude >= 180 carry no usable signal and are dropped.
    """
    if record.dataset_id is None:
        return False
    if _missing(record.year) or _missing(record.species_id):
        return False
    if _missing(record.latitude) or _missing(record.longitude):
        return False
    return record.latitude < 90 and record.longitude < 180


@dataclass(slots=True)
class AggregationStats:
    """Counters describing one aggregation pass."""

    seen: int = 0
    retained: int = 0
    retained_per_dataset: CounterType[str] = field(default_factory=Counter)
    datasets_seen: set = field(default_factory=set)

    @property
    def dropped(self) -> int:
        return self.seen - self.retained


class Aggregator:
    """Count each dataset's valid records per cell of a shared :class:`CellIndexer`."""

    def __init__(self, indexer: CellIndexer) -> None:
        self.indexer = indexer
        self.stats = AggregationStats()

    def aggregate(self, records: Iterable[OccurrenceRecord]) -> List[DatasetCellCount]:
        """Return one :class:`DatasetCellCount` per observed (dataset, cell).

        May be called repeatedly over batches of the same table; counts are
        per call, statistics accumulate. Output order is unspecified.
        """
        counts: CounterType[Tuple[str, int]] = Counter()
        stats = self.stats
        seen_before, retained_before = stats.seen, stats.retained
        for record in records:
            stats.seen += 1
            if record.dataset_id is not None:
                stats.datasets_seen.add(record.dataset_id)
            if not is_valid(record):
                continue
            key = self.indexer.encode(record.latitude, record.longitude, record.species_id, record.year)
            counts[(record.dataset_id, self.indexer.index_of(key))] += 1
            stats.retained += 1
            stats.retained_per_dataset[record.dataset_id] += 1

        logger.info(
            "Aggregated %d records into %d dataset cells (%d dropped, %d cells known)",
            stats.seen - seen_before,
            len(counts),
            (stats.seen - seen_before) - (stats.retained - retained_before),
            self.indexer.cell_count(),
        )
        return [
            DatasetCellCount(dataset_id, cell_index, count)
            for (dataset_id, cell_index), count in counts.items()
        ]


def aggregate(records: Iterable[OccurrenceRecord], indexer: CellIndexer) -> List[DatasetCellCount]:
    """Convenience wrapper running a single :class:`Aggregator` pass."""
    return Aggregator(indexer).aggregate(records)


__all__ = ["Aggregator", "AggregationStats", "aggregate", "is_valid"]
