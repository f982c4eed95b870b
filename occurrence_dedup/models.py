"""Domain models used across the project."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Optional

import numpy as np


class CellKey(NamedTuple):
    """One (spatial bucket, species, year) unit of the feature space."""

    geohash: str
    species_id: int
    year: int


@dataclass(slots=True)
class OccurrenceRecord:
    """A single row of the occurrence table, consumed once by the aggregator."""

    dataset_id: Optional[str]
    longitude: Optional[float]
    latitude: Optional[float]
    species_id: Optional[int]
    year: Optional[int] = None


@dataclass(frozen=True, slots=True)
class DatasetCellCount:
    """Number of records *dataset_id* holds in the cell at *cell_index*."""

    dataset_id: str
    cell_index: int
    count: int


@dataclass(frozen=True, slots=True, eq=False)
class DatasetVector:
    """Sparse count vector of one dataset over the shared cell index space.

    ``indices`` is sorted and unique; ``values[k]`` is the count stored at
    ``indices[k]``. Every other entry of the ``dimension``-long vector is zero.
    """

    dataset_id: str
    dimension: int
    indices: np.ndarray
    values: np.ndarray

    @property
    def nnz(self) -> int:
        return int(self.indices.size)

    def norm(self) -> float:
        return float(np.sqrt(np.dot(self.values, self.values)))

    def total(self) -> int:
        return int(self.values.sum())


@dataclass(frozen=True, slots=True)
class SimilarityResult:
    """Cosine similarity of one unordered pair of datasets."""

    dataset_x: str
    dataset_y: str
    similarity: float


@dataclass(slots=True)
class DatasetMetadata:
    """Display metadata for a dataset; any field may be unknown."""

    id: str
    url: Optional[str] = None
    title: Optional[str] = None
    record_count: Optional[int] = None


@dataclass(slots=True)
class CandidatePair:
    """A similar pair enriched with both datasets' metadata for review."""

    dataset_x: str
    dataset_y: str
    similarity: float
    metadata_x: DatasetMetadata
    metadata_y: DatasetMetadata

    @property
    def combined_record_count(self) -> int:
        return (self.metadata_x.record_count or 0) + (self.metadata_y.record_count or 0)

    def as_row(self) -> dict:
        """Flatten the pair into a single row for tabular output."""
        return {
            "x": self.dataset_x,
            "y": self.dataset_y,
            "similarity": self.similarity,
            "x_title": self.metadata_x.title,
            "x_url": self.metadata_x.url,
            "x_record_count": self.metadata_x.record_count,
            "y_title": self.metadata_y.title,
            "y_url": self.metadata_y.url,
            "y_record_count": self.metadata_y.record_count,
        }


__all__ = [
    "CellKey",
    "OccurrenceRecord",
    "DatasetCellCount",
    "DatasetVector",
    "SimilarityResult",
    "DatasetMetadata",
    "CandidatePair",
]
