"""Sparse per-dataset count vectors over the shared cell index space."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, Optional, Sequence

import numpy as np
from scipy.sparse import csr_matrix

from ..errors import DimensionMismatchError
from ..models import DatasetCellCount, DatasetVector

logger = logging.getLogger(__name__)


def _to_vector(dataset_id: str, cells: Dict[int, int], n_cells: int) -> DatasetVector:
    indices = np.fromiter(sorted(cells), dtype=np.int64, count=len(cells))
    values = np.fromiter((cells[i] for i in indices), dtype=np.float64, count=len(cells))
    indices.setflags(write=False)
    values.setflags(write=False)
    return DatasetVector(dataset_id=dataset_id, dimension=n_cells, indices=indices, values=values)


class VectorBuilder:
    """Turn aggregated cell counts into one :class:`DatasetVector` per dataset.

    Counts are accumulated sparsely (``cell_index -> count``); no dense
    ``n_cells``-long array is ever allocated per dataset.
    """

    def build(
        self,
        counts: Iterable[DatasetCellCount],
        n_cells: int,
        datasets: Optional[Iterable[str]] = None,
    ) -> Dict[str, DatasetVector]:
        """Return ``{dataset_id: DatasetVector}`` of dimension *n_cells*.

        Rows repeating a (dataset, cell) pair are summed. Ids listed in
        *datasets* without any count get an empty (zero-norm) vector.
        """
        accumulated: Dict[str, Dict[int, int]] = defaultdict(dict)
        for row in counts:
            if not 0 <= row.cell_index < n_cells:
                raise DimensionMismatchError(
                    f"cell index {row.cell_index} of dataset {row.dataset_id} outside [0, {n_cells})"
                )
            cells = accumulated[row.dataset_id]
            cells[row.cell_index] = cells.get(row.cell_index, 0) + row.count

        for dataset_id in datasets or ():
            accumulated.setdefault(dataset_id, {})

        vectors = {
            dataset_id: _to_vector(dataset_id, cells, n_cells)
            for dataset_id, cells in accumulated.items()
        }
        empty = sum(1 for vector in vectors.values() if vector.nnz == 0)
        logger.info("Built %d dataset vectors over %d cells (%d empty)", len(vectors), n_cells, empty)
        return vectors


def build_vectors(
    counts: Iterable[DatasetCellCount],
    n_cells: int,
    datasets: Optional[Iterable[str]] = None,
) -> Dict[str, DatasetVector]:
    return VectorBuilder().build(counts, n_cells, datasets)


def check_dimensions(vectors: Iterable[DatasetVector]) -> int:
    """Return the common dimension of *vectors* or raise :class:`DimensionMismatchError`."""
    dimension: Optional[int] = None
    first: Optional[str] = None
    for vector in vectors:
        if dimension is None:
            dimension, first = vector.dimension, vector.dataset_id
        elif vector.dimension != dimension:
            raise DimensionMismatchError(
                f"dataset {vector.dataset_id} has dimension {vector.dimension}, "
                f"dataset {first} has {dimension}"
            )
        if vector.indices.size != vector.values.size:
            raise DimensionMismatchError(f"dataset {vector.dataset_id} has mismatched indices/values")
        if vector.indices.size and (vector.indices[0] < 0 or vector.indices[-1] >= vector.dimension):
            raise DimensionMismatchError(
                f"dataset {vector.dataset_id} has entries outside [0, {vector.dimension})"
            )
    return dimension or 0


def stack(vectors: Dict[str, DatasetVector], order: Sequence[str]) -> csr_matrix:
    """Stack *vectors* into a CSR matrix whose row ``i`` is ``vectors[order[i]]``."""
    n_cells = check_dimensions(vectors[dataset_id] for dataset_id in order)
    indptr = np.zeros(len(order) + 1, dtype=np.int64)
    np.cumsum([vectors[dataset_id].nnz for dataset_id in order], out=indptr[1:])
    if order:
        indices = np.concatenate([vectors[dataset_id].indices for dataset_id in order])
        data = np.concatenate([vectors[dataset_id].values for dataset_id in order])
    else:
        indices = np.empty(0, dtype=np.int64)
        data = np.empty(0, dtype=np.float64)
    return csr_matrix((data, indices, indptr), shape=(len(order), n_cells))


__all__ = ["VectorBuilder", "build_vectors", "check_dimensions", "stack"]
