"""Exact all-pairs cosine similarity between dataset vectors.

Dataset ids are put in a stable (sorted) order and the outer index ``i`` is
paired with every ``j > i``, so each unordered pair appears exactly once. The
outer index range is cut into disjoint slices which run independently on a
process pool; every worker reads the same normalised CSR matrix and returns a
dense block for its slice only, so the full ``n x n`` matrix never exists.
"""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence

import numpy as np
from scipy.sparse import csr_matrix

from ..config import CHUNK_SIZE, WORKER_COUNT
from ..errors import DimensionMismatchError, InvalidRangeError, OuterRange, PartialComputationError
from ..models import DatasetVector, SimilarityResult
from .vectors import stack

logger = logging.getLogger(__name__)

# Read-only matrix installed in every worker process by _init_worker
_worker_matrix: csr_matrix | None = None


# ---------------------------------------------------------------------------
# Pairwise maths
# ---------------------------------------------------------------------------

def cosine_similarity(a: DatasetVector, b: DatasetVector) -> float:
    """Return ``dot(a, b) / (|a| |b|)``, or ``0.0`` when either norm is zero."""
    if a.dimension != b.dimension:
        raise DimensionMismatchError(
            f"cannot compare {a.dataset_id} (dimension {a.dimension}) "
            f"with {b.dataset_id} (dimension {b.dimension})"
        )
    norm_a, norm_b = a.norm(), b.norm()
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    _, in_a, in_b = np.intersect1d(a.indices, b.indices, assume_unique=True, return_indices=True)
    dot = float(np.dot(a.values[in_a], b.values[in_b]))
    return min(max(dot / (norm_a * norm_b), 0.0), 1.0)


def normalise_rows(matrix: csr_matrix) -> csr_matrix:
    """Scale every row to unit L2 norm; all-zero rows stay zero."""
    norms = np.sqrt(np.asarray(matrix.multiply(matrix).sum(axis=1), dtype=np.float64).ravel())
    scale = np.zeros_like(norms)
    np.divide(1.0, norms, out=scale, where=norms > 0)
    normalised = matrix.astype(np.float64, copy=True)
    normalised.data *= np.repeat(scale, np.diff(normalised.indptr))
    return normalised


def plan_ranges(n: int, chunk_size: int) -> List[OuterRange]:
    """Split the outer indices ``0..n-2`` into half-open slices of *chunk_size*."""
    if chunk_size < 1:
        raise ValueError(f"chunk size must be positive, got {chunk_size}")
    return [(start, min(start + chunk_size, n - 1)) for start in range(0, n - 1, chunk_size)]


@dataclass(slots=True)
class SimilarityBlock:
    """Similarities of outer indices ``start..stop-1`` against every later index.

    ``rows[k]`` holds the similarity of ``start + k`` with
    ``start + k + 1, ..., n - 1`` in that order.
    """

    start: int
    stop: int
    rows: List[np.ndarray]

    @property
    def pair_count(self) -> int:
        return sum(int(row.size) for row in self.rows)

    def results(self, order: Sequence[str]) -> Iterator[SimilarityResult]:
        for offset, row in enumerate(self.rows):
            i = self.start + offset
            x = order[i]
            for j, value in enumerate(row.tolist(), start=i + 1):
                yield SimilarityResult(x, order[j], value)


def compute_block(matrix: csr_matrix, start: int, stop: int) -> SimilarityBlock:
    """Compute the :class:`SimilarityBlock` of ``start..stop-1`` over a normalised *matrix*."""
    n = matrix.shape[0]
    stop = min(stop, n)
    if start >= stop:
        return SimilarityBlock(start, start, [])
    dense = (matrix[start:stop] @ matrix[start + 1 :].T).toarray()
    np.clip(dense, 0.0, 1.0, out=dense)
    # column c of `dense` is index start + 1 + c; row r keeps indices > start + r
    rows = [dense[r, r:].copy() for r in range(stop - start)]
    return SimilarityBlock(start, stop, rows)


def _init_worker(matrix: csr_matrix) -> None:
    global _worker_matrix
    _worker_matrix = matrix


def _compute_worker_block(start: int, stop: int) -> SimilarityBlock:
    if _worker_matrix is None:
        raise RuntimeError("similarity worker was not initialised")
    return compute_block(_worker_matrix, start, stop)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class SimilarityEngine:
    """Parallel, streaming all-pairs cosine similarity.

    Args:
        workers: size of the process pool; ``1`` computes in-process.
        chunk_size: number of outer indices per task.
    """

    def __init__(self, workers: int = WORKER_COUNT, chunk_size: int = CHUNK_SIZE) -> None:
        if workers < 1:
            raise ValueError(f"worker count must be positive, got {workers}")
        self.workers = workers
        self.chunk_size = chunk_size

    @staticmethod
    def order(vectors: Dict[str, DatasetVector]) -> List[str]:
        """Stable ordering of dataset ids used for pair enumeration."""
        return sorted(vectors)

    def compute_blocks(
        self,
        vectors: Dict[str, DatasetVector],
        ranges: Optional[Sequence[OuterRange]] = None,
    ) -> Iterator[SimilarityBlock]:
        """Yield one :class:`SimilarityBlock` per outer range, in completion order.

        Raises :class:`DimensionMismatchError` before any work starts if the
        vectors do not share a dimension, and :class:`PartialComputationError`
        after every healthy block was yielded if some ranges failed.
        """
        order = self.order(vectors)
        matrix = normalise_rows(stack(vectors, order))
        n = len(order)
        if ranges is None:
            ranges = plan_ranges(n, self.chunk_size)
        else:
            ranges = self._check_ranges(ranges, n)

        total_pairs = n * (n - 1) // 2
        logger.info(
            "Computing similarities for %d datasets (%d pairs) in %d slice(s) on %d worker(s)",
            n,
            total_pairs,
            len(ranges),
            self.workers,
        )

        failed: List[OuterRange] = []
        errors: List[BaseException] = []
        if self.workers == 1:
            for start, stop in ranges:
                try:
                    block = compute_block(matrix, start, stop)
                except Exception as exc:  # noqa: BLE001 - reported through PartialComputationError
                    logger.error("Similarity slice %d:%d failed: %s", start, stop, exc)
                    failed.append((start, stop))
                    errors.append(exc)
                    continue
                yield block
        else:
            executor = ProcessPoolExecutor(
                max_workers=self.workers, initializer=_init_worker, initargs=(matrix,)
            )
            try:
                futures = {
                    executor.submit(_compute_worker_block, start, stop): (start, stop)
                    for start, stop in ranges
                }
                for future in as_completed(futures):
                    start, stop = futures[future]
                    try:
                        block = future.result()
                    except Exception as exc:  # noqa: BLE001 - reported through PartialComputationError
                        logger.error("Similarity slice %d:%d failed: %s", start, stop, exc)
                        failed.append((start, stop))
                        errors.append(exc)
                        continue
                    logger.debug("Slice %d:%d done (%d pairs)", start, stop, block.pair_count)
                    yield block
            finally:
                executor.shutdown(wait=True, cancel_futures=True)

        if failed:
            raise PartialComputationError(failed, errors)

    def compute_all_pairs(
        self,
        vectors: Dict[str, DatasetVector],
        ranges: Optional[Sequence[OuterRange]] = None,
    ) -> Iterator[SimilarityResult]:
        """Lazily yield a :class:`SimilarityResult` for every unordered pair."""
        order = self.order(vectors)
        for block in self.compute_blocks(vectors, ranges):
            yield from block.results(order)

    @staticmethod
    def _check_ranges(ranges: Sequence[OuterRange], n: int) -> List[OuterRange]:
        checked = sorted((int(start), int(stop)) for start, stop in ranges)
        for start, stop in checked:
            if not 0 <= start < stop <= n:
                raise InvalidRangeError(f"outer range {start}:{stop} outside 0:{n}")
        for (_, previous_stop), (start, _) in zip(checked, checked[1:]):
            if start < previous_stop:
                raise InvalidRangeError(f"outer ranges overlap at index {start}")
        return checked


def compute_all_pairs(
    vectors: Dict[str, DatasetVector],
    workers: int = WORKER_COUNT,
    chunk_size: int = CHUNK_SIZE,
) -> Iterator[SimilarityResult]:
    return SimilarityEngine(workers, chunk_size).compute_all_pairs(vectors)


__all__ = [
    "SimilarityBlock",
    "SimilarityEngine",
    "compute_all_pairs",
    "compute_block",
    "cosine_similarity",
    "normalise_rows",
    "plan_ranges",
]
