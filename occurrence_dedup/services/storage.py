"""Flat-file store for similarity results.

The file is the hand-off between the expensive pairwise stage and the cheap
ranking/report stage::

    x y similarity
    <dataset_id_x> <dataset_id_y> <similarity>

Similarities are written in fixed-point notation. The file is append-only:
resuming a partial run appends the missing slices to the same file.
"""

from __future__ import annotations

import logging
import os
from typing import IO, Iterable, Iterator, Sequence

import numpy as np
import pandas as pd

from ..models import SimilarityResult
from .similarity import SimilarityBlock

HEADER: str = "x y similarity"
COLUMNS = ["x", "y", "similarity"]
# digits after the decimal point; fixed-point keeps the file free of exponents
PRECISION: int = 10
READ_CHUNK_ROWS: int = 1_000_000

logger = logging.getLogger(__name__)


def format_similarity(value: float) -> str:
    return f"{value:.{PRECISION}f}"


def format_block(block: SimilarityBlock, order: Sequence[str]) -> str:
    """Render every pair of *block* as one newline-terminated text chunk."""
    lines = []
    for offset, row in enumerate(block.rows):
        i = block.start + offset
        x = order[i]
        lines.extend(
            f"{x} {order[j]} {value:.{PRECISION}f}"
            for j, value in enumerate(row.tolist(), start=i + 1)
        )
    return "".join(line + "\n" for line in lines)


class ResultsWriter:
    """Single writer appending whole blocks of results to the store.

    Each block goes out in one ``write`` followed by a flush, so a crash can
    lose at most the block being written, never interleave lines.
    """

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = os.fspath(path)
        self.pairs_written = 0
        self._handle: IO[str] | None = None

    def __enter__(self) -> "ResultsWriter":
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        needs_header = not os.path.exists(self.path) or os.path.getsize(self.path) == 0
        self._handle = open(self.path, "a", encoding="utf-8")
        if needs_header:
            self._write(HEADER + "\n")
        return self

    def __exit__(self, *exc_info) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
        logger.info("Wrote %d similarity rows to %s", self.pairs_written, self.path)

    def _write(self, text: str) -> None:
        if self._handle is None:
            raise RuntimeError("ResultsWriter used outside of a with-block")
        self._handle.write(text)
        self._handle.flush()

    def write_block(self, block: SimilarityBlock, order: Sequence[str]) -> None:
        self._write(format_block(block, order))
        self.pairs_written += block.pair_count

    def write_results(self, results: Iterable[SimilarityResult]) -> None:
        lines = [
            f"{result.dataset_x} {result.dataset_y} {format_similarity(result.similarity)}\n"
            for result in results
        ]
        self._write("".join(lines))
        self.pairs_written += len(lines)


def write_results(results: Iterable[SimilarityResult], path: str | os.PathLike) -> int:
    """Append *results* to the store at *path*; return the number of rows written."""
    with ResultsWriter(path) as writer:
        writer.write_results(results)
    return writer.pairs_written


def partial_results_path(path: str | os.PathLike) -> str:
    """Where rows of *path* are collected until every pair has been written."""
    return os.fspath(path) + ".partial"


def count_results(path: str | os.PathLike) -> int:
    """Number of result rows stored at *path* (header excluded)."""
    if not os.path.exists(path):
        return 0
    with open(path, encoding="utf-8") as handle:
        lines = sum(1 for line in handle if line.strip())
    return max(lines - 1, 0)


def read_results(path: str | os.PathLike, delimiter: str | None = None) -> Iterator[SimilarityResult]:
    """Stream the results stored at *path*.

    Whitespace-delimited by default; pass ``delimiter=","`` for a comma-separated
    copy of the store.
    """
    sep = r"\s+" if delimiter is None else delimiter
    header = pd.read_csv(path, sep=sep, nrows=0, keep_default_na=False, na_filter=False)
    missing = set(COLUMNS) - set(header.columns)
    if missing:
        raise ValueError(f"{path} is not a similarity results file (missing {sorted(missing)})")

    reader = pd.read_csv(
        path,
        sep=sep,
        dtype={"x": str, "y": str, "similarity": np.float64},
        keep_default_na=False,
        na_filter=False,
        chunksize=READ_CHUNK_ROWS,
    )
    with reader:
        for chunk in reader:
            for x, y, similarity in chunk[COLUMNS].itertuples(index=False, name=None):
                yield SimilarityResult(x, y, float(similarity))


__all__ = [
    "HEADER",
    "ResultsWriter",
    "count_results",
    "format_block",
    "format_similarity",
    "partial_results_path",
    "read_results",
    "write_results",
]
