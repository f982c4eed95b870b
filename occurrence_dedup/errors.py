"""Exceptions raised by the duplicate-detection pipeline."""

from __future__ import annotations

from typing import List, Sequence, Tuple

# Half-open range of outer dataset indices handled by one worker task
OuterRange = Tuple[int, int]


class DedupError(Exception):
    """Base class for every error the pipeline raises on purpose."""


class DimensionMismatchError(DedupError):
    """A vector does not live in the shared cell index space.

    Always fatal: it means vector construction broke an invariant, and any
    similarity computed from such a vector would be meaningless.
    """


class IndexerFrozenError(DedupError):
    """A new cell key reached a CellIndexer after it was frozen."""


class OccurrenceSourceError(DedupError):
    """The occurrence table could not be fetched or lacks required columns."""


class MetadataSourceError(DedupError):
    """The dataset metadata service answered with an unexpected error."""


class InvalidRangeError(DedupError, ValueError):
    """Requested outer ranges fall outside the dataset order or overlap."""


class PartialComputationError(DedupError):
    """Some similarity slices failed; the listed outer ranges are missing."""

    def __init__(self, failed_ranges: Sequence[OuterRange], errors: Sequence[BaseException] = ()):
        self.failed_ranges: List[OuterRange] = sorted(failed_ranges)
        self.errors: List[BaseException] = list(errors)
        spans = ",".join(f"{start}:{stop}" for start, stop in self.failed_ranges)
        super().__init__(
            f"{len(self.failed_ranges)} similarity slice(s) failed; resume with --ranges {spans}"
        )


__all__ = [
    "OuterRange",
    "DedupError",
    "DimensionMismatchError",
    "IndexerFrozenError",
    "OccurrenceSourceError",
    "MetadataSourceError",
    "InvalidRangeError",
    "PartialComputationError",
]
