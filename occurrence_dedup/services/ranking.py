"""Selection and ordering of similar dataset pairs for manual review."""

from __future__ import annotations

import logging
from collections import abc
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Union

from ..config import SIMILARITY_THRESHOLD
from ..models import CandidatePair, DatasetMetadata, SimilarityResult

logger = logging.getLogger(__name__)

MetadataLookup = Union[Mapping[str, DatasetMetadata], Callable[[str], Optional[DatasetMetadata]]]


def _resolver(metadata_lookup: MetadataLookup) -> Callable[[str], Optional[DatasetMetadata]]:
    if isinstance(metadata_lookup, abc.Mapping):
        return metadata_lookup.get
    return metadata_lookup


def shortlist(
    results: Iterable[SimilarityResult],
    metadata_lookup: MetadataLookup,
    threshold: float = SIMILARITY_THRESHOLD,
) -> List[CandidatePair]:
    """Return the pairs with similarity above *threshold*, most similar first.

    Ties are broken by the larger combined record count. A dataset without
    metadata is logged once and keeps the pair, with its fields left empty.
    """
    retained = [result for result in results if result.similarity > threshold]
    logger.info("%d pair(s) above similarity threshold %.2f", len(retained), threshold)

    resolve = _resolver(metadata_lookup)
    cache: Dict[str, DatasetMetadata] = {}

    def lookup(dataset_id: str) -> DatasetMetadata:
        if dataset_id not in cache:
            metadata = resolve(dataset_id)
            if metadata is None:
                logger.warning("No metadata for dataset %s – keeping pair with empty fields", dataset_id)
                metadata = DatasetMetadata(id=dataset_id)
            cache[dataset_id] = metadata
        return cache[dataset_id]

    candidates = [
        CandidatePair(
            dataset_x=result.dataset_x,
            dataset_y=result.dataset_y,
            similarity=result.similarity,
            metadata_x=lookup(result.dataset_x),
            metadata_y=lookup(result.dataset_y),
        )
        for result in retained
    ]
    candidates.sort(key=lambda pair: (-pair.similarity, -pair.combined_record_count))
    return candidates


class ShortlistRanker:
    """Stateful wrapper around :func:`shortlist` bound to one metadata source."""

    def __init__(self, metadata_lookup: MetadataLookup, threshold: float = SIMILARITY_THRESHOLD) -> None:
        self.metadata_lookup = metadata_lookup
        self.threshold = threshold

    def shortlist(self, results: Iterable[SimilarityResult]) -> List[CandidatePair]:
        return shortlist(results, self.metadata_lookup, self.threshold)


__all__ = ["MetadataLookup", "ShortlistRanker", "shortlist"]
