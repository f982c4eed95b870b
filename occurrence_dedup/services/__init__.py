"""Service layer modules grouping business logic by concern.

This module provides convenience re-exports so that callers can simply do for
example `from occurrence_dedup.services import CellIndexer` without having to
know which underlying module provides the symbol.
"""

from .cells import CellIndexer  # noqa: F401
from .aggregation import Aggregator, aggregate  # noqa: F401
from .vectors import VectorBuilder, build_vectors  # noqa: F401
from .similarity import SimilarityEngine, compute_all_pairs, cosine_similarity  # noqa: F401
from .ranking import ShortlistRanker, shortlist  # noqa: F401
from .storage import ResultsWriter, read_results, write_results  # noqa: F401

__all__ = [
    "CellIndexer",
    "Aggregator",
    "aggregate",
    "VectorBuilder",
    "build_vectors",
    "SimilarityEngine",
    "compute_all_pairs",
    "cosine_similarity",
    "ShortlistRanker",
    "shortlist",
    "ResultsWriter",
    "read_results",
    "write_results",
]
