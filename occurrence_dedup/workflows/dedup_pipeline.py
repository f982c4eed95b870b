"""End-to-end duplicate-dataset detection pipeline.

Two stages, decoupled by the flat similarity results file:

1. ``compute_similarities`` – occurrence table → cell counts → vectors →
   all-pairs cosine similarity → results file (expensive).
2. ``build_shortlist`` – results file → ranked candidate pairs → report
   (cheap, can be re-run without recomputing similarities).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..logging_config import logging as _  # noqa: F401  # ensure config applied early
from ..config import (
    CACHE_DIR,
    CHUNK_SIZE,
    GEOHASH_PRECISION,
    METADATA_TABLE,
    REPORT_DIR,
    RESULTS_PATH,
    SIMILARITY_THRESHOLD,
    WORKER_COUNT,
)
from ..errors import OuterRange
from ..models import CandidatePair
from ..services.aggregation import Aggregator
from ..services.cells import CellIndexer
from ..services.metadata import GbifMetadataSource, TableMetadataSource
from ..services.occurrences import read_occurrences
from ..services.ranking import MetadataLookup, shortlist
from ..services.report import render_report
from ..services.similarity import SimilarityEngine
from ..services.storage import ResultsWriter, count_results, partial_results_path, read_results
from ..services.vectors import VectorBuilder

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ComputeStats:
    records_seen: int = 0
    records_retained: int = 0
    cells: int = 0
    datasets: int = 0
    pairs_written: int = 0


def compute_similarities(
    source: str,
    results_path: str = RESULTS_PATH,
    precision: int = GEOHASH_PRECISION,
    workers: int = WORKER_COUNT,
    chunk_size: int = CHUNK_SIZE,
    ranges: Optional[Sequence[OuterRange]] = None,
    cache_dir: str = CACHE_DIR,
) -> ComputeStats:
    """Run the expensive stage and write every pair to *results_path*.

    Rows go to ``<results_path>.partial`` first; the file only takes the name
    *results_path* once it holds every pair, so a failed or interrupted run
    never leaves a results file behind that later stages would trust. Without
    *ranges* the partial file is started afresh; with *ranges* only those outer
    slices are computed and appended to it, to complete an earlier run.
    """
    logger.info("Starting similarity computation for %s", source)

    # 1. Single-threaded aggregation grows the cell index space
    indexer = CellIndexer(precision)
    aggregator = Aggregator(indexer)
    counts = []
    for records in read_occurrences(source, cache_dir=cache_dir):
        counts.extend(aggregator.aggregate(records))

    # 2. Fix the cell space, then build one sparse vector per dataset
    indexer.freeze()
    vectors = VectorBuilder().build(counts, indexer.cell_count(), datasets=aggregator.stats.datasets_seen)
    del counts

    # 3. Parallel all-pairs similarity, one buffered block per slice
    partial_path = partial_results_path(results_path)
    if ranges is None and os.path.exists(partial_path):
        logger.info("Discarding previous partial results %s", partial_path)
        os.remove(partial_path)

    engine = SimilarityEngine(workers=workers, chunk_size=chunk_size)
    order = engine.order(vectors)
    with ResultsWriter(partial_path) as writer:
        for block in engine.compute_blocks(vectors, ranges):
            writer.write_block(block, order)

    # 4. Publish the results only once every pair is present
    expected = len(order) * (len(order) - 1) // 2
    stored = count_results(partial_path)
    if stored == expected:
        os.replace(partial_path, results_path)
        logger.info("All %d pairs stored in %s", expected, results_path)
    else:
        logger.warning(
            "%s holds %d of %d pairs; results not published", partial_path, stored, expected
        )

    stats = ComputeStats(
        records_seen=aggregator.stats.seen,
        records_retained=aggregator.stats.retained,
        cells=indexer.cell_count(),
        datasets=len(vectors),
        pairs_written=writer.pairs_written,
    )
    _log_stats(stats)
    return stats


def metadata_source(metadata_table: Optional[str] = METADATA_TABLE) -> MetadataLookup:
    """Local metadata table when configured, the GBIF registry otherwise."""
    if metadata_table:
        return TableMetadataSource(metadata_table)
    return GbifMetadataSource()


def build_shortlist(
    results_path: str = RESULTS_PATH,
    metadata_lookup: Optional[MetadataLookup] = None,
    threshold: float = SIMILARITY_THRESHOLD,
    report_dir: Optional[str] = REPORT_DIR,
) -> List[CandidatePair]:
    """Rank the stored results and, if *report_dir* is set, render the report."""
    logger.info("Building shortlist from %s (threshold %.2f)", results_path, threshold)
    if metadata_lookup is None:
        metadata_lookup = metadata_source()
    candidates = shortlist(read_results(results_path), metadata_lookup, threshold)
    if report_dir:
        render_report(candidates, report_dir)
    return candidates


def run(
    source: str,
    results_path: str = RESULTS_PATH,
    recompute: bool = False,
    threshold: float = SIMILARITY_THRESHOLD,
    report_dir: Optional[str] = REPORT_DIR,
    metadata_lookup: Optional[MetadataLookup] = None,
    **compute_options,
) -> List[CandidatePair]:
    """Execute both stages; reuse an existing results file unless *recompute*."""
    if recompute or not os.path.exists(results_path):
        compute_similarities(source, results_path, **compute_options)
    else:
        logger.info("Reusing similarity results in %s", results_path)
    return build_shortlist(results_path, metadata_lookup, threshold, report_dir)


def _log_stats(stats: ComputeStats) -> None:
    logger.info("=== Similarity Computation Statistics ===")
    logger.info("Occurrence records read: %d", stats.records_seen)
    logger.info("Records retained: %d", stats.records_retained)
    logger.info("Distinct cells: %d", stats.cells)
    logger.info("Datasets: %d", stats.datasets)
    logger.info("Pairs written: %d", stats.pairs_written)
    logger.info("=========================================")

__all__ = ["ComputeStats", "build_shortlist", "compute_similarities", "metadata_source", "run"]
