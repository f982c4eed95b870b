"""Command-line entry point: ``python -m occurrence_dedup <command>``."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .logging_config import logging as _  # noqa: F401  # ensure config applied early
from . import config
from .errors import DedupError, OuterRange
from .workflows.dedup_pipeline import build_shortlist, compute_similarities, metadata_source, run

logger = logging.getLogger(__name__)


def parse_ranges(text: str) -> List[OuterRange]:
    """Parse ``"0:64,128:192"`` into ``[(0, 64), (128, 192)]``."""
    ranges = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        start, sep, stop = part.partition(":")
        if not sep:
            raise argparse.ArgumentTypeError(f"range {part!r} is not of the form start:stop")
        try:
            start, stop = int(start), int(stop)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(f"range {part!r} is not of the form start:stop") from exc
        if not 0 <= start < stop:
            raise argparse.ArgumentTypeError(f"range {part!r} must satisfy 0 <= start < stop")
        ranges.append((start, stop))
    return ranges


def _add_compute_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--source", default=config.OCCURRENCE_SOURCE,
                        help="occurrence table: parquet/CSV/TSV path or http(s) URL")
    parser.add_argument("--precision", type=int, default=config.GEOHASH_PRECISION,
                        help="geohash characters per cell (default: %(default)s)")
    parser.add_argument("--workers", type=int, default=config.WORKER_COUNT,
                        help="similarity worker processes (default: %(default)s)")
    parser.add_argument("--chunk-size", type=int, default=config.CHUNK_SIZE,
                        help="outer dataset indices per worker task (default: %(default)s)")
    parser.add_argument("--cache-dir", default=config.CACHE_DIR,
                        help="download directory for remote sources (default: %(default)s)")


def _add_shortlist_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--threshold", type=float, default=config.SIMILARITY_THRESHOLD,
                        help="keep pairs strictly above this similarity (default: %(default)s)")
    parser.add_argument("--metadata-table", default=config.METADATA_TABLE,
                        help="local dataset table instead of the GBIF API")
    parser.add_argument("--report-dir", default=config.REPORT_DIR,
                        help="directory for shortlist.tsv/html (default: %(default)s)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="occurrence_dedup",
        description="Find likely-duplicate occurrence datasets by cosine similarity.",
    )
    parser.add_argument("--results", default=config.RESULTS_PATH,
                        help="similarity results file (default: %(default)s)")
    commands = parser.add_subparsers(dest="command", required=True)

    compute = commands.add_parser("compute", help="compute all-pairs similarities")
    _add_compute_options(compute)
    compute.add_argument("--ranges", type=parse_ranges,
                         help="only compute these outer ranges, appending (e.g. 0:64,128:192)")

    ranking = commands.add_parser("shortlist", help="rank stored similarities and render the report")
    _add_shortlist_options(ranking)

    both = commands.add_parser("run", help="compute (unless cached) then shortlist")
    _add_compute_options(both)
    _add_shortlist_options(both)
    both.add_argument("--recompute", action="store_true",
                      help="recompute even if the results file exists")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command in ("compute", "run") and not args.source:
        logger.error("No occurrence source: pass --source or set OCCURRENCE_SOURCE")
        return 2

    try:
        if args.command == "compute":
            compute_similarities(
                args.source,
                args.results,
                precision=args.precision,
                workers=args.workers,
                chunk_size=args.chunk_size,
                ranges=args.ranges,
                cache_dir=args.cache_dir,
            )
        elif args.command == "shortlist":
            candidates = build_shortlist(
                args.results,
                metadata_source(args.metadata_table),
                args.threshold,
                args.report_dir,
            )
            logger.info("Shortlisted %d candidate pair(s)", len(candidates))
        else:
            candidates = run(
                args.source,
                args.results,
                recompute=args.recompute,
                threshold=args.threshold,
                report_dir=args.report_dir,
                metadata_lookup=metadata_source(args.metadata_table),
                precision=args.precision,
                workers=args.workers,
                chunk_size=args.chunk_size,
                cache_dir=args.cache_dir,
            )
            logger.info("Shortlisted %d candidate pair(s)", len(candidates))
    except DedupError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
