"""Occurrence source: fetch and stream the occurrence table.

Only the five columns the similarity signal needs are read, through column
projection, and the table is streamed in batches so it never has to fit in
memory at once.
"""

from __future__ import annotations

import csv
import logging
import os
from pathlib import Path
from typing import Dict, Iterator, List, Optional
from urllib.parse import urlparse

import pandas as pd
import pyarrow.dataset as ds
import requests

from ..clients.http_client import get_session
from ..config import (
    CACHE_DIR,
    DATASET_COLUMN,
    HTTP_TIMEOUT,
    LATITUDE_COLUMN,
    LONGITUDE_COLUMN,
    SPECIES_COLUMN,
    YEAR_COLUMN,
)
from ..errors import OccurrenceSourceError
from ..models import OccurrenceRecord

logger = logging.getLogger(__name__)

BATCH_ROWS: int = 500_000
DOWNLOAD_CHUNK_BYTES: int = 1 << 20

# source column -> OccurrenceRecord field
DEFAULT_COLUMNS: Dict[str, str] = {
    DATASET_COLUMN: "dataset_id",
    LONGITUDE_COLUMN: "longitude",
    LATITUDE_COLUMN: "latitude",
    SPECIES_COLUMN: "species_id",
    YEAR_COLUMN: "year",
}


def _is_remote(source: str) -> bool:
    return urlparse(source).scheme in ("http", "https")


def fetch_source(source: str, cache_dir: str = CACHE_DIR) -> Path:
    """Return a local path for *source*, downloading it first if it is a URL.

    A previously downloaded copy in *cache_dir* is reused.
    """
    if not _is_remote(source):
        path = Path(source)
        if not path.exists():
            raise OccurrenceSourceError(f"occurrence source {source} does not exist")
        return path

    name = os.path.basename(urlparse(source).path) or "occurrences"
    target = Path(cache_dir) / name
    if target.exists():
        logger.info("Using cached occurrence table %s", target)
        return target

    target.parent.mkdir(parents=True, exist_ok=True)
    partial = target.with_name(target.name + ".part")
    logger.info("Downloading occurrence table %s → %s", source, target)
    try:
        with get_session().get(source, stream=True, timeout=HTTP_TIMEOUT) as response:
            response.raise_for_status()
            with open(partial, "wb") as handle:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_BYTES):
                    handle.write(chunk)
    except requests.RequestException as exc:
        partial.unlink(missing_ok=True)
        logger.error("Download of %s failed: %s", source, exc)
        raise OccurrenceSourceError(f"could not download {source}: {exc}") from exc
    partial.replace(target)
    return target


def _table_format(path: Path) -> str:
    suffixes = [suffix.lower() for suffix in path.suffixes if suffix.lower() not in (".gz", ".bz2", ".zip", ".xz")]
    suffix = suffixes[-1] if suffixes else ""
    if suffix == ".parquet" or path.is_dir():
        return "parquet"
    if suffix in (".tsv", ".txt"):
        return "tsv"
    return "csv"


def read_occurrence_batches(
    path: Path,
    columns: Optional[Dict[str, str]] = None,
    batch_rows: int = BATCH_ROWS,
    delimiter: Optional[str] = None,
) -> Iterator[pd.DataFrame]:
    """Yield the occurrence table at *path* as frames with OccurrenceRecord column names."""
    columns = columns or DEFAULT_COLUMNS
    wanted = list(columns)
    table_format = _table_format(path)
    try:
        if table_format == "parquet":
            frames = _parquet_batches(path, wanted, batch_rows)
        else:
            sep = delimiter or ("\t" if table_format == "tsv" else ",")
            frames = pd.read_csv(
                path,
                sep=sep,
                usecols=wanted,
                dtype={name: str for name, field in columns.items() if field == "dataset_id"},
                chunksize=batch_rows,
                quoting=csv.QUOTE_NONE if sep == "\t" else csv.QUOTE_MINIMAL,
            )
        for frame in frames:
            yield frame.rename(columns=columns)
    except (ValueError, KeyError) as exc:
        raise OccurrenceSourceError(f"cannot read columns {wanted} from {path}: {exc}") from exc


def _parquet_batches(path: Path, columns: List[str], batch_rows: int) -> Iterator[pd.DataFrame]:
    # a single file or a directory of part files
    dataset = ds.dataset(path, format="parquet")
    for batch in dataset.to_batches(columns=columns, batch_size=batch_rows):
        yield batch.to_pandas()


def iter_records(frame: pd.DataFrame) -> Iterator[OccurrenceRecord]:
    """Convert a renamed occurrence frame into :class:`OccurrenceRecord` objects."""
    fields = ["dataset_id", "longitude", "latitude", "species_id", "year"]
    cleaned = frame[fields].astype(object).where(frame[fields].notna(), None)
    for dataset_id, longitude, latitude, species_id, year in cleaned.itertuples(index=False, name=None):
        yield OccurrenceRecord(
            dataset_id=str(dataset_id) if dataset_id is not None else None,
            longitude=float(longitude) if longitude is not None else None,
            latitude=float(latitude) if latitude is not None else None,
            species_id=int(species_id) if species_id is not None else None,
            year=int(year) if year is not None else None,
        )


def read_occurrences(
    source: str,
    cache_dir: str = CACHE_DIR,
    columns: Optional[Dict[str, str]] = None,
    batch_rows: int = BATCH_ROWS,
) -> Iterator[Iterator[OccurrenceRecord]]:
    """Yield one stream of :class:`OccurrenceRecord` per batch of *source*."""
    path = fetch_source(source, cache_dir)
    logger.info("Reading occurrence table %s", path)
    for frame in read_occurrence_batches(path, columns, batch_rows):
        yield iter_records(frame)


__all__ = [
    "DEFAULT_COLUMNS",
    "fetch_source",
    "iter_records",
    "read_occurrence_batches",
    "read_occurrences",
]
