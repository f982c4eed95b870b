"""Centralised configuration for occurrence_dedup.

Environment variables are loaded once and all related constants are
grouped by pipeline stage for easier maintenance. Every value here is only a
default: the command-line interface can override each of them.
"""

from __future__ import annotations

import os
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Load environment variables from `.env` (if present)
# ---------------------------------------------------------------------------
load_dotenv()

# ---------------------------------------------------------------------------
# Occurrence source
# ---------------------------------------------------------------------------
OCCURRENCE_SOURCE: str | None = os.getenv("OCCURRENCE_SOURCE")
CACHE_DIR: str = os.getenv("CACHE_DIR", ".cache")

# GBIF column names projected out of the occurrence table
DATASET_COLUMN: str = os.getenv("DATASET_COLUMN", "datasetKey")
LONGITUDE_COLUMN: str = os.getenv("LONGITUDE_COLUMN", "decimalLongitude")
LATITUDE_COLUMN: str = os.getenv("LATITUDE_COLUMN", "decimalLatitude")
SPECIES_COLUMN: str = os.getenv("SPECIES_COLUMN", "speciesKey")
YEAR_COLUMN: str = os.getenv("YEAR_COLUMN", "year")

# ---------------------------------------------------------------------------
# Feature space / similarity
# ---------------------------------------------------------------------------
GEOHASH_PRECISION: int = int(os.getenv("GEOHASH_PRECISION", "2"))
SIMILARITY_THRESHOLD: float = float(os.getenv("SIMILARITY_THRESHOLD", "0.85"))
WORKER_COUNT: int = int(os.getenv("WORKER_COUNT", "6"))
# outer dataset indices handed to a worker per task
CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", "64"))

# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------
RESULTS_PATH: str = os.getenv("RESULTS_PATH", "similarity.txt")
REPORT_DIR: str = os.getenv("REPORT_DIR", "report")

# ---------------------------------------------------------------------------
# Dataset metadata
# ---------------------------------------------------------------------------
GBIF_API_URL: str = os.getenv("GBIF_API_URL", "https://api.gbif.org/v1")
GBIF_DATASET_PAGE: str = "https://www.gbif.org/dataset/{dataset_id}"
METADATA_TABLE: str | None = os.getenv("METADATA_TABLE")
HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "30"))

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# ---------------------------------------------------------------------------
# Re-exported names
# ---------------------------------------------------------------------------
__all__ = [
    # occurrence source
    "OCCURRENCE_SOURCE",
    "CACHE_DIR",
    "DATASET_COLUMN",
    "LONGITUDE_COLUMN",
    "LATITUDE_COLUMN",
    "SPECIES_COLUMN",
    "YEAR_COLUMN",
    # similarity
    "GEOHASH_PRECISION",
    "SIMILARITY_THRESHOLD",
    "WORKER_COUNT",
    "CHUNK_SIZE",
    # outputs
    "RESULTS_PATH",
    "REPORT_DIR",
    # metadata
    "GBIF_API_URL",
    "GBIF_DATASET_PAGE",
    "METADATA_TABLE",
    "HTTP_TIMEOUT",
    # logging
    "LOG_LEVEL",
]
