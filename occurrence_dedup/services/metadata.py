"""Dataset metadata sources used to enrich the shortlist for display."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

import pandas as pd
import requests

from ..clients.http_client import get_session
from ..config import GBIF_API_URL, GBIF_DATASET_PAGE, HTTP_TIMEOUT
from ..errors import MetadataSourceError
from ..models import DatasetMetadata

logger = logging.getLogger(__name__)


def dataset_page(dataset_id: str) -> str:
    return GBIF_DATASET_PAGE.format(dataset_id=dataset_id)


class GbifMetadataSource:
    """Look up dataset title and record count in the GBIF registry.

    Answers are cached per dataset id, unknown datasets included. Calling the
    source never raises: a failing request is logged and treated as missing
    metadata. Use :meth:`fetch` to get the error instead.
    """

    def __init__(
        self,
        api_url: str = GBIF_API_URL,
        timeout: float = HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        self._cache: Dict[str, Optional[DatasetMetadata]] = {}

    @property
    def session(self) -> requests.Session:
        return self._session or get_session()

    def _get_json(self, url: str, params: Optional[dict] = None) -> Optional[dict]:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise MetadataSourceError(f"GBIF request {url} failed: {exc}") from exc
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            logger.error("Error from GBIF API: %s - %s", response.status_code, response.text)
            raise MetadataSourceError(f"GBIF API error {response.status_code} for {url}")
        return response.json()

    def fetch(self, dataset_id: str) -> Optional[DatasetMetadata]:
        """Return metadata for *dataset_id*, ``None`` if GBIF does not know it."""
        if dataset_id in self._cache:
            return self._cache[dataset_id]

        dataset = self._get_json(f"{self.api_url}/dataset/{dataset_id}")
        if dataset is None:
            metadata = None
        else:
            search = self._get_json(
                f"{self.api_url}/occurrence/search",
                params={"datasetKey": dataset_id, "limit": 0},
            )
            metadata = DatasetMetadata(
                id=dataset_id,
                url=dataset_page(dataset_id),
                title=dataset.get("title"),
                record_count=search.get("count") if search else None,
            )
        self._cache[dataset_id] = metadata
        return metadata

    def __call__(self, dataset_id: str) -> Optional[DatasetMetadata]:
        try:
            return self.fetch(dataset_id)
        except MetadataSourceError as exc:
            logger.error("Metadata lookup for %s failed: %s", dataset_id, exc)
            return None


# accepted column names in a local metadata table, first match wins
_ID_COLUMNS = ("id", "key", "datasetKey", "dataset_id")
_COUNT_COLUMNS = ("record_count", "occurrence_count", "count")


def _pick(columns, candidates) -> Optional[str]:
    return next((name for name in candidates if name in columns), None)


class TableMetadataSource:
    """Metadata read from a local CSV/TSV export of the dataset registry."""

    def __init__(self, path: str | Path) -> None:
        path = Path(path)
        sep = "\t" if path.suffix.lower() in (".tsv", ".txt") else ","
        frame = pd.read_csv(path, sep=sep, dtype=str)

        id_column = _pick(frame.columns, _ID_COLUMNS)
        if id_column is None:
            raise MetadataSourceError(f"{path} has none of the id columns {_ID_COLUMNS}")
        count_column = _pick(frame.columns, _COUNT_COLUMNS)

        self._records: Dict[str, DatasetMetadata] = {}
        for row in frame.where(frame.notna(), None).to_dict(orient="records"):
            dataset_id = row[id_column]
            if dataset_id is None:
                continue
            count = row.get(count_column) if count_column else None
            self._records[dataset_id] = DatasetMetadata(
                id=dataset_id,
                url=row.get("url") or dataset_page(dataset_id),
                title=row.get("title"),
                record_count=int(float(count)) if count is not None else None,
            )
        logger.info("Loaded metadata for %d datasets from %s", len(self._records), path)

    def __call__(self, dataset_id: str) -> Optional[DatasetMetadata]:
        return self._records.get(dataset_id)

    def __len__(self) -> int:
        return len(self._records)


__all__ = ["GbifMetadataSource", "TableMetadataSource", "dataset_page"]
