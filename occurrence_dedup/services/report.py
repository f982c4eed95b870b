"""Tabular rendering of the shortlist for manual review."""

from __future__ import annotations

import html
import logging
from pathlib import Path
from typing import Dict, Optional, Sequence

import pandas as pd

from ..models import CandidatePair, DatasetMetadata

logger = logging.getLogger(__name__)

TSV_NAME: str = "shortlist.tsv"
HTML_NAME: str = "shortlist.html"


def shortlist_frame(candidates: Sequence[CandidatePair]) -> pd.DataFrame:
    """One row per candidate pair, in shortlist order."""
    rows = [pair.as_row() for pair in candidates]
    columns = [
        "x", "y", "similarity",
        "x_title", "x_url", "x_record_count",
        "y_title", "y_url", "y_record_count",
    ]
    return pd.DataFrame(rows, columns=columns)


def _link(metadata: DatasetMetadata) -> str:
    label = html.escape(metadata.title or metadata.id)
    if not metadata.url:
        return label
    return f'<a href="{html.escape(metadata.url, quote=True)}">{label}</a>'


def _count(value: Optional[int]) -> str:
    return "" if value is None else f"{value:,}"


def render_html(candidates: Sequence[CandidatePair], title: str = "Candidate duplicate datasets") -> str:
    table = pd.DataFrame(
        [
            {
                "Similarity": f"{pair.similarity:.4f}",
                "Dataset X": _link(pair.metadata_x),
                "Records X": _count(pair.metadata_x.record_count),
                "Dataset Y": _link(pair.metadata_y),
                "Records Y": _count(pair.metadata_y.record_count),
            }
            for pair in candidates
        ],
        columns=["Similarity", "Dataset X", "Records X", "Dataset Y", "Records Y"],
    )
    body = table.to_html(index=False, escape=False, border=0, classes="shortlist")
    return (
        "<!DOCTYPE html>\n<html>\n<head><meta charset=\"utf-8\">"
        f"<title>{html.escape(title)}</title></head>\n<body>\n"
        f"<h1>{html.escape(title)}</h1>\n<p>{len(candidates)} pair(s)</p>\n{body}\n</body>\n</html>\n"
    )


def render_report(candidates: Sequence[CandidatePair], directory: str | Path) -> Dict[str, Path]:
    """Write ``shortlist.tsv`` and ``shortlist.html`` into *directory*."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    tsv_path = directory / TSV_NAME
    shortlist_frame(candidates).to_csv(tsv_path, sep="\t", index=False)

    html_path = directory / HTML_NAME
    html_path.write_text(render_html(candidates), encoding="utf-8")

    logger.info("Rendered %d candidate pair(s) to %s", len(candidates), directory)
    return {"tsv": tsv_path, "html": html_path}


__all__ = ["render_html", "render_report", "shortlist_frame"]
