"""Pipelines wiring the services together."""

from .dedup_pipeline import build_shortlist, compute_similarities, run  # noqa: F401

__all__ = ["build_shortlist", "compute_similarities", "run"]
