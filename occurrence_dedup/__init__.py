"""Top-level package for the occurrence-dedup project.

This package simply exposes the public run() helper so callers can do
`python -m occurrence_dedup run ...` or
`from occurrence_dedup import run; run("occurrence.parquet")`.
"""

from importlib import metadata as _metadata

try:
    __version__: str = _metadata.version("occurrence-dedup")
except _metadata.PackageNotFoundError:  # pragma: no cover – running from source
    __version__ = "0.0.0"

from .workflows.dedup_pipeline import run  # convenience re-export

__all__ = ["run", "__version__"]
