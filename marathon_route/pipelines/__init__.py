"""End-to-end extraction pipelines."""

from .arcgis import run_arcgis_pipeline
from .tiles import run_tile_pipeline

__all__ = ["run_arcgis_pipeline", "run_tile_pipeline"]
