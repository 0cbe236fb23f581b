"""Export services."""

from .artifacts import render_manifest, render_spreadsheet
from .exporter import ExportResult, PlanExporter
from .storage import LocalObjectStorage, ObjectStorage, SupabaseObjectStorage, build_object_storage

__all__ = [
    "render_spreadsheet",
    "render_manifest",
    "PlanExporter",
    "ExportResult",
    "ObjectStorage",
    "LocalObjectStorage",
    "SupabaseObjectStorage",
    "build_object_storage",
]
