"""
Layer 3 — Layout
Grid packing of the best photos onto a printable page, plus the download
and print outputs for the rendered page.
"""
from .packer import (
    LayoutSpec,
    LayoutPage,
    LayoutArtifact,
    LayoutResult,
    LAYOUT_VARIANTS,
    DEFAULT_VARIANT,
    available_variants,
    compute_page,
    generate_layout,
    get_layout_spec,
    render_page,
)
from .exporter import PrintJob, export_artifact, print_artifact, render_print_pdf

__all__ = [
    'LayoutSpec',
    'LayoutPage',
    'LayoutArtifact',
    'LayoutResult',
    'LAYOUT_VARIANTS',
    'DEFAULT_VARIANT',
    'available_variants',
    'compute_page',
    'generate_layout',
    'get_layout_spec',
    'render_page',
    'PrintJob',
    'export_artifact',
    'print_artifact',
    'render_print_pdf',
]
