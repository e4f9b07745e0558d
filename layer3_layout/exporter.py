"""
Layer 3 — Layout Export
Download and print outputs for a rendered layout page.
Both read the artifact and never modify it.
"""
import io
import logging
import os
import subprocess
import time
from dataclasses import dataclass
from typing import Dict, Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from error_handlers import ArtifactSaveError, PrintJobError
from .packer import LayoutArtifact

logger = logging.getLogger(__name__)


def artifact_filename(prefix: str = "passport-photos", extension: str = "png") -> str:
    return f"{prefix}-{int(time.time() * 1000)}.{extension}"


def export_artifact(artifact: LayoutArtifact, output_dir: str, filename: Optional[str] = None) -> str:
    """
    Write the page PNG to disk.

    Args:
        artifact: Rendered layout
        output_dir: Target directory (created if missing)
        filename: Optional file name, defaults to passport-photos-<ms>.png

    Returns:
        str: Path of the written file

    Raises:
        ArtifactSaveError: If the file cannot be written
    """
    filepath = os.path.join(output_dir, filename or artifact_filename())
    try:
        os.makedirs(output_dir, exist_ok=True)
        with open(filepath, 'wb') as f:
            f.write(artifact.png)
    except OSError as e:
        logger.error(f"Failed to export layout: {e}")
        raise ArtifactSaveError(filepath, e)

    logger.info(f"Layout exported to {filepath}")
    return filepath


def render_print_pdf(artifact: LayoutArtifact) -> bytes:
    """A4 PDF with the page image filling the sheet, zero margins."""
    packet = io.BytesIO()
    width, height = A4
    pdf = canvas.Canvas(packet, pagesize=A4)
    pdf.setTitle("Passport Photos")

    # Fit to page width, keep aspect ratio
    draw_h = width * artifact.height / artifact.width
    pdf.drawImage(
        ImageReader(io.BytesIO(artifact.png)),
        0,
        height - draw_h,
        width=width,
        height=draw_h,
    )
    pdf.showPage()
    pdf.save()
    return packet.getvalue()


@dataclass
class PrintJob:
    """A print-ready PDF and, if a printer was given, the submission result."""
    pdf_path: str
    printer: Optional[str] = None
    submitted: bool = False
    job_id: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'pdf_path': self.pdf_path,
            'printer': self.printer,
            'submitted': self.submitted,
            'job_id': self.job_id,
        }


def print_artifact(
    artifact: LayoutArtifact,
    output_dir: str,
    printer: Optional[str] = None,
    lp_command: str = "lp",
) -> PrintJob:
    """
    Build the print PDF and optionally send it to a CUPS printer.

    Args:
        artifact: Rendered layout
        output_dir: Where the PDF is written
        printer: CUPS destination; None only writes the PDF

    Raises:
        ArtifactSaveError: If the PDF cannot be written
        PrintJobError: If lp fails
    """
    pdf_path = os.path.join(output_dir, artifact_filename(extension="pdf"))
    try:
        os.makedirs(output_dir, exist_ok=True)
        with open(pdf_path, 'wb') as f:
            f.write(render_print_pdf(artifact))
    except OSError as e:
        logger.error(f"Failed to write print PDF: {e}")
        raise ArtifactSaveError(pdf_path, e)

    job = PrintJob(pdf_path=pdf_path, printer=printer)
    if printer is None:
        logger.info(f"Print PDF ready: {pdf_path}")
        return job

    logger.info(f"Submitting {pdf_path} to printer {printer}")
    try:
        completed = subprocess.run(
            [lp_command, "-d", printer, pdf_path],
            capture_output=True,
            text=True,
            timeout=30,
            check=True,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.error(f"Print submission failed: {e}")
        raise PrintJobError(printer, e)

    job.submitted = True
    job.job_id = completed.stdout.strip() or None
    logger.info(f"Print job submitted: {job.job_id}")
    return job
