"""
Technician report retrieval
Serves uploaded job reports, converting photo reports to single-page PDFs on the fly
"""

import io
import logging
import os
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException
from PIL import Image
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from sqlalchemy.orm import Session

from ..config import REPORTS_BUCKET
from ..models import Job, JobAttachment
from . import storage_service
from .storage_service import StorageError

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


@dataclass
class ReportFile:
    content: bytes
    filename: str
    media_type: str


def image_to_pdf(image_bytes: bytes) -> bytes:
    """Wrap an image in a one-page PDF whose page matches the image size"""
    image = Image.open(io.BytesIO(image_bytes))
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    width, height = image.size

    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=(width, height))
    pdf.drawImage(ImageReader(image), 0, 0, width=width, height=height)
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def pdf_filename(file_name: str) -> str:
    """report.jpg -> report.pdf"""
    stem, _ext = os.path.splitext(file_name or "report")
    return f"{stem or 'report'}.pdf"


def to_pdf(content: bytes, mime_type: str) -> Optional[bytes]:
    """
    Images become PDFs; PDFs pass through unchanged.
    Returns None when the content is not a PDF and cannot be converted.
    """
    if mime_type == PDF_MIME_TYPE:
        return content
    if mime_type and mime_type.startswith("image/"):
        try:
            pdf_bytes = image_to_pdf(content)
        except Exception as e:
            logger.error(f"❌ Error converting image to PDF, serving original file: {e}")
            return None
        logger.info(f"✅ Image converted to PDF ({len(pdf_bytes)} bytes)")
        return pdf_bytes
    logger.info(f"ℹ️ Unsupported file type {mime_type}, returning as-is")
    return None


def render_report(content: bytes, attachment: JobAttachment) -> ReportFile:
    """PDF rendering of an attachment, or the original bytes when it cannot be converted"""
    pdf_bytes = to_pdf(content, attachment.mime_type)
    if pdf_bytes is None:
        return ReportFile(
            content=content,
            filename=attachment.file_name or "report",
            media_type=attachment.mime_type or "application/octet-stream",
        )
    return ReportFile(
        content=pdf_bytes,
        filename=pdf_filename(attachment.file_name),
        media_type=PDF_MIME_TYPE,
    )


class ReportService:
    def __init__(self, db: Session, bucket: str = REPORTS_BUCKET):
        self.db = db
        self.bucket = bucket

    def get_attachment(self, attachment_id: str, user) -> JobAttachment:
        attachment = (
            self.db.query(JobAttachment)
            .join(Job, Job.id == JobAttachment.job_id)
            .filter(JobAttachment.id == attachment_id, Job.organization_id == user.organization_id)
            .first()
        )
        if not attachment:
            raise HTTPException(status_code=404, detail="Not found")
        return attachment

    def _storage_path(self, attachment: JobAttachment) -> str:
        try:
            return storage_service.storage_path_from_url(attachment.file_url, self.bucket)
        except StorageError as e:
            logger.error(f"❌ Unable to parse storage path from {attachment.file_url}")
            raise HTTPException(status_code=500, detail="Invalid file URL") from e

    async def view(self, attachment_id: str, user) -> ReportFile:
        """Fetch through a signed URL and render as PDF"""
        attachment = self.get_attachment(attachment_id, user)
        path = self._storage_path(attachment)
        try:
            content = await storage_service.fetch_signed_object(self.bucket, path)
        except StorageError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e
        return render_report(content, attachment)

    async def view_pdf(self, attachment_id: str, user) -> ReportFile:
        """Download with service credentials and render as PDF"""
        attachment = self.get_attachment(attachment_id, user)
        path = self._storage_path(attachment)
        try:
            content = await storage_service.download_object(self.bucket, path)
        except StorageError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e
        return render_report(content, attachment)

    async def download(self, attachment_id: str, user) -> ReportFile:
        """Original bytes, original type"""
        attachment = self.get_attachment(attachment_id, user)
        path = self._storage_path(attachment)
        try:
            content = await storage_service.fetch_signed_object(self.bucket, path)
        except StorageError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e
        return ReportFile(
            content=content,
            filename=attachment.file_name or "download",
            media_type=attachment.mime_type or "application/octet-stream",
        )
