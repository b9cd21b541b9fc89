"""
Technician report endpoints
view / view-pdf render inline as PDF, download returns the original file
"""

from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..auth import CurrentUser, get_current_user
from ..database import get_db
from ..services.report_service import ReportFile, ReportService

router = APIRouter(prefix="/reports", tags=["Reports"])

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def get_report_service(db: Session = Depends(get_db)) -> ReportService:
    return ReportService(db)


def content_disposition(disposition: str, filename: str) -> str:
    """ASCII-only filename plus the RFC 5987 UTF-8 form so any stored name survives the header"""
    fallback = "".join(
        ch if 32 <= ord(ch) < 127 and ch not in '"\\' else "_" for ch in filename
    )
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def _file_response(report: ReportFile, disposition: str, extra_headers: dict = None) -> Response:
    headers = {"Content-Disposition": content_disposition(disposition, report.filename)}
    if extra_headers:
        headers.update(extra_headers)
    return Response(content=report.content, media_type=report.media_type, headers=headers)


@router.get("/{attachment_id}/view")
async def view_report(
    attachment_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    report = await service.view(attachment_id, current_user)
    return _file_response(report, "inline")


@router.get("/{attachment_id}/view-pdf")
async def view_report_pdf(
    attachment_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    report = await service.view_pdf(attachment_id, current_user)
    return _file_response(report, "inline", NO_CACHE_HEADERS)


@router.get("/{attachment_id}/download")
async def download_report(
    attachment_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    report = await service.download(attachment_id, current_user)
    return _file_response(report, "attachment")
