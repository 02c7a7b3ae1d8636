from fastapi import APIRouter, Response

from schoolcrm.core.dependencies import CurrentUser, DbSession
from schoolcrm.domains.access.dependencies import Permissions, Visibility
from schoolcrm.domains.reports.excel import XLSX_MEDIA_TYPE
from schoolcrm.domains.reports.schemas import WeeklyReportRequest
from schoolcrm.domains.reports.service import ReportsService

router = APIRouter()


@router.post("/weekly")
def export_weekly_report(db: DbSession, current_user: CurrentUser, permissions: Permissions,
                         visibility: Visibility, request: WeeklyReportRequest | None = None):
    """Download the last seven days as an ``.xlsx`` workbook."""
    service = ReportsService(db, permissions, visibility)
    report = service.build_weekly(
        current_user.sub,
        current_user.name,
        request.scope if request else WeeklyReportRequest().scope,
    )
    return Response(
        content=report.content,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": (
                f'attachment; filename="{report.ascii_filename}"; filename*={report.rfc5987_filename}'
            ),
            "Cache-Control": "no-store",
            "X-Report-Scope": report.scope.value,
        },
    )
