from pydantic import BaseModel

from schoolcrm.domains.reports.service import ReportScope


class WeeklyReportRequest(BaseModel):
    scope: ReportScope = ReportScope.ME
