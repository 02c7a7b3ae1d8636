"""Tests for the weekly workbook export."""
import io
from datetime import timedelta

import pytest
from openpyxl import load_workbook

from schoolcrm.domains.reports import excel
from schoolcrm.domains.reports.service import ReportScope, ReportsService
from schoolcrm.domains.tasks.models import AssigneeStatus, utcnow
from schoolcrm.domains.users.roles import Role, power_of


@pytest.fixture
def reports(db, permissions, visibility):
    return ReportsService(db, permissions, visibility, tz="Asia/Yekaterinburg")


def _open(content: bytes):
    return load_workbook(io.BytesIO(content))


class TestExcelHelpers:
    def test_join_many_truncates(self):
        assert excel.join_many(["a", None, "b"]) == "a, b"
        assert excel.join_many(range(12), limit=10) == "0, 1, 2, 3, 4, 5, 6, 7, 8, 9 +2 ещё"

    def test_filenames(self):
        original, ascii_name, rfc5987 = excel.build_filenames("Отчет_недели")
        assert original == "Отчет_недели.xlsx"
        assert ascii_name == "____________.xlsx"
        assert rfc5987.startswith("UTF-8''%D0%9E")

    def test_auto_width_respects_bounds(self):
        wb = excel.create_workbook("tests")
        sheet = excel.add_sheet(wb, "Data", [excel.Column("Short", "a"), excel.Column("Fixed", "b", width=8)])
        sheet.append({"a": "x" * 200, "b": "y"})
        excel.apply_auto_width(sheet)

        assert sheet.ws.column_dimensions["A"].width == 60
        assert sheet.ws.column_dimensions["B"].width == 8
        assert sheet.ws.auto_filter.ref == "A1:B1"
        assert wb.sheetnames == ["Data"]


class TestWeeklyReport:
    def test_sheets_rows_and_tints(self, reports, make_user, make_task):
        deputy = make_user(role="deputy", name="Deputy")
        teacher = make_user(role="teacher", name="Teacher")
        late = make_task(deputy, [teacher])
        finished = make_task(deputy, [teacher], status=AssigneeStatus.DONE)

        report = reports.build_weekly(deputy.id, "Deputy", ReportScope.ME, now=utcnow() + timedelta(days=5))

        wb = _open(report.content)
        assert wb.sheetnames == ["Итоги", "Задачи"]

        summary = {row[0]: row[1] for row in wb["Итоги"].iter_rows(min_row=2, values_only=True)}
        assert summary["Задач"] == 2
        assert summary["Просрочено задач"] == 1
        assert summary["Сформировал"] == "Deputy"

        tasks = wb["Задачи"]
        rows = {row[0].value: row for row in tasks.iter_rows(min_row=2)}
        assert rows[late.number][5].value == "Teacher (В работе)"
        assert rows[late.number][6].value == "0/1"
        assert rows[late.number][0].fill.fgColor.rgb == "FFFFF3CD"
        assert rows[finished.number][0].fill.fgColor.rgb == "FFF3F4F6"

        assert report.filename.startswith("Отчет_недели_Мои_")
        assert report.ascii_filename.isascii()

    def test_all_scope_needs_export_permission(self, reports, make_user):
        teacher = make_user(role="teacher")
        sysadmin = make_user(role="sysadmin")
        assert reports.resolve_scope(teacher.id, "all") is ReportScope.ME
        assert reports.resolve_scope(sysadmin.id, "all") is ReportScope.ALL
        assert reports.resolve_scope(teacher.id, ReportScope.ME) is ReportScope.ME

    def test_my_scope_only_includes_my_tasks(self, reports, make_user, make_task):
        deputy = make_user(role="deputy")
        teacher = make_user(role="teacher")
        make_task(deputy, [teacher])
        make_task(deputy, [make_user()])

        mine = reports.build_weekly(teacher.id, None, "all")
        assert mine.scope is ReportScope.ME
        assert _open(mine.content)["Задачи"].max_row == 2

        everything = reports.build_weekly(deputy.id, None, "all")
        assert everything.scope is ReportScope.ALL
        assert everything.filename.startswith("Отчет_недели_По-всем_")
        assert _open(everything.content)["Задачи"].max_row == 3

    def test_hidden_tasks_follow_visibility(self, reports, make_user, make_task):
        director = make_user(role="director")
        sysadmin = make_user(role="sysadmin")
        secret = make_task(director, [make_user()], hidden=True, min_power=power_of(Role.DIRECTOR))
        public = make_task(director, [make_user()])

        def titles(user):
            report = reports.build_weekly(user.id, None, "all")
            assert report.scope is ReportScope.ALL
            return [row[1] for row in _open(report.content)["Задачи"].iter_rows(min_row=2, values_only=True)]

        assert titles(sysadmin) == [public.title]
        assert titles(director) == [secret.title, public.title]

        summary = _open(reports.build_weekly(sysadmin.id, None, "all").content)["Итоги"]
        assert {row[0]: row[1] for row in summary.iter_rows(min_row=2, values_only=True)}["Задач"] == 1
