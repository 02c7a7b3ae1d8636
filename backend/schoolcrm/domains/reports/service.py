import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from schoolcrm.core.config import settings
from schoolcrm.core.ids import as_uuid
from schoolcrm.domains.access.permissions import Action, PermissionEvaluator
from schoolcrm.domains.access.visibility import TaskVisibilityResolver
from schoolcrm.domains.reports import excel
from schoolcrm.domains.tasks.models import AssigneeStatus, Task, TaskAssignee, TaskPriority, utcnow
from schoolcrm.domains.users.models import User

logger = logging.getLogger(__name__)

WINDOW = timedelta(days=7)

STATUS_LABELS = {
    AssigneeStatus.IN_PROGRESS.value: "В работе",
    AssigneeStatus.SUBMITTED.value: "На проверке",
    AssigneeStatus.DONE.value: "Выполнено",
}


class ReportScope(str, enum.Enum):
    ME = "me"
    ALL = "all"


@dataclass(frozen=True)
class WeeklyReport:
    content: bytes
    filename: str
    ascii_filename: str
    rfc5987_filename: str
    scope: ReportScope


class ReportsService:
    def __init__(self, db: Session, permissions: PermissionEvaluator,
                 visibility: TaskVisibilityResolver | None = None, tz: str | None = None):
        self.db = db
        self.permissions = permissions
        self.visibility = visibility or TaskVisibilityResolver(db, permissions)
        self.tz = ZoneInfo(tz or settings.REPORT_TIMEZONE)

    def _format(self, moment: datetime | None, with_time: bool = True) -> str:
        if moment is None:
            return ""
        local = _aware(moment).astimezone(self.tz)
        return local.strftime("%d.%m.%Y %H:%M" if with_time else "%d.%m.%Y")

    def resolve_scope(self, actor_id: object, requested: ReportScope | str) -> ReportScope:
        """``all`` silently narrows to ``me`` without ``report.exportAll``."""
        scope = ReportScope(requested)
        if scope is ReportScope.ALL and not self.permissions.can(actor_id, Action.REPORT_EXPORT_ALL):
            return ReportScope.ME
        return scope

    def _load_tasks(self, actor_id: object, scope: ReportScope, start: datetime, end: datetime) -> list[Task]:
        query = (
            select(Task)
            .options(selectinload(Task.assignees))
            .where(or_(Task.created_at.between(start, end), Task.due_date.between(start, end)))
            .order_by(Task.number)
        )
        if scope is ReportScope.ME:
            uid = as_uuid(actor_id)
            mine = select(TaskAssignee.task_id).where(TaskAssignee.user_id == uid)
            query = query.where(or_(Task.created_by_id == uid, Task.id.in_(mine)))
        tasks = self.db.execute(query).scalars().all()
        # hidden tasks stay out of every scope unless the actor may see them
        uid = as_uuid(actor_id)
        return [
            t for t in tasks
            if not t.hidden or t.created_by_id == uid or self.visibility.can_see(actor_id, t.id)
        ]

    def build_weekly(self, actor_id: object, actor_name: str | None, requested: ReportScope | str = ReportScope.ME,
                     now: datetime | None = None) -> WeeklyReport:
        scope = self.resolve_scope(actor_id, requested)
        end = now or utcnow()
        start = end - WINDOW

        tasks = self._load_tasks(actor_id, scope, start, end)
        user_ids = {a.user_id for t in tasks for a in t.assignees}
        names = dict(self.db.execute(select(User.id, User.name).where(User.id.in_(user_ids))).all()) if user_ids else {}

        assignees = [a for t in tasks for a in t.assignees]
        completed = [a for a in assignees if a.completed_at and start <= _aware(a.completed_at) <= end]
        waiting = [a for a in assignees if a.status == AssigneeStatus.SUBMITTED.value]
        overdue = [t for t in tasks if _aware(t.due_date) < end and any(a.status != AssigneeStatus.DONE.value for a in t.assignees)]

        wb = excel.create_workbook(settings.REPORT_CREATOR)

        summary = excel.add_sheet(wb, "Итоги", [
            excel.Column("Параметр", "k", wrap=True),
            excel.Column("Значение", "v", wrap=True),
        ])
        summary.append({"k": "Период", "v": f"с {self._format(start)} по {self._format(end)} ({self.tz.key})"})
        summary.append({"k": "Часовой пояс", "v": self.tz.key})
        summary.append({"k": "Скоуп", "v": "Мои" if scope is ReportScope.ME else "По всем"})
        summary.append({"k": "Сформировал", "v": actor_name or "—"})
        summary.append({"k": "Задач", "v": len(tasks)})
        summary.append({"k": "Назначений выполнено", "v": len(completed)})
        summary.append({"k": "Ожидают проверки", "v": len(waiting)})
        summary.append({"k": "Просрочено задач", "v": len(overdue)})
        excel.enable_wrap_all(summary.ws)
        excel.apply_auto_width(summary)

        sheet = excel.add_sheet(wb, "Задачи", [
            excel.Column("№", "number", width=8),
            excel.Column("Название", "title", wrap=True),
            excel.Column("Автор", "author"),
            excel.Column("Срок", "due"),
            excel.Column("Приоритет", "priority"),
            excel.Column("Исполнители", "assignees", wrap=True),
            excel.Column("Выполнено", "progress"),
            excel.Column("На проверке", "waiting", wrap=True),
        ])
        overdue_ids = {t.id for t in overdue}
        for task in tasks:
            done = sum(1 for a in task.assignees if a.status == AssigneeStatus.DONE.value)
            row = sheet.append({
                "number": task.number,
                "title": task.title,
                "author": task.created_by_name or "",
                "due": self._format(task.due_date, with_time=False),
                "priority": "Высокий" if task.priority == TaskPriority.HIGH.value else "Обычный",
                "assignees": excel.join_many(
                    f"{names.get(a.user_id, a.user_id)} ({STATUS_LABELS.get(a.status, a.status)})"
                    for a in task.assignees
                ),
                "progress": f"{done}/{len(task.assignees)}",
                "waiting": excel.join_many(
                    names.get(a.user_id, a.user_id) for a in task.assignees if a.status == AssigneeStatus.SUBMITTED.value
                ),
            })
            if task.id in overdue_ids:
                excel.tint_row(sheet.ws, row, "warning")
            elif task.assignees and done == len(task.assignees):
                excel.tint_row(sheet.ws, row, "muted")
        excel.apply_auto_width(sheet)

        scope_label = "Мои" if scope is ReportScope.ME else "По-всем"
        base = f"Отчет_недели_{scope_label}_{end.astimezone(self.tz).strftime('%Y-%m-%d_%H-%M')}"
        original, ascii_name, rfc5987 = excel.build_filenames(base)

        logger.info(f"Weekly report ({scope.value}) built for {actor_id}: {len(tasks)} task(s)")
        return WeeklyReport(
            content=excel.to_bytes(wb),
            filename=original,
            ascii_filename=ascii_name,
            rfc5987_filename=rfc5987,
            scope=scope,
        )


def _aware(moment: datetime) -> datetime:
    """SQLite hands back naive datetimes; they are stored as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment
