import logging
import re
from datetime import date
from sqlalchemy import select, func, case
from sqlalchemy.orm import selectinload

from errors import NotFound, ValidationFailed
from models import (
    Task, Subtask, Comment, Artifact,
    STATUSES, PRIORITIES, PRIORITY_RANK, ARTIFACT_TYPES, utcnow,
)


logger = logging.getLogger(__name__)

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

TASK_FIELDS = (
    "title", "description", "assignee", "due_date", "start_time", "end_time",
    "all_day", "project", "priority", "status",
)
DATE_TIME_FIELDS = ("due_date", "start_time", "end_time")

# explicit null in an update resets these; null for any other field is ignored
CLEARABLE_TASK_FIELDS = {
    "due_date": None,
    "start_time": None,
    "end_time": None,
    "project": "",
    "description": "",
}


def _as_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _task_order():
    """Dated tasks first by date, then high > medium > low, then oldest id."""
    rank = case(PRIORITY_RANK, value=Task.priority, else_=len(PRIORITY_RANK))
    return (Task.due_date.is_(None), Task.due_date.asc(), rank, Task.id)


class TaskStore:
    """Repository over tasks and the records they own (subtasks, comments, artifacts)."""

    def __init__(self, session_factory, inbox=None, human="zhilong", agent="friday"):
        self.SessionLocal = session_factory
        self.inbox = inbox
        self.human = human
        self.agent = agent

    # ---------- validation ----------
    def _check_identity(self, value, what):
        if value not in (self.human, self.agent):
            raise ValidationFailed(f"{what} must be one of: {self.human}, {self.agent}")
        return value

    def _clean_task_field(self, field, value):
        if field == "title":
            if not isinstance(value, str) or not value.strip():
                raise ValidationFailed("Title is required")
            return value.strip()
        if field == "assignee":
            return self._check_identity(value, "Assignee")
        if field == "priority":
            if value not in PRIORITIES:
                raise ValidationFailed(f"Priority must be one of: {', '.join(PRIORITIES)}")
            return value
        if field == "status":
            if value not in STATUSES:
                raise ValidationFailed(f"Status must be one of: {', '.join(STATUSES)}")
            return value
        if field == "all_day":
            return _as_bool(value)
        if field == "due_date":
            if not isinstance(value, str) or not DATE_RE.match(value):
                raise ValidationFailed("due_date must be YYYY-MM-DD")
            try:
                date.fromisoformat(value)
            except ValueError:
                raise ValidationFailed("due_date must be YYYY-MM-DD") from None
            return value
        if field in ("start_time", "end_time"):
            if not isinstance(value, str) or not TIME_RE.match(value):
                raise ValidationFailed(f"{field} must be HH:MM")
            return value
        # project, description
        if not isinstance(value, str):
            raise ValidationFailed(f"{field} must be a string")
        return value

    def _task_patch(self, data):
        """Only keys present in `data` end up in the patch."""
        patch = {}
        for field in TASK_FIELDS:
            if field not in data:
                continue
            value = data[field]
            if field in DATE_TIME_FIELDS and value == "":
                value = None
            if value is None:
                if field in CLEARABLE_TASK_FIELDS:
                    patch[field] = CLEARABLE_TASK_FIELDS[field]
                continue
            patch[field] = self._clean_task_field(field, value)
        return patch

    # ---------- helpers ----------
    def _get(self, db, model, obj_id, label):
        obj = db.get(model, obj_id)
        if obj is None:
            raise NotFound(f"{label} not found")
        return obj

    def _task_view(self, task, comment_count, artifact_count):
        subtasks = sorted(task.subtasks, key=lambda s: (s.sort_order, s.id))
        payload = task.to_dict()
        payload["subtasks"] = [s.to_dict() for s in subtasks]
        payload["subtask_count"] = len(subtasks)
        payload["subtask_completed"] = sum(1 for s in subtasks if s.completed)
        payload["comment_count"] = comment_count
        payload["artifact_count"] = artifact_count
        return payload

    def _task_query(self):
        comment_count = (
            select(func.count(Comment.id)).where(Comment.task_id == Task.id)
            .correlate(Task).scalar_subquery()
        )
        artifact_count = (
            select(func.count(Artifact.id)).where(Artifact.task_id == Task.id)
            .correlate(Task).scalar_subquery()
        )
        return select(Task, comment_count, artifact_count).options(selectinload(Task.subtasks))

    def sync_inbox(self):
        if self.inbox is None:
            return
        tasks = self.agent_open_tasks()
        try:
            self.inbox.sync(tasks)
        except OSError:
            # the database is already committed; the snapshot just stays stale
            logger.exception("Failed to write agent inbox %s", self.inbox.path)

    # ---------- tasks ----------
    def list_tasks(self, assignee=None, status=None, due_from=None, due_to=None):
        stmt = self._task_query()
        if assignee:
            stmt = stmt.where(Task.assignee == assignee)
        if status:
            stmt = stmt.where(Task.status == status)
        if due_from:
            stmt = stmt.where(Task.due_date >= due_from)
        if due_to:
            stmt = stmt.where(Task.due_date <= due_to)
        stmt = stmt.order_by(*_task_order())

        with self.SessionLocal() as db:
            return [self._task_view(t, cc, ac) for t, cc, ac in db.execute(stmt).all()]

    def get_task(self, task_id: int):
        with self.SessionLocal() as db:
            row = db.execute(self._task_query().where(Task.id == task_id)).first()
            if row is None:
                raise NotFound("Task not found")
            return self._task_view(*row)

    def agent_open_tasks(self):
        stmt = (
            select(Task)
            .where(Task.assignee == self.agent, Task.status != "done")
            .order_by(Task.due_date.is_(None), Task.due_date.asc(), Task.id)
        )
        with self.SessionLocal() as db:
            return [t.to_dict() for t in db.execute(stmt).scalars()]

    def create_task(self, data):
        if not data.get("title"):
            raise ValidationFailed("Title is required")
        fields = self._task_patch(data)
        fields.setdefault("assignee", self.human)
        fields.setdefault("status", "pending" if fields["assignee"] == self.agent else "approved")
        fields.setdefault("priority", "medium")
        fields.setdefault("all_day", True)
        if fields["all_day"]:
            fields["start_time"] = None
            fields["end_time"] = None

        with self.SessionLocal() as db:
            now = utcnow()
            task = Task(created_at=now, updated_at=now, **fields)
            db.add(task)
            db.commit()
            payload = task.to_dict()

        logger.info("Created task %s for %s (%s)", payload["id"], payload["assignee"], payload["status"])
        if payload["assignee"] == self.agent:
            self.sync_inbox()
        return payload

    def update_task(self, task_id: int, data):
        with self.SessionLocal() as db:
            task = self._get(db, Task, task_id, "Task")
            for field, value in self._task_patch(data).items():
                setattr(task, field, value)
            if task.all_day:
                task.start_time = None
                task.end_time = None
            task.updated_at = utcnow()
            db.commit()
            payload = task.to_dict()

        self.sync_inbox()
        return payload

    def delete_task(self, task_id: int):
        with self.SessionLocal() as db:
            task = self._get(db, Task, task_id, "Task")
            db.delete(task)
            db.commit()

        logger.info("Deleted task %s", task_id)
        self.sync_inbox()
        return True

    def _set_status(self, task_id: int, status: str):
        with self.SessionLocal() as db:
            task = self._get(db, Task, task_id, "Task")
            task.status = status
            task.updated_at = utcnow()
            db.commit()
            payload = task.to_dict()

        self.sync_inbox()
        return payload

    def approve_task(self, task_id: int):
        return self._set_status(task_id, "approved")

    def reject_task(self, task_id: int):
        return self._set_status(task_id, "rejected")

    # ---------- subtasks ----------
    def list_subtasks(self, task_id: int):
        stmt = select(Subtask).where(Subtask.task_id == task_id).order_by(Subtask.sort_order, Subtask.id)
        with self.SessionLocal() as db:
            return [s.to_dict() for s in db.execute(stmt).scalars()]

    def create_subtask(self, task_id: int, title):
        if not isinstance(title, str) or not title.strip():
            raise ValidationFailed("Title is required")
        with self.SessionLocal() as db:
            self._get(db, Task, task_id, "Task")
            max_order = db.execute(
                select(func.coalesce(func.max(Subtask.sort_order), -1)).where(Subtask.task_id == task_id)
            ).scalar_one()
            subtask = Subtask(task_id=task_id, title=title.strip(), sort_order=max_order + 1)
            db.add(subtask)
            db.commit()
            return subtask.to_dict()

    def update_subtask(self, subtask_id: int, data):
        with self.SessionLocal() as db:
            subtask = self._get(db, Subtask, subtask_id, "Subtask")
            if data.get("title") is not None:
                title = data["title"]
                if not isinstance(title, str) or not title.strip():
                    raise ValidationFailed("Title is required")
                subtask.title = title.strip()
            if data.get("completed") is not None:
                subtask.completed = _as_bool(data["completed"])
            if data.get("sort_order") is not None:
                try:
                    subtask.sort_order = int(data["sort_order"])
                except (TypeError, ValueError):
                    raise ValidationFailed("sort_order must be an integer") from None
            db.commit()
            return subtask.to_dict()

    def delete_subtask(self, subtask_id: int):
        with self.SessionLocal() as db:
            db.delete(self._get(db, Subtask, subtask_id, "Subtask"))
            db.commit()
        return True

    # ---------- comments ----------
    def list_comments(self, task_id: int):
        stmt = select(Comment).where(Comment.task_id == task_id).order_by(Comment.created_at, Comment.id)
        with self.SessionLocal() as db:
            return [c.to_dict() for c in db.execute(stmt).scalars()]

    def create_comment(self, task_id: int, author, content):
        if not isinstance(content, str) or not content.strip():
            raise ValidationFailed("Content is required")
        if not isinstance(author, str) or not author:
            raise ValidationFailed("Author is required")
        self._check_identity(author, "Author")

        with self.SessionLocal() as db:
            self._get(db, Task, task_id, "Task")
            # the human's comments wait for the agent; the agent's own are already seen
            comment = Comment(task_id=task_id, author=author, content=content,
                              notified=(author == self.agent))
            db.add(comment)
            db.commit()
            return comment.to_dict()

    def list_unread_comments(self):
        stmt = (
            select(Comment, Task.title)
            .join(Task, Comment.task_id == Task.id)
            .where(Comment.author == self.human, Comment.notified.is_(False))
            .order_by(Comment.created_at, Comment.id)
        )
        with self.SessionLocal() as db:
            out = []
            for comment, task_title in db.execute(stmt).all():
                row = comment.to_dict()
                row["task_title"] = task_title
                out.append(row)
            return out

    def mark_comment_read(self, comment_id: int):
        with self.SessionLocal() as db:
            comment = self._get(db, Comment, comment_id, "Comment")
            comment.notified = True
            db.commit()
            return comment.to_dict()

    # ---------- artifacts ----------
    def list_artifacts(self, task_id: int):
        stmt = (
            select(Artifact).where(Artifact.task_id == task_id)
            .order_by(Artifact.created_at.desc(), Artifact.id.desc())
        )
        with self.SessionLocal() as db:
            return [a.to_dict() for a in db.execute(stmt).scalars()]

    def list_all_artifacts(self):
        stmt = (
            select(Artifact, Task.title, Task.project)
            .join(Task, Artifact.task_id == Task.id)
            .order_by(Artifact.created_at.desc(), Artifact.id.desc())
        )
        with self.SessionLocal() as db:
            out = []
            for artifact, task_title, project in db.execute(stmt).all():
                row = artifact.to_dict()
                row["task_title"] = task_title
                row["project"] = project or ""
                out.append(row)
            return out

    def create_artifact(self, task_id: int, name, url, type_):
        if not isinstance(name, str) or not name.strip():
            raise ValidationFailed("Name is required")
        if not isinstance(url, str) or not url.strip():
            raise ValidationFailed("URL is required")
        if not isinstance(type_, str) or not type_:
            raise ValidationFailed("Type is required")
        if type_ not in ARTIFACT_TYPES:
            raise ValidationFailed(f"Type must be one of: {', '.join(ARTIFACT_TYPES)}")

        with self.SessionLocal() as db:
            self._get(db, Task, task_id, "Task")
            artifact = Artifact(task_id=task_id, name=name, url=url, type=type_)
            db.add(artifact)
            db.commit()
            return artifact.to_dict()

    def delete_artifact(self, artifact_id: int):
        with self.SessionLocal() as db:
            db.delete(self._get(db, Artifact, artifact_id, "Artifact"))
            db.commit()
        return True
