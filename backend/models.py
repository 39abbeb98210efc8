# models.py
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from db import Base

STATUSES = ("pending", "approved", "in-progress", "done", "rejected")
PRIORITIES = ("low", "medium", "high")
PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}
ARTIFACT_TYPES = ("doc", "pdf", "link", "image", "file", "html")


def utcnow():
    """Naive UTC now, the way SQLite stores it."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso_utc(d: datetime | None):
    """Safe ISO string for JSON. Returns None if d is None."""
    if d is None:
        return None
    if d.tzinfo:
        d = d.astimezone(timezone.utc).replace(tzinfo=None)
    return d.replace(microsecond=0).isoformat() + "Z"


class Task(Base):
    __tablename__ = "tasks"

    id          = Column(Integer, primary_key=True, autoincrement=True)
    title       = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    assignee    = Column(String(32), nullable=False, index=True)
    due_date    = Column(String(10), nullable=True, index=True)   # YYYY-MM-DD
    start_time  = Column(String(5), nullable=True)                # HH:MM, only when not all-day
    end_time    = Column(String(5), nullable=True)
    all_day     = Column(Boolean, nullable=False, default=True)
    project     = Column(String(255), nullable=False, default="")
    priority    = Column(String(8), nullable=False, default="medium")
    status      = Column(String(16), nullable=False, default="approved", index=True)

    created_at  = Column(DateTime, nullable=False, default=utcnow)
    updated_at  = Column(DateTime, nullable=False, default=utcnow)

    subtasks  = relationship("Subtask", back_populates="task", cascade="all, delete-orphan")
    comments  = relationship("Comment", back_populates="task", cascade="all, delete-orphan")
    artifacts = relationship("Artifact", back_populates="task", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description or "",
            "assignee": self.assignee,
            "due_date": self.due_date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "all_day": int(bool(self.all_day)),
            "project": self.project or "",
            "priority": self.priority,
            "status": self.status,
            "created_at": iso_utc(self.created_at),
            "updated_at": iso_utc(self.updated_at),
        }


class Subtask(Base):
    __tablename__ = "subtasks"

    id         = Column(Integer, primary_key=True, autoincrement=True)
    task_id    = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), index=True, nullable=False)
    title      = Column(String(255), nullable=False)
    completed  = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    task = relationship("Task", back_populates="subtasks")

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "title": self.title,
            "completed": int(bool(self.completed)),
            "sort_order": self.sort_order,
            "created_at": iso_utc(self.created_at),
        }


class Comment(Base):
    __tablename__ = "comments"

    id         = Column(Integer, primary_key=True, autoincrement=True)
    task_id    = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), index=True, nullable=False)
    author     = Column(String(32), nullable=False)
    content    = Column(Text, nullable=False)
    notified   = Column(Boolean, nullable=False, default=False)  # agent has consumed it
    created_at = Column(DateTime, nullable=False, default=utcnow)

    task = relationship("Task", back_populates="comments")

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "author": self.author,
            "content": self.content,
            "notified": int(bool(self.notified)),
            "created_at": iso_utc(self.created_at),
        }


class Artifact(Base):
    __tablename__ = "artifacts"

    id         = Column(Integer, primary_key=True, autoincrement=True)
    task_id    = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), index=True, nullable=False)
    name       = Column(String(255), nullable=False)
    url        = Column(Text, nullable=False)
    type       = Column(String(8), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    task = relationship("Task", back_populates="artifacts")

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "name": self.name,
            "url": self.url,
            "type": self.type,
            "created_at": iso_utc(self.created_at),
        }
