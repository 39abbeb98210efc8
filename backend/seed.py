import logging
from datetime import date, timedelta
from sqlalchemy import func, select
from config import Config
from db import init_db
from inbox import AgentInbox
from logging_setup import setup_logging
from models import Task
from store import TaskStore


logger = logging.getLogger(__name__)

SAMPLE_TASKS = [
    # (title, description, assignee, days from today, priority, status)
    ("Review weekly goals", "Go through this week's priorities and adjust as needed",
     "human", 0, "high", "approved"),
    ("Research vector database options", "Compare Pinecone, Weaviate, and Chroma for the knowledge base project",
     "agent", 1, "high", "in-progress"),
    ("Update memory consolidation", "Implement better memory consolidation during heartbeats",
     "agent", 2, "medium", "pending"),
    ("Fix portfolio layout", "The mobile layout breaks on smaller screens - fix the grid",
     "human", 3, "medium", "approved"),
    ("Set up automated backups", "Configure local + offsite backup for important projects",
     "human", 5, "low", "approved"),
]


def seed(store: TaskStore, session_factory):
    with session_factory() as db:
        if db.execute(select(func.count(Task.id))).scalar_one():
            logger.info("Database already has tasks, skipping seed")
            return 0

    today = date.today()
    for title, description, who, offset, priority, status in SAMPLE_TASKS:
        store.create_task({
            "title": title,
            "description": description,
            "assignee": store.agent if who == "agent" else store.human,
            "due_date": (today + timedelta(days=offset)).isoformat(),
            "priority": priority,
            "status": status,
        })
    store.sync_inbox()
    logger.info("Seeded %d tasks", len(SAMPLE_TASKS))
    return len(SAMPLE_TASKS)


if __name__ == "__main__":
    setup_logging(Config.LOG_LEVEL)
    _engine, SessionLocal = init_db(Config.DATABASE_PATH)
    seed(
        TaskStore(SessionLocal, inbox=AgentInbox(Config.INBOX_PATH, Config.AGENT_ASSIGNEE),
                  human=Config.HUMAN_ASSIGNEE, agent=Config.AGENT_ASSIGNEE),
        SessionLocal,
    )
