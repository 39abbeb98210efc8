import logging
import os
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, declarative_base


logger = logging.getLogger(__name__)

Base = declarative_base()

# columns added to `tasks` after the first release
TASK_COLUMN_MIGRATIONS = [
    ("start_time", "ALTER TABLE tasks ADD COLUMN start_time VARCHAR(5)"),
    ("end_time", "ALTER TABLE tasks ADD COLUMN end_time VARCHAR(5)"),
    ("all_day", "ALTER TABLE tasks ADD COLUMN all_day BOOLEAN NOT NULL DEFAULT 1"),
    ("project", "ALTER TABLE tasks ADD COLUMN project VARCHAR(255) NOT NULL DEFAULT ''"),
]


def make_engine(db_path: str):
    parent = os.path.dirname(os.path.abspath(db_path))
    os.makedirs(parent, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _sqlite_pragmas(dbapi_conn, _record):
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys = ON")
        cur.execute("PRAGMA journal_mode = WAL")
        cur.close()

    return engine


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


# --- lightweight migrations ---
def ensure_schema(engine):
    with engine.begin() as conn:
        cols_tasks = [row[1] for row in conn.execute(text("PRAGMA table_info(tasks)"))]
        for name, ddl in TASK_COLUMN_MIGRATIONS:
            if name not in cols_tasks:
                conn.execute(text(ddl))
                logger.info("Added tasks.%s column", name)

        # legacy 'todo' status became 'approved'
        migrated = conn.execute(text("UPDATE tasks SET status = 'approved' WHERE status = 'todo'")).rowcount
        if migrated:
            logger.info("Migrated %d tasks from 'todo' to 'approved'", migrated)


def init_db(db_path: str):
    """Create the engine, make sure every table and column exists, return (engine, SessionLocal)."""
    import models  # noqa: F401  registers the mapped classes on Base.metadata

    engine = make_engine(db_path)
    Base.metadata.create_all(bind=engine)
    ensure_schema(engine)
    return engine, make_session_factory(engine)
