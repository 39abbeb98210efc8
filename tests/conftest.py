"""Pytest fixtures: an app wired to a throwaway SQLite file and data dir."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from app import create_app
from db import init_db
from inbox import AgentInbox
from store import TaskStore

PASSWORD = "test-password"


@pytest.fixture()
def paths(tmp_path: Path) -> dict:
    return {
        "db": tmp_path / "tasks.db",
        "inbox": tmp_path / "friday-inbox.json",
        "cron": tmp_path / "cron" / "jobs.json",
        "agents": tmp_path / "agents",
    }


@pytest.fixture()
def store(paths) -> TaskStore:
    _engine, session_factory = init_db(str(paths["db"]))
    return TaskStore(session_factory, inbox=AgentInbox(str(paths["inbox"]), "friday"),
                     human="zhilong", agent="friday")


@pytest.fixture()
def app(paths):
    return create_app({
        "TESTING": True,
        "DATABASE_PATH": str(paths["db"]),
        "INBOX_PATH": str(paths["inbox"]),
        "CRON_JOBS_PATH": str(paths["cron"]),
        "AGENTS_DIR": str(paths["agents"]),
        "ADMIN_PASSWORD": PASSWORD,
        "HUMAN_ASSIGNEE": "zhilong",
        "AGENT_ASSIGNEE": "friday",
        "USAGE_MAX_FILES": None,
    })


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def auth_headers(client) -> dict:
    resp = client.post("/api/auth/login", json={"password": PASSWORD})
    assert resp.status_code == 200
    return {"X-Auth-Token": resp.get_json()["token"]}


@pytest.fixture()
def write_jobs(paths):
    def _write(jobs):
        paths["cron"].parent.mkdir(parents=True, exist_ok=True)
        paths["cron"].write_text(json.dumps({"version": 1, "jobs": jobs}), encoding="utf-8")
    return _write
