import logging
from functools import partial
from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

import agents
import cron
import usage
from auth import TOKEN_HEADER, TokenStore, check_password, require_auth
from config import Config
from db import init_db
from errors import FridayError, ValidationFailed
from inbox import AgentInbox
from store import TaskStore


logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")


# ---------- Helpers ----------
def _store() -> TaskStore:
    return current_app.extensions["task_store"]


def _payload():
    data = request.get_json(force=True, silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return data


def _cron_jobs():
    return cron.load_cron_jobs(current_app.config["CRON_JOBS_PATH"])


# ---------- Auth ----------
@api.post("/auth/login")
def login():
    password = _payload().get("password")
    if not check_password(password, current_app.config["ADMIN_PASSWORD"]):
        return jsonify({"error": "Invalid password"}), 401
    token = current_app.extensions["token_store"].issue()
    return jsonify({"success": True, "token": token})


@api.post("/auth/verify")
def verify():
    token = request.headers.get(TOKEN_HEADER)
    return jsonify({"valid": current_app.extensions["token_store"].verify(token)})


@api.post("/auth/logout")
def logout():
    current_app.extensions["token_store"].revoke(request.headers.get(TOKEN_HEADER))
    return jsonify({"success": True})


@api.get("/health")
def health():
    return jsonify({"ok": True})


# ---------- Tasks ----------
@api.get("/tasks")
def list_tasks():
    args = request.args
    return jsonify(_store().list_tasks(
        assignee=args.get("assignee"),
        status=args.get("status"),
        due_from=args.get("from"),
        due_to=args.get("to"),
    ))


@api.get("/tasks/<int:task_id>")
def get_task(task_id: int):
    return jsonify(_store().get_task(task_id))


@api.post("/tasks")
@require_auth
def create_task():
    return jsonify(_store().create_task(_payload())), 201


@api.put("/tasks/<int:task_id>")
@require_auth
def update_task(task_id: int):
    return jsonify(_store().update_task(task_id, _payload()))


@api.delete("/tasks/<int:task_id>")
@require_auth
def delete_task(task_id: int):
    _store().delete_task(task_id)
    return jsonify({"success": True})


@api.put("/tasks/<int:task_id>/approve")
@require_auth
def approve_task(task_id: int):
    return jsonify(_store().approve_task(task_id))


@api.put("/tasks/<int:task_id>/reject")
@require_auth
def reject_task(task_id: int):
    return jsonify(_store().reject_task(task_id))


# ---------- Comments ----------
@api.get("/tasks/<int:task_id>/comments")
def list_comments(task_id: int):
    return jsonify(_store().list_comments(task_id))


@api.post("/tasks/<int:task_id>/comments")
@require_auth
def create_comment(task_id: int):
    data = _payload()
    return jsonify(_store().create_comment(task_id, data.get("author"), data.get("content"))), 201


@api.get("/comments/unread")
def unread_comments():
    return jsonify(_store().list_unread_comments())


@api.put("/comments/<int:comment_id>/read")
@require_auth
def mark_comment_read(comment_id: int):
    return jsonify(_store().mark_comment_read(comment_id))


# ---------- Subtasks ----------
@api.get("/tasks/<int:task_id>/subtasks")
def list_subtasks(task_id: int):
    return jsonify(_store().list_subtasks(task_id))


@api.post("/tasks/<int:task_id>/subtasks")
@require_auth
def create_subtask(task_id: int):
    return jsonify(_store().create_subtask(task_id, _payload().get("title"))), 201


@api.put("/subtasks/<int:subtask_id>")
@require_auth
def update_subtask(subtask_id: int):
    return jsonify(_store().update_subtask(subtask_id, _payload()))


@api.delete("/subtasks/<int:subtask_id>")
@require_auth
def delete_subtask(subtask_id: int):
    _store().delete_subtask(subtask_id)
    return jsonify({"success": True})


# ---------- Artifacts ----------
@api.get("/artifacts")
def list_all_artifacts():
    return jsonify(_store().list_all_artifacts())


@api.get("/tasks/<int:task_id>/artifacts")
def list_artifacts(task_id: int):
    return jsonify(_store().list_artifacts(task_id))


@api.post("/tasks/<int:task_id>/artifacts")
@require_auth
def create_artifact(task_id: int):
    data = _payload()
    return jsonify(_store().create_artifact(task_id, data.get("name"), data.get("url"), data.get("type"))), 201


@api.delete("/artifacts/<int:artifact_id>")
@require_auth
def delete_artifact(artifact_id: int):
    _store().delete_artifact(artifact_id)
    return jsonify({"success": True})


# ---------- Cron jobs ----------
@api.get("/cron-jobs")
def list_cron_jobs():
    return jsonify(cron.enabled_jobs(_cron_jobs()))


@api.get("/cron-jobs/occurrences")
def cron_occurrences():
    days = request.args.get("days", cron.DEFAULT_HORIZON_DAYS, type=int)
    count = request.args.get("count", cron.DEFAULT_MAX_COUNT, type=int)
    days = max(1, min(days, cron.DEFAULT_HORIZON_DAYS))
    count = max(1, count)
    return jsonify(cron.job_occurrences(_cron_jobs(), horizon_days=days, max_count=count))


# ---------- Agents ----------
@api.get("/agents/status")
def agents_status():
    assignee = current_app.config["AGENT_ASSIGNEE"]
    tasks = _store().list_tasks(assignee=assignee)
    return jsonify(agents.agent_status(tasks, _cron_jobs(), assignee=assignee))


@api.get("/agents/<agent_id>/crons")
def agent_crons(agent_id: str):
    return jsonify(agents.agent_crons(agent_id, _cron_jobs()))


# ---------- Usage ----------
@api.get("/usage")
def usage_summary():
    args = request.args
    records = current_app.extensions["usage_cache"].get()
    return jsonify(usage.aggregate(
        records,
        date_from=args.get("from"),
        date_to=args.get("to"),
        group_by=args.get("groupBy", "none"),
    ))


@api.get("/usage/chart")
def usage_chart():
    args = request.args
    unit = args.get("unit")
    if unit is None:
        period = args.get("period", "month")
        if period not in usage.PERIOD_TIME_UNITS:
            raise ValidationFailed(f"period must be one of: {', '.join(usage.PERIOD_TIME_UNITS)}")
        unit = usage.PERIOD_TIME_UNITS[period]
    records = current_app.extensions["usage_cache"].get()
    return jsonify(usage.bucket_for_chart(
        records,
        date_from=args.get("from"),
        date_to=args.get("to"),
        group_by=args.get("groupBy", "model"),
        time_unit=unit,
    ))


# ---------- Errors ----------
def _friday_error(e: FridayError):
    return jsonify({"error": e.message}), e.status_code


def _http_error(e: HTTPException):
    return jsonify({"error": e.description}), e.code


def _unexpected_error(e: Exception):
    if isinstance(e, HTTPException):
        return _http_error(e)
    logger.exception("Unhandled error on %s %s", request.method, request.path)
    return jsonify({"error": str(e)}), 500


# ---------- App ----------
def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    CORS(app, origins=app.config["CORS_ORIGINS"])

    _engine, SessionLocal = init_db(app.config["DATABASE_PATH"])
    inbox = AgentInbox(app.config["INBOX_PATH"], app.config["AGENT_ASSIGNEE"])
    app.extensions["task_store"] = TaskStore(
        SessionLocal,
        inbox=inbox,
        human=app.config["HUMAN_ASSIGNEE"],
        agent=app.config["AGENT_ASSIGNEE"],
    )
    app.extensions["token_store"] = TokenStore(app.config["TOKEN_TTL_SECONDS"])
    app.extensions["usage_cache"] = usage.UsageCache(
        partial(usage.load_usage_records, app.config["AGENTS_DIR"], app.config["USAGE_MAX_FILES"]),
        ttl=app.config["USAGE_CACHE_TTL_SECONDS"],
    )

    app.register_blueprint(api)
    app.register_error_handler(FridayError, _friday_error)
    app.register_error_handler(HTTPException, _http_error)
    app.register_error_handler(Exception, _unexpected_error)

    logger.info("Friday Tasks API ready (db=%s)", app.config["DATABASE_PATH"])
    return app


if __name__ == "__main__":
    from logging_setup import setup_logging

    setup_logging(Config.LOG_LEVEL, Config.LOG_DIR)
    app = create_app()
    app.run(host="0.0.0.0", port=Config.PORT, debug=False)
