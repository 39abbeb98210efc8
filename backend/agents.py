"""Sub-agent views derived from task projects and cron job names.

There is no agent registry: each agent is a row of regexes matched against
free-text project labels and job names.
"""
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from errors import NotFound


@dataclass(frozen=True)
class AgentDef:
    id: str
    name: str
    emoji: str
    project_patterns: tuple
    cron_pattern: re.Pattern


def _rx(*patterns):
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


AGENTS = (
    AgentDef("alpha", "Alpha", "📈", _rx(r"polymarket", r"trading"),
             re.compile(r"polymarket|alpha|trading|market|crypto|stock", re.IGNORECASE)),
    AgentDef("hu", "HU", "🀄", _rx(r"\bhu\b", r"game"),
             re.compile(r"\bhu\b", re.IGNORECASE)),
    AgentDef("aspen", "Aspen", "📊", _rx(r"aspen", r"quant", r"atrade", r"nofx"),
             re.compile(r"aspen|atrade|nofx", re.IGNORECASE)),
    AgentDef("artist", "Artist", "🍌", _rx(r"artist", r"design", r"avatar", r"image", r"banana"),
             re.compile(r"artist|image|banana", re.IGNORECASE)),
    AgentDef("fridaytask", "FridayTask", "📋", _rx(r"friday", r"infra", r"\btask\b"),
             re.compile(r"friday|task", re.IGNORECASE)),
    AgentDef("knowledge", "Knowledge", "📚",
             _rx(r"knowledge", r"learning", r"ai-push", r"finance-push", r"learn", r"study"),
             re.compile(r"knowledge|learn|study|daily.*news|ai.*news", re.IGNORECASE)),
)


def get_agent(agent_id: str) -> AgentDef:
    for agent in AGENTS:
        if agent.id == agent_id:
            return agent
    raise NotFound("Agent not found")


def agent_tasks(agent: AgentDef, tasks, assignee: str = "friday"):
    """Tasks delegated to the assistant whose project label belongs to `agent`."""
    return [
        t for t in tasks
        if t["assignee"] == assignee
        and any(p.search(t.get("project") or "") for p in agent.project_patterns)
    ]


def agent_jobs(agent: AgentDef, jobs):
    return [j for j in jobs if agent.cron_pattern.search(j.get("name") or "")]


def status_label(tasks):
    working = sum(1 for t in tasks if t["status"] == "in-progress")
    if working:
        return {"label": f"Working ({working})", "color": "green"}
    approved = sum(1 for t in tasks if t["status"] == "approved")
    if approved:
        return {"label": f"Pending ({approved})", "color": "yellow"}
    return {"label": "Idle", "color": "gray"}


def agent_status(tasks, jobs, assignee: str = "friday"):
    out = []
    for agent in AGENTS:
        mine = agent_tasks(agent, tasks, assignee)
        out.append({
            "id": agent.id,
            "name": agent.name,
            "emoji": agent.emoji,
            "status": status_label(mine),
            "working": sum(1 for t in mine if t["status"] == "in-progress"),
            "pending": sum(1 for t in mine if t["status"] in ("pending", "approved")),
            "completed": sum(1 for t in mine if t["status"] == "done"),
            "crons": len(agent_jobs(agent, jobs)),
        })
    return out


def _ms_to_iso(ms):
    if not isinstance(ms, (int, float)) or isinstance(ms, bool):
        return None
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="seconds").replace("+00:00", "Z")


def agent_crons(agent_id: str, jobs):
    agent = get_agent(agent_id)
    out = []
    for job in agent_jobs(agent, jobs):
        state = job.get("state") or {}
        last_time = _ms_to_iso(state.get("lastRunAtMs"))
        out.append({
            "id": job.get("id"),
            "name": job.get("name") or job.get("id"),
            "enabled": bool(job.get("enabled")),
            "schedule": job.get("schedule") or {},
            "lastRun": {"status": state.get("lastStatus") or "unknown", "time": last_time} if last_time else None,
            "nextRun": _ms_to_iso(state.get("nextRunAtMs")),
        })
    return out
