"""Token/cost usage parsed from agent session logs (one JSON object per line).

Layout: <agents_dir>/<agent_id>/sessions/<session>.jsonl. Only assistant
messages carrying a numeric `usage.cost.total` count as usage.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from errors import ValidationFailed

logger = logging.getLogger(__name__)

GROUP_BY = ("none", "model", "provider", "agent", "hour", "day")
CHART_GROUP_BY = ("none", "model", "provider", "agent")
# length of the ISO timestamp prefix that names a bucket
TIME_UNITS = {"hour": 13, "day": 10, "month": 7}
PERIOD_TIME_UNITS = {"day": "hour", "week": "day", "month": "day", "year": "month"}


@dataclass(frozen=True)
class UsageRecord:
    timestamp: str
    agent: str
    model: str
    provider: str
    input: float = 0
    output: float = 0
    cache_read: float = 0
    cache_write: float = 0
    total_tokens: float = 0
    cost_input: float = 0
    cost_output: float = 0
    cost_cache_read: float = 0
    cost_cache_write: float = 0
    cost_total: float = 0

    @property
    def billable_tokens(self):
        return self.input + self.output

    @property
    def cache_tokens(self):
        return self.cache_read + self.cache_write

    @property
    def tokens(self):
        return self.total_tokens or (self.billable_tokens + self.cache_tokens)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _num(value):
    return value if _is_number(value) else 0


def _timestamp(entry: dict, message: dict) -> str | None:
    ts = entry.get("timestamp")
    if isinstance(ts, str) and ts:
        return ts
    ms = message.get("timestamp")
    if _is_number(ms):
        dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
        return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return None


def parse_usage_line(entry, agent: str) -> UsageRecord | None:
    """Turn one decoded log line into a record, or None if it is not billable assistant output."""
    if not isinstance(entry, dict):
        return None
    message = entry.get("message")
    if not isinstance(message, dict) or message.get("role") != "assistant":
        return None
    usage = message.get("usage")
    if not isinstance(usage, dict):
        return None
    cost = usage.get("cost")
    if not isinstance(cost, dict) or not _is_number(cost.get("total")):
        return None
    ts = _timestamp(entry, message)
    if ts is None:
        return None

    return UsageRecord(
        timestamp=ts,
        agent=agent,
        model=message.get("model") or "unknown",
        provider=message.get("provider") or "unknown",
        input=_num(usage.get("input")),
        output=_num(usage.get("output")),
        cache_read=_num(usage.get("cacheRead")),
        cache_write=_num(usage.get("cacheWrite")),
        total_tokens=_num(usage.get("totalTokens")),
        cost_input=_num(cost.get("input")),
        cost_output=_num(cost.get("output")),
        cost_cache_read=_num(cost.get("cacheRead")),
        cost_cache_write=_num(cost.get("cacheWrite")),
        cost_total=cost["total"],
    )


def discover_session_files(agents_dir: Path, max_files: int | None = None):
    """(agent_id, path) pairs for every session log; newest first when capped."""
    if not agents_dir.is_dir():
        return []

    found = []
    try:
        agent_dirs = sorted(p for p in agents_dir.iterdir() if p.is_dir())
    except OSError as e:
        logger.warning("Cannot list agents dir %s: %s", agents_dir, e)
        return []

    for agent_dir in agent_dirs:
        sessions = agent_dir / "sessions"
        if not sessions.is_dir():
            continue
        try:
            found.extend((agent_dir.name, f) for f in sessions.glob("*.jsonl"))
        except OSError as e:
            logger.warning("Cannot list sessions in %s: %s", sessions, e)

    if max_files is not None and len(found) > max_files:
        def _mtime(item):
            try:
                return item[1].stat().st_mtime
            except OSError:
                return 0
        found.sort(key=_mtime, reverse=True)
        found = found[:max_files]
    return found


def read_usage_file(path: Path, agent: str) -> list[UsageRecord]:
    records = []
    with open(path, encoding="utf-8", errors="replace") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            record = parse_usage_line(entry, agent)
            if record is not None:
                records.append(record)
    return records


def load_usage_records(agents_dir, max_files: int | None = None) -> list[UsageRecord]:
    started = time.monotonic()
    files = discover_session_files(Path(agents_dir), max_files)
    records: list[UsageRecord] = []
    for agent, path in files:
        try:
            records.extend(read_usage_file(path, agent))
        except OSError as e:
            logger.warning("Skipping unreadable session log %s: %s", path, e)
    logger.info(
        "Loaded %d usage records from %d session logs in %.0f ms",
        len(records), len(files), (time.monotonic() - started) * 1000,
    )
    return records


class UsageCache:
    """One shared TTL cache for the parsed records, not keyed by query."""

    def __init__(self, loader, ttl: float = 300, clock=time.monotonic):
        self._loader = loader
        self.ttl = ttl
        self._clock = clock
        self._records: list[UsageRecord] | None = None
        self._loaded_at = 0.0

    def get(self) -> list[UsageRecord]:
        now = self._clock()
        if self._records is None or now - self._loaded_at >= self.ttl:
            self._records = self._loader()
            self._loaded_at = now
        return self._records

    def clear(self) -> None:
        self._records = None


# ---------- aggregation ----------
def _in_range(ts: str, date_from: str | None, date_to: str | None) -> bool:
    # ISO strings compare lexicographically
    if date_from and ts < date_from:
        return False
    if date_to and ts > date_to:
        return False
    return True


def _dimension(record: UsageRecord, group_by: str) -> str:
    if group_by == "none":
        return "all"
    if group_by == "hour":
        return record.timestamp[:TIME_UNITS["hour"]]
    if group_by == "day":
        return record.timestamp[:TIME_UNITS["day"]]
    return getattr(record, group_by)


def _empty_sums() -> dict:
    return {
        "messages": 0,
        "input": 0,
        "output": 0,
        "cacheRead": 0,
        "cacheWrite": 0,
        "totalTokens": 0,
        "inputCost": 0,
        "outputCost": 0,
        "cacheReadCost": 0,
        "cacheWriteCost": 0,
        "totalCost": 0,
    }


def _add(sums: dict, r: UsageRecord) -> None:
    sums["messages"] += 1
    sums["input"] += r.input
    sums["output"] += r.output
    sums["cacheRead"] += r.cache_read
    sums["cacheWrite"] += r.cache_write
    sums["totalTokens"] += r.tokens
    sums["inputCost"] += r.cost_input
    sums["outputCost"] += r.cost_output
    sums["cacheReadCost"] += r.cost_cache_read
    sums["cacheWriteCost"] += r.cost_cache_write
    sums["totalCost"] += r.cost_total


def aggregate(records, date_from=None, date_to=None, group_by="none") -> dict:
    if group_by not in GROUP_BY:
        raise ValidationFailed(f"groupBy must be one of: {', '.join(GROUP_BY)}")

    totals = _empty_sums()
    groups: dict[str, dict] = {}
    for r in records:
        if not _in_range(r.timestamp, date_from, date_to):
            continue
        _add(totals, r)
        key = _dimension(r, group_by)
        if key not in groups:
            groups[key] = {"key": key, **_empty_sums()}
        _add(groups[key], r)

    return {
        "totals": totals,
        "groups": sorted(groups.values(), key=lambda g: g["totalCost"], reverse=True),
    }


def bucket_for_chart(records, date_from=None, date_to=None, group_by="model", time_unit="day") -> dict:
    """
    Token counts keyed time bucket -> dimension -> tokens, in three flavours:
    all tokens, billable (input + output) and cache (read + write).
    """
    if group_by not in CHART_GROUP_BY:
        raise ValidationFailed(f"groupBy must be one of: {', '.join(CHART_GROUP_BY)}")
    if time_unit not in TIME_UNITS:
        raise ValidationFailed(f"unit must be one of: {', '.join(TIME_UNITS)}")

    width = TIME_UNITS[time_unit]
    buckets: dict[str, dict[str, float]] = {}
    billable: dict[str, dict[str, float]] = {}
    cache: dict[str, dict[str, float]] = {}
    dimensions = set()

    for r in records:
        if not _in_range(r.timestamp, date_from, date_to):
            continue
        tkey = r.timestamp[:width]
        dim = _dimension(r, group_by)
        dimensions.add(dim)
        for target, amount in ((buckets, r.tokens), (billable, r.billable_tokens), (cache, r.cache_tokens)):
            row = target.setdefault(tkey, {})
            row[dim] = row.get(dim, 0) + amount

    return {
        "timeKeys": sorted(buckets),
        "dimensions": sorted(dimensions),
        "buckets": buckets,
        "billableBuckets": billable,
        "cacheBuckets": cache,
    }
