from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from errors import ValidationFailed
from usage import (
    UsageCache,
    UsageRecord,
    aggregate,
    bucket_for_chart,
    load_usage_records,
    parse_usage_line,
)


def _line(ts, model="claude-sonnet", provider="anthropic", inp=100, out=50, cr=0, cw=0, cost=0.01):
    return {
        "type": "message",
        "timestamp": ts,
        "message": {
            "role": "assistant",
            "model": model,
            "provider": provider,
            "usage": {
                "input": inp,
                "output": out,
                "cacheRead": cr,
                "cacheWrite": cw,
                "totalTokens": inp + out + cr + cw,
                "cost": {"input": cost / 2, "output": cost / 2, "cacheRead": 0, "cacheWrite": 0, "total": cost},
            },
        },
    }


def _write_session(agents_dir: Path, agent: str, name: str, lines) -> Path:
    sessions = agents_dir / agent / "sessions"
    sessions.mkdir(parents=True, exist_ok=True)
    path = sessions / name
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture()
def records() -> list[UsageRecord]:
    return [
        parse_usage_line(_line("2026-10-01T09:15:00.000Z", cost=0.5), "main"),
        parse_usage_line(_line("2026-10-01T10:00:00.000Z", model="gpt-5", provider="openai", cost=0.25), "main"),
        parse_usage_line(_line("2026-10-02T08:00:00.000Z", cr=1000, cw=200, cost=1.0), "alpha"),
        parse_usage_line(_line("2026-11-03T12:00:00.000Z", model="gpt-5", provider="openai", cost=0.125), "alpha"),
    ]


def test_parse_skips_non_assistant_and_costless_lines():
    assert parse_usage_line({"message": {"role": "user"}}, "main") is None
    no_cost = _line("2026-10-01T00:00:00Z")
    del no_cost["message"]["usage"]["cost"]["total"]
    assert parse_usage_line(no_cost, "main") is None
    text_cost = _line("2026-10-01T00:00:00Z")
    text_cost["message"]["usage"]["cost"]["total"] = "0.1"
    assert parse_usage_line(text_cost, "main") is None
    assert parse_usage_line([1, 2], "main") is None


def test_parse_defaults_missing_numbers_to_zero():
    entry = {
        "timestamp": "2026-10-01T00:00:00Z",
        "message": {"role": "assistant", "model": "m", "usage": {"output": 7, "cost": {"total": 0.2}}},
    }
    rec = parse_usage_line(entry, "main")
    assert rec.input == 0 and rec.cache_read == 0 and rec.cost_input == 0
    assert rec.output == 7
    assert rec.provider == "unknown"
    assert rec.tokens == 7


def test_parse_uses_message_epoch_when_line_has_no_timestamp():
    entry = _line(None)
    del entry["timestamp"]
    entry["message"]["timestamp"] = 1760000000000
    assert parse_usage_line(entry, "main").timestamp == "2025-10-09T08:53:20.000Z"


def test_load_scans_agent_session_logs(tmp_path):
    agents = tmp_path / "agents"
    _write_session(agents, "main", "s1.jsonl", [
        json.dumps(_line("2026-10-01T09:00:00Z")),
        "{not json",
        "",
        json.dumps({"type": "message", "message": {"role": "user", "content": "hi"}}),
    ])
    _write_session(agents, "alpha", "s2.jsonl", [json.dumps(_line("2026-10-02T09:00:00Z"))])
    (agents / "alpha" / "sessions" / "notes.txt").write_text("ignored")

    recs = load_usage_records(agents)
    assert sorted((r.agent, r.timestamp) for r in recs) == [
        ("alpha", "2026-10-02T09:00:00Z"),
        ("main", "2026-10-01T09:00:00Z"),
    ]


def test_load_missing_dir_is_empty(tmp_path):
    assert load_usage_records(tmp_path / "nowhere") == []


def test_load_respects_max_files(tmp_path):
    agents = tmp_path / "agents"
    # s0 is the newest file on disk despite carrying the oldest record
    for i, mtime in enumerate((3_000_000, 1_000_000, 2_000_000)):
        path = _write_session(agents, "main", f"s{i}.jsonl", [json.dumps(_line(f"2026-10-0{i + 1}T00:00:00Z"))])
        os.utime(path, (mtime, mtime))

    kept = load_usage_records(agents, max_files=2)
    assert sorted(r.timestamp for r in kept) == ["2026-10-01T00:00:00Z", "2026-10-03T00:00:00Z"]
    assert len(load_usage_records(agents)) == 3


def test_aggregate_groups_sum_to_totals(records):
    total = aggregate(records, group_by="none")
    by_model = aggregate(records, group_by="model")

    assert total["totals"]["totalCost"] == pytest.approx(1.875)
    assert sum(g["totalCost"] for g in by_model["groups"]) == pytest.approx(total["totals"]["totalCost"])
    assert total["groups"][0]["key"] == "all"


def test_aggregate_sorts_groups_by_cost(records):
    groups = aggregate(records, group_by="agent")["groups"]
    assert [g["key"] for g in groups] == ["alpha", "main"]
    assert groups[0]["messages"] == 2


def test_aggregate_filters_inclusively_by_timestamp(records):
    result = aggregate(records, date_from="2026-10-01T10:00:00.000Z", date_to="2026-10-02T08:00:00.000Z")
    assert result["totals"]["messages"] == 2


def test_aggregate_by_day(records):
    keys = {g["key"] for g in aggregate(records, group_by="day")["groups"]}
    assert keys == {"2026-10-01", "2026-10-02", "2026-11-03"}


def test_aggregate_rejects_unknown_group(records):
    with pytest.raises(ValidationFailed):
        aggregate(records, group_by="colour")


def test_bucket_for_chart(records):
    chart = bucket_for_chart(records, group_by="provider", time_unit="day")
    assert chart["timeKeys"] == ["2026-10-01", "2026-10-02", "2026-11-03"]
    assert chart["dimensions"] == ["anthropic", "openai"]
    assert chart["buckets"]["2026-10-02"]["anthropic"] == 1350
    assert chart["billableBuckets"]["2026-10-02"]["anthropic"] == 150
    assert chart["cacheBuckets"]["2026-10-02"]["anthropic"] == 1200
    assert chart["billableBuckets"]["2026-10-01"] == {"anthropic": 150, "openai": 150}


def test_bucket_for_chart_by_month_and_hour(records):
    assert bucket_for_chart(records, time_unit="month")["timeKeys"] == ["2026-10", "2026-11"]
    hourly = bucket_for_chart(records, date_to="2026-10-01T23:59:59Z", time_unit="hour")
    assert hourly["timeKeys"] == ["2026-10-01T09", "2026-10-01T10"]


def test_bucket_for_chart_rejects_bad_unit(records):
    with pytest.raises(ValidationFailed):
        bucket_for_chart(records, time_unit="week")


def test_usage_cache_reloads_after_ttl():
    calls = []
    now = [0.0]

    def loader():
        calls.append(now[0])
        return [len(calls)]

    cache = UsageCache(loader, ttl=300, clock=lambda: now[0])
    assert cache.get() == [1]
    now[0] = 299
    assert cache.get() == [1]
    now[0] = 300
    assert cache.get() == [2]
    cache.clear()
    assert cache.get() == [3]
    assert len(calls) == 3
