"""JobRegistry — lookup, overwrite, delete and ordering."""

from __future__ import annotations

from datetime import timedelta

import pytest

from gemini_research.errors import JobNotFound
from gemini_research.models.schemas import JobStatus, ResearchJob
from gemini_research.research.registry import JobRegistry
from gemini_research.utils.clock import now_utc


def _job(job_id: str, age_seconds: int = 0) -> ResearchJob:
    return ResearchJob(id=job_id, query=f"query {job_id}", created_at=now_utc() - timedelta(seconds=age_seconds))


class TestJobRegistry:
    def test_put_then_get(self):
        registry = JobRegistry()
        job = _job("a")
        registry.put("a", job)
        assert registry.get("a") is job
        assert "a" in registry
        assert len(registry) == 1

    def test_get_unknown_raises(self):
        with pytest.raises(JobNotFound) as exc_info:
            JobRegistry().get("missing")
        assert exc_info.value.job_id == "missing"
        assert exc_info.value.code == "NOT_FOUND"

    def test_get_run_unknown_raises(self):
        with pytest.raises(JobNotFound):
            JobRegistry().get_run("missing")

    def test_put_overwrites_whole_entry(self):
        registry = JobRegistry()
        registry.put("a", _job("a"))
        replacement = _job("a")
        replacement.status = JobStatus.FAILED
        registry.put("a", replacement)
        assert registry.get("a").status is JobStatus.FAILED
        assert registry.get_run("a") is None

    def test_delete_is_idempotent(self):
        registry = JobRegistry()
        registry.put("a", _job("a"))
        assert registry.delete("a") is True
        assert registry.delete("a") is True
        assert registry.delete("never") is True
        assert "a" not in registry

    def test_list_newest_first_with_limit(self):
        registry = JobRegistry()
        for job_id, age in (("old", 30), ("new", 0), ("mid", 10)):
            registry.put(job_id, _job(job_id, age))

        assert [j.id for j in registry.list()] == ["new", "mid", "old"]
        assert [j.id for j in registry.list(limit=2)] == ["new", "mid"]
        assert registry.list(limit=0) == []

    def test_runs_skips_entries_without_run(self):
        registry = JobRegistry()
        registry.put("a", _job("a"))
        assert registry.runs() == []
