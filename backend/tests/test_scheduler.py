"""Tests for the background task scheduler."""

import pytest
from datetime import datetime, timedelta, timezone

from app.core.config import settings
from app.main import app
from app.services import scheduler_service
from app.services.scheduler_service import TaskScheduler, register_default_tasks


def later(seconds):
    return datetime.now(timezone.utc) + timedelta(seconds=seconds)


class TestTaskScheduler:
    @pytest.mark.asyncio
    async def test_runs_due_sync_and_async_tasks(self):
        calls = []

        def sync_job():
            calls.append("sync")

        async def async_job():
            calls.append("async")

        scheduler = TaskScheduler()
        scheduler.add_task("sync", sync_job, interval_seconds=60, initial_delay_seconds=0)
        scheduler.add_task("async", async_job, interval_seconds=60, initial_delay_seconds=0)

        ran = await scheduler.run_due(later(1))

        assert ran == 2
        assert sorted(calls) == ["async", "sync"]
        status = scheduler.get_status()
        assert status["sync"]["run_count"] == 1
        assert status["async"]["last_error"] is None

    @pytest.mark.asyncio
    async def test_task_not_due_is_skipped(self):
        calls = []
        scheduler = TaskScheduler()
        scheduler.add_task("slow", lambda: calls.append(1), interval_seconds=60, initial_delay_seconds=30)

        assert await scheduler.run_due(later(1)) == 0
        assert calls == []
        assert await scheduler.run_due(later(31)) == 1

    @pytest.mark.asyncio
    async def test_next_run_moves_by_interval(self):
        scheduler = TaskScheduler()
        scheduler.add_task("tick", lambda: None, interval_seconds=60, initial_delay_seconds=0)

        now = later(1)
        await scheduler.run_due(now)
        assert await scheduler.run_due(now + timedelta(seconds=30)) == 0
        assert await scheduler.run_due(now + timedelta(seconds=60)) == 1
        assert scheduler.get_status()["tick"]["run_count"] == 2

    @pytest.mark.asyncio
    async def test_failure_recorded_and_rescheduled(self):
        def broken():
            raise RuntimeError("database unreachable")

        scheduler = TaskScheduler()
        scheduler.add_task("broken", broken, interval_seconds=60, initial_delay_seconds=0)

        now = later(1)
        assert await scheduler.run_due(now) == 1
        status = scheduler.get_status()["broken"]
        assert status["last_error"] == "database unreachable"
        assert status["run_count"] == 0
        assert status["next_run"] == (now + timedelta(seconds=60)).isoformat()

    def test_remove_task(self):
        scheduler = TaskScheduler()
        scheduler.add_task("gone", lambda: None, interval_seconds=60)
        scheduler.remove_task("gone")
        assert scheduler.get_status() == {}

    def test_default_tasks(self):
        scheduler = TaskScheduler()
        register_default_tasks(scheduler)
        status = scheduler.get_status()
        assert list(status) == ["loyalty_expire_sweep"]
        assert status["loyalty_expire_sweep"]["interval_seconds"] == 86400

    @pytest.mark.asyncio
    async def test_expiry_job_runs_sweep(self, monkeypatch):
        summary = {"accounts": 0, "transactions": 0, "points": 0, "failed": 0}
        monkeypatch.setattr(scheduler_service, "expire_loyalty_points", lambda: summary)

        scheduler = TaskScheduler()
        register_default_tasks(scheduler)
        scheduler._tasks["loyalty_expire_sweep"]["next_run"] = later(-1)

        assert await scheduler.run_due() == 1
        assert scheduler.get_status()["loyalty_expire_sweep"]["run_count"] == 1


class TestSchedulerStatusEndpoint:
    def test_admin_sees_tasks(self, client, admin_headers):
        res = client.get("/api/v1/scheduler/status", headers=admin_headers)
        assert res.status_code == 200
        body = res.json()
        assert "loyalty_expire_sweep" in body["tasks"]

    def test_mounted_under_api_prefix(self):
        paths = {route.path for route in app.routes}
        assert f"{settings.api_v1_prefix}/scheduler/status" in paths

    def test_customer_forbidden(self, client, customer_headers):
        res = client.get("/api/v1/scheduler/status", headers=customer_headers)
        assert res.status_code == 403
