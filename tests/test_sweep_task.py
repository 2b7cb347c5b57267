"""Tests for the background expired-session sweep in api/main.py.

Covers:
- A failing sweep is logged and the loop keeps running
- Successful sweeps run once per interval
- Cancellation ends the loop cleanly
"""

import asyncio
import logging
from types import SimpleNamespace

from sqlalchemy.exc import OperationalError

from api.main import _sweep_loop


class _FlakySessions:
    """delete_expired() fails on the first call and succeeds afterwards."""

    def __init__(self) -> None:
        self.calls = 0

    def delete_expired(self) -> int:
        self.calls += 1
        if self.calls == 1:
            raise OperationalError("DELETE", {}, Exception("database is locked"))
        return 0


def _fake_app(sessions) -> SimpleNamespace:
    return SimpleNamespace(state=SimpleNamespace(auth_service=SimpleNamespace(sessions=sessions)))


def _run_sweep_for(app, seconds: float) -> asyncio.Task:
    async def scenario() -> asyncio.Task:
        task = asyncio.create_task(_sweep_loop(app, 0.01))
        await asyncio.sleep(seconds)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return task

    return asyncio.run(scenario())


def test_sweep_survives_failure(caplog):
    sessions = _FlakySessions()
    with caplog.at_level(logging.ERROR, logger="sessionguard.api"):
        task = _run_sweep_for(_fake_app(sessions), 0.2)

    assert sessions.calls > 1, "sweep loop stopped after the first failure"
    assert task.cancelled()
    assert "Expired session sweep failed" in caplog.text


def test_sweep_runs_each_interval():
    sessions = _FlakySessions()
    sessions.calls = 1  # skip the failing first call
    _run_sweep_for(_fake_app(sessions), 0.15)
    assert sessions.calls >= 3
