from __future__ import annotations

import asyncio

import pytest

from partner_common.context import _request_id_ctx


@pytest.fixture(autouse=True)
def _isolated_runtime(tmp_path, monkeypatch):
    """Keep telemetry out of the repo and settings free of the developer's .env."""
    monkeypatch.setenv("PARTNER_TELEMETRY_DIR", str(tmp_path / "telemetry"))
    monkeypatch.delenv("PARTNER_DISABLE_TELEMETRY", raising=False)
    for name in (
        "PARTNER_CALL_TIMEOUT",
        "PARTNER_CALENDAR_BACKEND",
        "PARTNER_THINGS_COMMAND",
        "PARTNER_THINGS_ARGS",
        "PARTNER_GCAL_COMMAND",
        "PARTNER_GCAL_ARGS",
        "GOOGLE_OAUTH_CREDENTIALS",
    ):
        monkeypatch.delenv(name, raising=False)
    token = _request_id_ctx.set(None)
    yield
    _request_id_ctx.reset(token)


class SpawnLog(list):
    """Processes started through asyncio.create_subprocess_exec, in order."""

    async def first(self):
        while not self:
            await asyncio.sleep(0.05)
        return self[0]


@pytest.fixture
def spawned(monkeypatch):
    procs = SpawnLog()
    real_exec = asyncio.create_subprocess_exec

    async def spawn(*args, **kwargs):
        proc = await real_exec(*args, **kwargs)
        procs.append(proc)
        return proc

    monkeypatch.setattr(asyncio, "create_subprocess_exec", spawn)
    return procs
