import asyncio
import json
from datetime import date

import httpx
import pytest

from haseeb import config, db
from haseeb.store.local import LocalStore


class FakePostgrest:
    """Minimal in-memory PostgREST: eq filters, merge-duplicates upserts, FK cascade."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {"habits": [], "habit_logs": [], "custom_reasons": []}
        self.requests: list[httpx.Request] = []

    def _matches(self, row: dict, params: httpx.QueryParams) -> bool:
        for key, value in params.multi_items():
            if key in ("order", "select", "on_conflict"):
                continue
            if str(row.get(key)) != value.removeprefix("eq."):
                return False
        return True

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.rsplit("/", 1)[-1]
        rows = self.tables[table]
        if request.method == "GET":
            return httpx.Response(200, json=[r for r in rows if self._matches(r, request.url.params)])
        if request.method == "POST":
            body = json.loads(request.content)
            rows[:] = [r for r in rows if not (r["id"] == body["id"] and r["user_id"] == body["user_id"])]
            rows.append({"created_at": "2024-03-13T12:00:00Z", **body})
            return httpx.Response(201)
        if request.method == "DELETE":
            doomed = [r for r in rows if self._matches(r, request.url.params)]
            rows[:] = [r for r in rows if r not in doomed]
            if table == "habits":
                ids = {r["id"] for r in doomed}
                logs = self.tables["habit_logs"]
                logs[:] = [r for r in logs if r["habit_id"] not in ids]
            return httpx.Response(204)
        return httpx.Response(405)


@pytest.fixture
def tmp_haseeb_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "HASEEB_DIR", tmp_path)
    monkeypatch.setattr(config, "DB_PATH", tmp_path / "local.db")
    monkeypatch.setattr(config, "CONFIG_PATH", tmp_path / "config.yaml")
    monkeypatch.delenv(config.API_KEY_ENV, raising=False)
    monkeypatch.delenv(config.ACCESS_TOKEN_ENV, raising=False)
    config.Config.reset()
    db.init()
    yield tmp_path
    config.Config.reset()


@pytest.fixture
def local_store(tmp_haseeb_dir):
    store = LocalStore()
    yield store
    asyncio.run(store.close())


@pytest.fixture
def fake_postgrest():
    return FakePostgrest()


@pytest.fixture
def frozen_today(monkeypatch):
    """Pin clock.today() to a Wednesday."""
    day = date(2024, 3, 13)
    monkeypatch.setattr("haseeb.lib.clock.today", lambda: day)
    return day
