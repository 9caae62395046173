from datetime import date
from typing import Any

import httpx
from loguru import logger

from haseeb.core.errors import AuthorizationError, PersistenceError
from haseeb.core.models import CustomReason, Habit, HabitLog, Session
from haseeb.lib.converters import (
    habit_to_row,
    log_to_row,
    reason_to_row,
    row_to_habit,
    row_to_log,
    row_to_reason,
)

DEFAULT_TIMEOUT = 10.0


class RemoteStore:
    """Cloud backend speaking PostgREST, scoped to one authenticated identity.

    Every query carries `user_id=eq.<id>`; row-level security on the server
    is what actually rejects cross-identity access.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: Session,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.user_id = session.id
        token = session.access_token or api_key
        self.client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )
        logger.info(f"RemoteStore initialized for user {self.user_id}")

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> list[dict[str, Any]]:
        headers = {"Prefer": prefer} if prefer else None
        try:
            resp = await self.client.request(method, path, params=params, json=json, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"[remote] {method} {path} -> {status}: {e.response.text}")
            if status in (401, 403):
                raise AuthorizationError(f"{method} {path} rejected ({status})") from e
            raise PersistenceError(f"{method} {path} failed ({status})") from e
        except httpx.TransportError as e:
            logger.error(f"[remote] {method} {path} transport error: {e}")
            raise PersistenceError(f"{method} {path} unreachable: {e}") from e
        if not resp.content:
            return []
        data = resp.json()
        return data if isinstance(data, list) else [data]

    def _scope(self, **filters: str) -> dict[str, str]:
        params = {"user_id": f"eq.{self.user_id}"}
        params.update({k: f"eq.{v}" for k, v in filters.items()})
        return params

    def _owned(self, row: dict[str, Any]) -> dict[str, Any]:
        return {"user_id": self.user_id, **row}

    # ── habits ───────────────────────────────────────────────────────────────

    async def list_habits(self) -> list[Habit]:
        params = self._scope()
        params["order"] = "order_index.asc"
        rows = await self._request("GET", "/habits", params=params)
        logger.debug(f"[remote] fetched {len(rows)} habits")
        return [row_to_habit(row) for row in rows]

    async def upsert_habit(self, habit: Habit) -> list[Habit]:
        await self._request(
            "POST",
            "/habits",
            params={"on_conflict": "user_id,id"},
            json=self._owned(habit_to_row(habit)),
            prefer="resolution=merge-duplicates",
        )
        logger.info(f"[remote] upserted habit {habit.id}")
        return await self.list_habits()

    async def delete_habit(self, habit_id: str) -> list[Habit]:
        # habit_logs.habit_id references habits with ON DELETE CASCADE server-side
        await self._request("DELETE", "/habits", params=self._scope(id=habit_id))
        logger.info(f"[remote] deleted habit {habit_id} (logs cascade)")
        return await self.list_habits()

    # ── logs ─────────────────────────────────────────────────────────────────

    async def list_logs(self) -> list[HabitLog]:
        params = self._scope()
        params["order"] = "log_date.desc"
        rows = await self._request("GET", "/habit_logs", params=params)
        logs = (row_to_log(row) for row in rows)
        return [log for log in logs if log is not None]

    async def upsert_log(self, log: HabitLog) -> list[HabitLog]:
        row = log_to_row(log)
        row.pop("created_at")
        await self._request(
            "POST",
            "/habit_logs",
            params={"on_conflict": "user_id,id"},
            json=self._owned(row),
            prefer="resolution=merge-duplicates",
        )
        return await self.list_logs()

    async def delete_log(self, habit_id: str, on: date) -> list[HabitLog]:
        await self._request(
            "DELETE", "/habit_logs", params=self._scope(habit_id=habit_id, log_date=on.isoformat())
        )
        return await self.list_logs()

    # ── custom reasons ───────────────────────────────────────────────────────

    async def list_reasons(self) -> list[CustomReason]:
        params = self._scope()
        params["select"] = "id,reason_text,created_at"
        params["order"] = "created_at.asc"
        rows = await self._request("GET", "/custom_reasons", params=params)
        return [row_to_reason(row) for row in rows]

    async def upsert_reason(self, reason: CustomReason) -> list[CustomReason]:
        row = reason_to_row(reason)
        row.pop("created_at")
        await self._request(
            "POST",
            "/custom_reasons",
            json=self._owned(row),
            prefer="resolution=merge-duplicates",
        )
        return await self.list_reasons()

    async def delete_reason(self, reason_id: str) -> list[CustomReason]:
        await self._request("DELETE", "/custom_reasons", params=self._scope(id=reason_id))
        return await self.list_reasons()

    async def close(self) -> None:
        await self.client.aclose()
