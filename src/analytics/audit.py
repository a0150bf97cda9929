"""
Non-blocking audit logging of tool invocations.

record() returns immediately: the insert into mcp_query_log runs in its own
asyncio task with its own timeout, detached from the request that spawned
it, so a client disconnect neither cancels the record nor waits on it.
Failures are logged and dropped. Nothing is retried and at most
max_pending records are in flight.

record_ai_session() writes a structured event for queries an AI client
caused to run (analytics SQL, ad-hoc log queries), logs it locally and
optionally forwards it to an external collector.
"""

import asyncio
import json
import re
import subprocess
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Optional, Set

import httpx

from src.logging import audit_logger
from src.measurements import QueryLogEntry
from src.telemetry.metrics import record_audit_drop

from .config import get_audit_config

MAX_QUERY_LENGTH = 1000
FORWARD_TIMEOUT = 2.0

_WHITESPACE = re.compile(r"\s+")
_STRING_LITERAL = re.compile(r"'[^']*'")


def sanitize_query(query: Optional[str]) -> str:
    """Collapse whitespace, mask quoted literals and cap the length."""
    if not query:
        return ""
    text = _WHITESPACE.sub(" ", query).strip()
    text = _STRING_LITERAL.sub("'?'", text)
    if len(text) > MAX_QUERY_LENGTH:
        text = text[:MAX_QUERY_LENGTH] + "..."
    return text


@lru_cache(maxsize=1)
def get_commit_hash() -> str:
    """HEAD commit of the running checkout, looked up once."""
    try:
        result = subprocess.run(["git", "rev-parse", "HEAD"], capture_output=True, text=True,
                                timeout=2, check=True)
    except (OSError, subprocess.SubprocessError) as e:
        audit_logger.debug(f"git commit unavailable | error:{e}")
        return "unknown"
    return result.stdout.strip() or "unknown"


class AuditLogger:
    """Fire-and-forget writer for the query log and AI session events"""

    def __init__(self, store=None, timeout: float = 2.0, max_pending: int = 256,
                 entire_endpoint: Optional[str] = None, entire_api_key: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.store = store
        self.timeout = timeout
        self.max_pending = max_pending
        self.entire_endpoint = entire_endpoint
        self.entire_api_key = entire_api_key
        self.transport = transport
        self._pending: Set[asyncio.Task] = set()

    @classmethod
    def from_env(cls, store=None) -> "AuditLogger":
        return cls(store=store, **get_audit_config())

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _spawn(self, coro, kind: str) -> Optional[asyncio.Task]:
        if len(self._pending) >= self.max_pending:
            coro.close()
            audit_logger.warning(f"audit dropped | kind:{kind} | reason:queue_full | pending:{len(self._pending)}")
            record_audit_drop("queue_full")
            return None

        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            audit_logger.warning(f"audit dropped | kind:{kind} | reason:no_event_loop")
            record_audit_drop("no_event_loop")
            return None

        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def record(self, tool_name: str, params: Optional[Dict[str, Any]], result_count: int,
               duration_ms: float, client_info: str = "mcp") -> Optional[asyncio.Task]:
        """Schedule one mcp_query_log insert and return without waiting for it."""
        entry = QueryLogEntry(
            tool_name=tool_name,
            params={k: v for k, v in (params or {}).items() if v is not None},
            result_count=result_count,
            duration_ms=duration_ms,
            client_info=client_info,
        )
        return self._spawn(self._store(entry), "query_log")

    async def _store(self, entry: QueryLogEntry) -> None:
        if self.store is None or not self.store.available:
            audit_logger.debug(f"audit store unavailable | tool:{entry.tool_name} | dropped")
            record_audit_drop("store_unavailable")
            return

        try:
            await asyncio.wait_for(self.store.insert_query_log(entry), timeout=self.timeout)
            audit_logger.debug(f"audit stored | tool:{entry.tool_name} | client:{entry.client_info}")
        except asyncio.TimeoutError:
            audit_logger.warning(f"audit dropped | tool:{entry.tool_name} | reason:timeout | timeout:{self.timeout}s")
            record_audit_drop("timeout")
        except Exception as e:
            audit_logger.warning(f"audit dropped | tool:{entry.tool_name} | reason:error | error:{e}")
            record_audit_drop("error")

    def record_ai_session(self, tool_name: str, query: Optional[str], duration_ms: float,
                          error: Optional[BaseException] = None) -> Optional[asyncio.Task]:
        return self._spawn(self._emit_ai_session(tool_name, query, duration_ms, error), "ai_session")

    async def build_ai_event(self, tool_name: str, query: Optional[str], duration_ms: float,
                             error: Optional[BaseException] = None) -> Dict[str, Any]:
        return {
            "session_id": str(uuid.uuid4()),
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "tool_name": tool_name,
            "generated_query": sanitize_query(query),
            "duration_ms": int(duration_ms),
            "commit_hash": await asyncio.to_thread(get_commit_hash),
            "error": str(error) if error else "",
        }

    async def _emit_ai_session(self, tool_name: str, query: Optional[str], duration_ms: float,
                               error: Optional[BaseException]) -> None:
        try:
            event = await self.build_ai_event(tool_name, query, duration_ms, error)
            audit_logger.info(f"ai session | {json.dumps(event)}")
            if self.entire_endpoint:
                await self._forward(event)
        except Exception as e:
            audit_logger.warning(f"ai session log failed | tool:{tool_name} | error:{e}")

    async def _forward(self, event: Dict[str, Any]) -> None:
        headers = {"Content-Type": "application/json"}
        if self.entire_api_key:
            headers["Authorization"] = f"Bearer {self.entire_api_key}"

        async with httpx.AsyncClient(transport=self.transport, timeout=FORWARD_TIMEOUT) as client:
            try:
                response = await client.post(self.entire_endpoint, json=event, headers=headers)
            except httpx.HTTPError as e:
                audit_logger.warning(f"ai session export failed | error:{e}")
                return
        if response.status_code >= 300:
            audit_logger.warning(f"ai session export rejected | status:{response.status_code}")

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight records (shutdown and tests)."""
        if not self._pending:
            return
        pending = list(self._pending)
        done, not_done = await asyncio.wait(pending, timeout=timeout)
        if not_done:
            audit_logger.warning(f"audit drain incomplete | pending:{len(not_done)}")
