"""
DuckDB analytics engine

One DuckDB connection holds the audit log table and, when DATABASE_URL is
set, the Safecast PostgreSQL database attached read-only as `postgres_db`.
DuckDB handles a single session at a time, so every statement runs in a
worker thread under one lock. Statements queue on an asyncio lock before a
thread is taken, so callers that give up waiting never hold a thread.
"""

import asyncio
import json
import threading
from typing import Any, Dict, List, Optional, Sequence

import duckdb

from src.logging import analytics_logger
from src.measurements import BoundingBox, QueryLogEntry, row_to_json

from .config import get_analytics_config

ATTACHED_DB = "postgres_db"

SCHEMA_SQL = """
CREATE SEQUENCE IF NOT EXISTS seq_query_log;
CREATE TABLE IF NOT EXISTS mcp_query_log (
    id            BIGINT DEFAULT nextval('seq_query_log'),
    tool_name     VARCHAR,
    params        JSON,
    result_count  INTEGER,
    duration_ms   DOUBLE,
    client_info   VARCHAR,
    created_at    TIMESTAMPTZ DEFAULT now()
);
"""

INSERT_QUERY_LOG_SQL = """
INSERT INTO mcp_query_log (tool_name, params, result_count, duration_ms, client_info)
VALUES (?, ?, ?, ?, ?)
"""

TOOL_USAGE_SQL = """
SELECT tool_name, COUNT(*) AS count,
       AVG(duration_ms) AS avg_ms,
       MAX(duration_ms) AS max_ms
FROM mcp_query_log
GROUP BY tool_name
ORDER BY count DESC
"""

RADIATION_STATS_SQL = {
    "year": f"""
SELECT
    EXTRACT(YEAR FROM to_timestamp(date)) AS year,
    COUNT(*) AS count,
    AVG(doserate) AS avg_value,
    MAX(doserate) AS max_value
FROM {ATTACHED_DB}.public.markers
WHERE doserate > 0 AND doserate < 1000
GROUP BY 1
ORDER BY 1 DESC
LIMIT 20
""",
    "month": f"""
SELECT
    DATE_TRUNC('month', to_timestamp(date)) AS month,
    COUNT(*) AS count,
    AVG(doserate) AS avg_value
FROM {ATTACHED_DB}.public.markers
WHERE doserate > 0
  AND date > EXTRACT(EPOCH FROM NOW() - INTERVAL '1 year')
GROUP BY 1
ORDER BY 1 DESC
""",
    "overall": f"""
SELECT
    COUNT(*) AS count,
    AVG(doserate) AS avg_value,
    MAX(doserate) AS max_value
FROM {ATTACHED_DB}.public.markers
WHERE doserate > 0 AND doserate < 1000
""",
}

EXTREME_DIRECTIONS = {"highest": "DESC", "lowest": "ASC"}


class AnalyticsUnavailableError(Exception):
    """The analytics store is not initialized"""

    def __init__(self, message: str = "DuckDB analytics engine is not initialized"):
        super().__init__(message)
        self.message = message


def extreme_readings_query(direction: str, limit: int, box: Optional[BoundingBox] = None,
                           exclude_devices: Sequence[str] = (),
                           exclude_areas: Sequence[BoundingBox] = ()):
    """
    Highest or lowest plausible readings with optional region and exclusions.

    Returns (sql, params). Every caller-supplied value, including each
    excluded device id and each excluded box edge, is a `?` parameter.
    """
    if direction not in EXTREME_DIRECTIONS:
        raise ValueError(f"direction must be one of: {', '.join(EXTREME_DIRECTIONS)}")

    conditions = ["doserate > 0 AND doserate < 10000"]
    params: List[Any] = []

    if box is not None:
        conditions.append("lat BETWEEN ? AND ? AND lon BETWEEN ? AND ?")
        params.extend([box.min_lat, box.max_lat, box.min_lon, box.max_lon])

    devices = [str(device) for device in exclude_devices if str(device).strip()]
    if devices:
        conditions.append(f"(device_id IS NULL OR device_id NOT IN ({', '.join('?' for _ in devices)}))")
        params.extend(devices)

    for area in exclude_areas:
        conditions.append("NOT (lat BETWEEN ? AND ? AND lon BETWEEN ? AND ?)")
        params.extend([area.min_lat, area.max_lat, area.min_lon, area.max_lon])

    params.append(int(limit))
    sql = f"""
SELECT
    id,
    doserate,
    lat,
    lon,
    device_id,
    to_timestamp(date)::TIMESTAMP AS captured_at,
    trackid,
    detector
FROM {ATTACHED_DB}.public.markers
WHERE {' AND '.join(conditions)}
ORDER BY doserate {EXTREME_DIRECTIONS[direction]}
LIMIT ?
"""
    return sql, params


def is_select_only(query: str) -> bool:
    """A single statement starting with SELECT (or WITH ... SELECT)."""
    text = query.strip().rstrip(";").strip()
    if not text or ";" in text:
        return False
    first = text.split(None, 1)[0].upper()
    return first in ("SELECT", "WITH")


class AnalyticsEngine:
    """Single shared DuckDB connection with the audit store and the attached Postgres"""

    def __init__(self, path: Optional[str] = None, database_url: Optional[str] = None):
        self.path = path or ":memory:"
        self.database_url = database_url
        self.postgres_attached = False
        self._conn: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.Lock()
        self._dispatch_lock = asyncio.Lock()

    @classmethod
    def from_env(cls) -> "AnalyticsEngine":
        return cls(**get_analytics_config())

    @property
    def available(self) -> bool:
        return self._conn is not None

    def _connect(self) -> None:
        conn = duckdb.connect(self.path)
        conn.execute(SCHEMA_SQL)
        self._conn = conn

        if not self.database_url:
            analytics_logger.warning("postgres attach skipped | DATABASE_URL unset")
            return

        try:
            conn.execute("INSTALL postgres;")
            conn.execute("LOAD postgres;")
            url = self.database_url.replace("'", "''")
            conn.execute(f"ATTACH '{url}' AS {ATTACHED_DB} (TYPE POSTGRES, READ_ONLY)")
            self.postgres_attached = True
            analytics_logger.info(f"postgres attached | alias:{ATTACHED_DB}")
        except duckdb.Error as e:
            analytics_logger.warning(f"postgres attach failed | error:{e} | audit store still available")

    async def initialize(self) -> bool:
        """Open the store; returns False (engine unavailable) if DuckDB itself fails."""
        try:
            await self._in_thread(self._connect)
        except duckdb.Error as e:
            analytics_logger.error(f"analytics engine unavailable | path:{self.path} | error:{e}")
            self._conn = None
            return False
        analytics_logger.info(f"analytics engine ready | path:{self.path} | postgres:{self.postgres_attached}")
        return True

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                analytics_logger.info("analytics engine closed")

    def _locked(self, fn, *args):
        with self._lock:
            return fn(*args)

    async def _in_thread(self, fn, *args):
        # Only the holder of the dispatch lock has a worker thread. A cancelled
        # caller leaves the thread running; the lock is released when it ends.
        await self._dispatch_lock.acquire()
        try:
            work = asyncio.ensure_future(asyncio.to_thread(self._locked, fn, *args))
        except BaseException:
            self._dispatch_lock.release()
            raise
        work.add_done_callback(lambda _: self._dispatch_lock.release())
        return await asyncio.shield(work)

    def _require(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            raise AnalyticsUnavailableError()
        return self._conn

    def _query(self, sql: str, params: Optional[Sequence[Any]]) -> List[Dict[str, Any]]:
        cursor = self._require().execute(sql, list(params) if params else None)
        if cursor.description is None:
            return []
        columns = [column[0] for column in cursor.description]
        return [row_to_json(dict(zip(columns, row))) for row in cursor.fetchall()]

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Run one statement in a worker thread and return JSON-safe rows."""
        self._require()
        return await self._in_thread(self._query, sql, params)

    async def insert_query_log(self, entry: QueryLogEntry) -> None:
        await self.execute(INSERT_QUERY_LOG_SQL, [
            entry.tool_name,
            json.dumps(entry.params, default=str),
            entry.result_count,
            entry.duration_ms,
            entry.client_info,
        ])

    async def tool_usage(self) -> List[Dict[str, Any]]:
        rows = await self.execute(TOOL_USAGE_SQL)
        return [
            {"tool": row["tool_name"], "calls": row["count"], "avg_ms": row["avg_ms"], "max_ms": row["max_ms"]}
            for row in rows
        ]

    def _require_attached(self) -> None:
        self._require()
        if not self.postgres_attached:
            raise AnalyticsUnavailableError("PostgreSQL is not attached to the analytics engine")

    async def radiation_stats(self, interval: str) -> List[Dict[str, Any]]:
        if interval not in RADIATION_STATS_SQL:
            raise ValueError(f"interval must be one of: {', '.join(RADIATION_STATS_SQL)}")
        self._require_attached()
        return await self.execute(RADIATION_STATS_SQL[interval])

    async def extreme_readings(self, direction: str, limit: int, box: Optional[BoundingBox] = None,
                               exclude_devices: Sequence[str] = (),
                               exclude_areas: Sequence[BoundingBox] = ()) -> List[Dict[str, Any]]:
        self._require_attached()
        sql, params = extreme_readings_query(direction, limit, box, exclude_devices, exclude_areas)
        return await self.execute(sql, params)

    async def query_logs(self, query: str) -> List[Dict[str, Any]]:
        if not is_select_only(query):
            raise ValueError("Only SELECT queries are allowed")
        return await self.execute(query.strip().rstrip(";"))
