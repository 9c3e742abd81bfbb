import os
import zlib
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

import psycopg2
from psycopg2 import pool as pg_pool
from psycopg2.extras import RealDictCursor, execute_values

from .models import (
    ParticipantProfile,
    Race,
    RaceResult,
    ResultType,
    TeamProfile,
    TeamResult,
    points_from_db,
    to_seconds,
)


_POOL: Optional[pg_pool.AbstractConnectionPool] = None

# Result table per leaderboard type. Only the ``points`` column is written.
_RESULT_TABLES = {
    ResultType.INDIVIDUAL: ("leaderboard_users", "user_id"),
    ResultType.TEAM: ("leaderboard_teams", "equ_id"),
}

SCHEMA_SQL = [
    """
    CREATE TABLE IF NOT EXISTS races (
        race_id SERIAL PRIMARY KEY,
        race_name VARCHAR(200) NOT NULL,
        race_date_start DATE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id SERIAL PRIMARY KEY,
        first_name VARCHAR(100),
        last_name VARCHAR(100),
        email VARCHAR(200),
        is_public BOOLEAN NOT NULL DEFAULT FALSE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS teams (
        equ_id SERIAL PRIMARY KEY,
        equ_name VARCHAR(200) NOT NULL,
        is_public BOOLEAN NOT NULL DEFAULT TRUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS team_members (
        equ_id INTEGER REFERENCES teams(equ_id) ON DELETE CASCADE,
        user_id INTEGER REFERENCES users(id) ON DELETE CASCADE,
        PRIMARY KEY (equ_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS leaderboard_users (
        id SERIAL PRIMARY KEY,
        user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        race_id INTEGER NOT NULL REFERENCES races(race_id) ON DELETE CASCADE,
        temps NUMERIC(10, 2) NOT NULL,
        malus NUMERIC(10, 2) NOT NULL DEFAULT 0,
        points INTEGER NULL,
        UNIQUE (user_id, race_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS leaderboard_teams (
        id SERIAL PRIMARY KEY,
        equ_id INTEGER NOT NULL REFERENCES teams(equ_id) ON DELETE CASCADE,
        race_id INTEGER NOT NULL REFERENCES races(race_id) ON DELETE CASCADE,
        average_temps NUMERIC(10, 2) NOT NULL,
        average_malus NUMERIC(10, 2) NOT NULL DEFAULT 0,
        average_temps_final NUMERIC(10, 2) NOT NULL,
        member_count INTEGER NOT NULL DEFAULT 0,
        points INTEGER NULL,
        UNIQUE (equ_id, race_id)
    )
    """,
    "ALTER TABLE leaderboard_users ADD COLUMN IF NOT EXISTS points INTEGER NULL",
    "ALTER TABLE leaderboard_teams ADD COLUMN IF NOT EXISTS points INTEGER NULL",
    "CREATE INDEX IF NOT EXISTS idx_leaderboard_users_race ON leaderboard_users(race_id)",
    "CREATE INDEX IF NOT EXISTS idx_leaderboard_teams_race ON leaderboard_teams(race_id)",
]


def _env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    val = os.environ.get(name)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _connect_kwargs() -> Dict[str, Any]:
    """Connection kwargs shared by the pool and direct connects.

    Defaults:
      - connect_timeout: 10 seconds (overridable via DB_CONNECT_TIMEOUT)
      - keepalives: on unless DB_KEEPALIVES=0
      - keepalive tunables applied if provided (IDLE/INTERVAL/COUNT)
    """
    kwargs: Dict[str, Any] = {}
    ct_env = _env_int("DB_CONNECT_TIMEOUT")
    kwargs["connect_timeout"] = ct_env if ct_env is not None else 10

    ka_env = os.environ.get("DB_KEEPALIVES")
    if ka_env is None:
        kwargs["keepalives"] = 1
    else:
        kwargs["keepalives"] = 0 if str(ka_env).lower() in ("0", "false") else 1

    for env_name, key in (
        ("DB_KEEPALIVES_IDLE", "keepalives_idle"),
        ("DB_KEEPALIVES_INTERVAL", "keepalives_interval"),
        ("DB_KEEPALIVES_COUNT", "keepalives_count"),
    ):
        val = _env_int(env_name)
        if val is not None:
            kwargs[key] = val
    return kwargs


def init_pool(minconn: int = 1, maxconn: int = 10) -> None:
    """Create the global connection pool from DATABASE_URL (once)."""
    global _POOL
    if _POOL is not None:
        return
    url = os.environ.get("DATABASE_URL")
    if not url:
        return
    _POOL = pg_pool.ThreadedConnectionPool(minconn, maxconn, dsn=url, **_connect_kwargs())


def _ping(conn) -> bool:
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
        if not getattr(conn, "autocommit", False):
            conn.rollback()
    except (psycopg2.OperationalError, psycopg2.InterfaceError):
        return False
    return True


@contextmanager
def _get_conn() -> Iterator[Any]:
    """Yield a pooled connection (falling back to a direct connect).

    Stale pooled connections are discarded and the checkout is retried once.
    Uncommitted work is rolled back before the connection is released.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set; configure a PostgreSQL connection string")
    if _POOL is None:
        conn = psycopg2.connect(url, **_connect_kwargs())
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return

    conn = _POOL.getconn()
    if not _ping(conn):
        _POOL.putconn(conn, close=True)
        conn = _POOL.getconn()
        if not _ping(conn):
            _POOL.putconn(conn, close=True)
            raise psycopg2.OperationalError("Failed to acquire healthy DB connection after retry")
    try:
        yield conn
    except Exception:
        conn.rollback()
        raise
    finally:
        # status 1/2/3 = active, in transaction, in error
        if getattr(conn, "closed", 0) == 0 and getattr(conn, "status", 0) in (1, 2, 3):
            conn.rollback()
        _POOL.putconn(conn)


def ping() -> bool:
    with _get_conn() as conn:
        return _ping(conn)


def ensure_schema() -> None:
    """Create the leaderboard tables if missing; safe to re-run."""
    with _get_conn() as conn:
        with conn.cursor() as cur:
            for stmt in SCHEMA_SQL:
                cur.execute(stmt)
        conn.commit()


def _date_to_str(val) -> Optional[str]:
    if val is None:
        return None
    try:
        return val.isoformat()
    except AttributeError:
        return str(val)


def list_races() -> List[Race]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            "SELECT race_id, race_name, race_date_start FROM races "
            "ORDER BY race_date_start DESC NULLS LAST, race_id"
        )
        return [
            Race(race_id=r["race_id"], name=r["race_name"], date=_date_to_str(r["race_date_start"]))
            for r in cur.fetchall()
        ]


def find_race(race_id: int) -> Optional[Race]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            "SELECT race_id, race_name, race_date_start FROM races WHERE race_id = %s",
            (int(race_id),),
        )
        r = cur.fetchone()
    if not r:
        return None
    return Race(race_id=r["race_id"], name=r["race_name"], date=_date_to_str(r["race_date_start"]))


def list_result_race_ids(result_type: ResultType) -> List[int]:
    """Race ids that have at least one result row of ``result_type``."""
    table, _ = _RESULT_TABLES[result_type]
    with _get_conn() as conn, conn.cursor() as cur:
        cur.execute(f"SELECT DISTINCT race_id FROM {table} ORDER BY race_id")
        return [int(row[0]) for row in cur.fetchall()]


def list_individual_results(race_id: Optional[int] = None) -> List[RaceResult]:
    sql = "SELECT user_id, race_id, temps, malus, points FROM leaderboard_users"
    params: tuple = ()
    if race_id is not None:
        sql += " WHERE race_id = %s"
        params = (int(race_id),)
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(sql + " ORDER BY race_id, user_id", params)
        return [
            RaceResult(
                participant_id=r["user_id"],
                race_id=r["race_id"],
                time=to_seconds(r["temps"]),
                penalty=to_seconds(r["malus"]),
                points=points_from_db(r["points"]),
            )
            for r in cur.fetchall()
        ]


def list_team_results(race_id: Optional[int] = None) -> List[TeamResult]:
    sql = (
        "SELECT equ_id, race_id, average_temps, average_malus, member_count, points "
        "FROM leaderboard_teams"
    )
    params: tuple = ()
    if race_id is not None:
        sql += " WHERE race_id = %s"
        params = (int(race_id),)
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(sql + " ORDER BY race_id, equ_id", params)
        return [
            TeamResult(
                team_id=r["equ_id"],
                race_id=r["race_id"],
                average_time=to_seconds(r["average_temps"]),
                average_penalty=to_seconds(r["average_malus"]),
                member_count=int(r["member_count"] or 0),
                points=points_from_db(r["points"]),
            )
            for r in cur.fetchall()
        ]


def get_participants() -> Dict[int, ParticipantProfile]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            """
            SELECT u.id, u.first_name, u.last_name, u.email, u.is_public,
                   COALESCE(array_agg(tm.equ_id ORDER BY tm.equ_id)
                            FILTER (WHERE tm.equ_id IS NOT NULL), '{}') AS team_ids
            FROM users u
            LEFT JOIN team_members tm ON tm.user_id = u.id
            GROUP BY u.id
            """
        )
        return {
            r["id"]: ParticipantProfile(
                participant_id=r["id"],
                first_name=r["first_name"] or "",
                last_name=r["last_name"] or "",
                email=r["email"] or "",
                is_public=bool(r["is_public"]),
                team_ids=tuple(r["team_ids"] or ()),
            )
            for r in cur.fetchall()
        }


def get_teams() -> Dict[int, TeamProfile]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            """
            SELECT t.equ_id, t.equ_name, t.is_public,
                   COALESCE(array_agg(tm.user_id ORDER BY tm.user_id)
                            FILTER (WHERE tm.user_id IS NOT NULL), '{}') AS member_ids
            FROM teams t
            LEFT JOIN team_members tm ON tm.equ_id = t.equ_id
            GROUP BY t.equ_id
            """
        )
        return {
            r["equ_id"]: TeamProfile(
                team_id=r["equ_id"],
                name=r["equ_name"] or "",
                is_public=bool(r["is_public"]),
                member_ids=tuple(r["member_ids"] or ()),
            )
            for r in cur.fetchall()
        }


def update_points(result_type: ResultType, race_id: int, points_by_id: Dict[int, Optional[int]]) -> int:
    """Write ``points`` for one race in a single transaction.

    ``points_by_id`` maps participant/team id to the new value. Rows whose
    stored value already matches are left alone. Returns rows changed.
    """
    if not points_by_id:
        return 0
    table, id_col = _RESULT_TABLES[result_type]
    rows = [(int(eid), int(race_id), pts) for eid, pts in points_by_id.items()]
    sql = f"""
        UPDATE {table} AS t
        SET points = v.points
        FROM (VALUES %s) AS v(entity_id, race_id, points)
        WHERE t.{id_col} = v.entity_id
          AND t.race_id = v.race_id
          AND t.points IS DISTINCT FROM v.points
    """
    updated = 0
    with _get_conn() as conn:
        with conn.cursor() as cur:
            # Chunk large updates to keep statements reasonable in size
            chunk_size = 2000
            for i in range(0, len(rows), chunk_size):
                execute_values(cur, sql, rows[i : i + chunk_size], template="(%s, %s, %s::integer)", page_size=chunk_size)
                updated += cur.rowcount or 0
        conn.commit()
    return updated


def _lock_key(result_type: ResultType, race_id: Optional[int]) -> Tuple[int, int]:
    # Two-int advisory key: (result table hash, race id); 0 stands for "no race".
    table, _ = _RESULT_TABLES[result_type]
    return zlib.crc32(table.encode()) & 0x7FFFFFFF, int(race_id or 0)


@contextmanager
def scope_lock(result_type: ResultType, race_id: Optional[int]) -> Iterator[bool]:
    """Try to take the cross-process advisory lock for a recalculation scope.

    Yields True when held (released on exit) and False when another session
    owns it. Never blocks.
    """
    k1, k2 = _lock_key(result_type, race_id)
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT pg_try_advisory_lock(%s, %s)", (k1, k2))
            acquired = bool(cur.fetchone()[0])
        conn.commit()
        try:
            yield acquired
        finally:
            if acquired:
                with conn.cursor() as cur:
                    cur.execute("SELECT pg_advisory_unlock(%s, %s)", (k1, k2))
                conn.commit()
