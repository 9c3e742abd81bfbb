import importlib

import pytest


class _Cursor:
    def __init__(self, conn):
        self.conn = conn
        self.rowcount = 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, sql, params=None):
        if self.conn.stale:
            from psycopg2 import OperationalError

            raise OperationalError("SSL connection has been closed unexpectedly")
        self.conn.executed.append((sql, params))

    def fetchone(self):
        return (self.conn.lock_result,)


class _Conn:
    autocommit = False
    status = 0

    def __init__(self, stale=False, lock_result=True):
        self.stale = stale
        self.lock_result = lock_result
        self.closed = 0
        self.executed = []
        self.commits = 0
        self.rollbacks = 0

    def cursor(self, cursor_factory=None):
        return _Cursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = 1


class _Pool:
    def __init__(self, conns):
        self.conns = list(conns)
        self.calls_get = 0
        self.calls_put = []

    def getconn(self):
        self.calls_get += 1
        return self.conns.pop(0)

    def putconn(self, conn, close=False):
        self.calls_put.append((conn, close))
        if close:
            conn.close()


@pytest.fixture()
def pg(monkeypatch):
    import leaderboard.datastore_pg as pg
    return importlib.reload(pg)


def test_pool_checkout_retries_on_stale_connection(monkeypatch, pg):
    bad, good = _Conn(stale=True), _Conn()
    pool = _Pool([bad, good])
    monkeypatch.setattr(pg, "_POOL", pool)

    with pg._get_conn() as conn:
        # Should have replaced the bad connection and yielded a healthy one
        assert conn is good

    assert pool.calls_get == 2
    assert (bad, True) in pool.calls_put
    assert (good, False) in pool.calls_put


def test_pool_checkout_gives_up_after_second_stale_connection(monkeypatch, pg):
    from psycopg2 import OperationalError

    pool = _Pool([_Conn(stale=True), _Conn(stale=True)])
    monkeypatch.setattr(pg, "_POOL", pool)

    with pytest.raises(OperationalError):
        with pg._get_conn():
            pass  # pragma: no cover
    assert [close for (_c, close) in pool.calls_put] == [True, True]


def test_error_inside_block_rolls_back_and_returns_connection(monkeypatch, pg):
    conn = _Conn()
    pool = _Pool([conn])
    monkeypatch.setattr(pg, "_POOL", pool)

    with pytest.raises(ValueError):
        with pg._get_conn():
            raise ValueError("boom")
    assert conn.rollbacks >= 1
    assert pool.calls_put[-1] == (conn, False)


def test_scope_lock_releases_advisory_lock(monkeypatch, pg):
    from leaderboard.models import ResultType

    conn = _Conn(lock_result=True)
    monkeypatch.setattr(pg, "_POOL", _Pool([conn]))

    with pg.scope_lock(ResultType.TEAM, 4) as held:
        assert held is True
    statements = [sql for sql, _ in conn.executed]
    assert any("pg_try_advisory_lock" in s for s in statements)
    assert any("pg_advisory_unlock" in s for s in statements)
    k1, k2 = pg._lock_key(ResultType.TEAM, 4)
    assert k2 == 4
    assert k1 != pg._lock_key(ResultType.INDIVIDUAL, 4)[0]


def test_scope_lock_busy_does_not_unlock(monkeypatch, pg):
    from leaderboard.models import ResultType

    conn = _Conn(lock_result=False)
    monkeypatch.setattr(pg, "_POOL", _Pool([conn]))

    with pg.scope_lock(ResultType.INDIVIDUAL, 1) as held:
        assert held is False
    assert not any("pg_advisory_unlock" in sql for sql, _ in conn.executed)


def test_update_points_skips_empty_batch(monkeypatch, pg):
    from leaderboard.models import ResultType

    def no_conn():  # pragma: no cover - must not be called
        raise AssertionError("no connection expected")

    monkeypatch.setattr(pg, "_get_conn", no_conn)
    assert pg.update_points(ResultType.INDIVIDUAL, 1, {}) == 0
