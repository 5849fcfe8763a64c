# services/db.py (PG pool + generic table client)
import psycopg2
from psycopg2 import sql
from psycopg2.extras import RealDictCursor, Json
from psycopg2.pool import SimpleConnectionPool
from contextlib import contextmanager
import threading
import logging

from services.errors import DataClientError

logger = logging.getLogger(__name__)

# Thread-safe pool initialization
_pool = None
_pool_lock = threading.Lock()
_pool_dsn = None
_pool_size = 10


def configure_pool(dsn, size=10):
    """Set the DSN used the next time the pool is created."""
    global _pool_dsn, _pool_size
    _pool_dsn = dsn
    _pool_size = size


def _get_pool():
    """Get or create the connection pool (thread-safe singleton)"""
    global _pool
    if _pool is None:
        with _pool_lock:
            if _pool is None:
                if not _pool_dsn:
                    raise DataClientError("Database is not configured")
                try:
                    _pool = SimpleConnectionPool(1, _pool_size, dsn=_pool_dsn)
                    logger.info(f"Database connection pool initialized with max {_pool_size} connections")
                except psycopg2.Error as e:
                    logger.error(f"Failed to initialize database pool: {e}")
                    raise DataClientError(f"Database unavailable: {e}")
    return _pool


@contextmanager
def db_connection():
    """
    Borrow a pooled connection and hand it back when done.

    Usage:
        with db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM inventory_items")
    """
    pool = _get_pool()
    conn = pool.getconn()
    try:
        yield conn
    except Exception:
        try:
            conn.rollback()
        except psycopg2.Error:
            logger.warning("Rollback failed on a broken connection")
        raise
    finally:
        pool.putconn(conn)


@contextmanager
def db_transaction():
    """Like db_connection(), but commits on success."""
    with db_connection() as conn:
        yield conn
        conn.commit()


def close_pool():
    """Close all connections in the pool (call on application shutdown)"""
    global _pool
    if _pool:
        try:
            _pool.closeall()
            logger.info("Database connection pool closed")
        except psycopg2.Error as e:
            logger.error(f"Error closing pool: {e}")
        _pool = None


_OPERATORS = {
    "eq": "=",
    "neq": "<>",
    "gte": ">=",
    "lte": "<=",
    "gt": ">",
    "lt": "<",
}


def _adapt(value):
    if isinstance(value, (dict, list)):
        return Json(value)
    return value


def _where(filters):
    """
    Build a WHERE clause from (column, op, value) tuples.
    Supported ops: eq, neq, gt, gte, lt, lte, in, not_null, is_null.
    """
    if not filters:
        return sql.SQL(""), []

    parts, params = [], []
    for column, op, value in filters:
        ident = sql.Identifier(column)
        if op in _OPERATORS:
            parts.append(sql.SQL("{} {} %s").format(ident, sql.SQL(_OPERATORS[op])))
            params.append(value)
        elif op == "in":
            parts.append(sql.SQL("{} = ANY(%s)").format(ident))
            params.append(list(value))
        elif op == "not_null":
            parts.append(sql.SQL("{} IS NOT NULL").format(ident))
        elif op == "is_null":
            parts.append(sql.SQL("{} IS NULL").format(ident))
        else:
            raise ValueError(f"Unsupported filter operator: {op}")
    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(parts), params


class PostgresDataClient:
    """
    Generic request/response access to the relational store.
    Rows go in and come out as plain dicts; every failure is a DataClientError.
    """

    def _run(self, query, params=(), fetch=False, write=False):
        manager = db_transaction if write else db_connection
        try:
            with manager() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as c:
                    c.execute(query, params)
                    if fetch:
                        return [dict(row) for row in c.fetchall()]
                    return c.rowcount
        except psycopg2.Error as e:
            message = (e.pgerror or str(e)).strip()
            logger.error(f"Database error: {message}")
            raise DataClientError(message)

    def select(self, table, columns="*", filters=(), order_by=None, descending=False, limit=None):
        if columns == "*":
            cols = sql.SQL("*")
        else:
            cols = sql.SQL(", ").join(sql.Identifier(col.strip()) for col in columns.split(","))
        where, params = _where(filters)
        query = sql.SQL("SELECT {} FROM {}{}").format(cols, sql.Identifier(table), where)
        if order_by:
            query += sql.SQL(" ORDER BY {} {}").format(
                sql.Identifier(order_by), sql.SQL("DESC" if descending else "ASC")
            )
        if limit is not None:
            query += sql.SQL(" LIMIT %s")
            params.append(int(limit))
        return self._run(query, params, fetch=True)

    def count(self, table, filters=()):
        where, params = _where(filters)
        query = sql.SQL("SELECT COUNT(*) AS n FROM {}{}").format(sql.Identifier(table), where)
        rows = self._run(query, params, fetch=True)
        return rows[0]["n"] if rows else 0

    def insert(self, table, rows):
        if isinstance(rows, dict):
            rows = [rows]
        for row in rows:
            columns = list(row)
            query = sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
                sql.Identifier(table),
                sql.SQL(", ").join(map(sql.Identifier, columns)),
                sql.SQL(", ").join([sql.Placeholder()] * len(columns)),
            )
            self._run(query, [_adapt(row[col]) for col in columns], write=True)

    def update(self, table, patch, filters):
        if not filters:
            raise ValueError("update() requires at least one filter")
        columns = list(patch)
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(col)) for col in columns
        )
        where, params = _where(filters)
        query = sql.SQL("UPDATE {} SET {}{}").format(sql.Identifier(table), assignments, where)
        return self._run(query, [_adapt(patch[col]) for col in columns] + params, write=True)

    def delete(self, table, filters):
        if not filters:
            raise ValueError("delete() requires at least one filter")
        where, params = _where(filters)
        query = sql.SQL("DELETE FROM {}{}").format(sql.Identifier(table), where)
        return self._run(query, params, write=True)

    def upsert(self, table, row, on_conflict):
        columns = list(row)
        updates = [col for col in columns if col != on_conflict]
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) ON CONFLICT ({}) DO UPDATE SET {}").format(
            sql.Identifier(table),
            sql.SQL(", ").join(map(sql.Identifier, columns)),
            sql.SQL(", ").join([sql.Placeholder()] * len(columns)),
            sql.Identifier(on_conflict),
            sql.SQL(", ").join(
                sql.SQL("{0} = EXCLUDED.{0}").format(sql.Identifier(col)) for col in updates
            ),
        )
        self._run(query, [_adapt(row[col]) for col in columns], write=True)


def get_data_client():
    """The data client bound to the running app"""
    from flask import current_app
    return current_app.extensions["data_client"]
