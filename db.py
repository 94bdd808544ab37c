import os, logging, re
from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, List, Mapping, NamedTuple, NoReturn, Optional, Sequence, Tuple

import mysql.connector
from mysql.connector import errors as mysql_errors
from dotenv import load_dotenv
from sqlalchemy import event
from sqlalchemy import exc as sa_exc
from sqlalchemy.pool import QueuePool

from errors import ConflictError, ServiceUnavailableError, UpstreamError, ValidationError

load_dotenv()

log = logging.getLogger(__name__)

POOL_SIZE = 10
ACQUIRE_TIMEOUT = 10.0   # seconds a request waits for a free connection
CONNECT_TIMEOUT = 10
STATEMENT_TIMEOUT = 15   # seconds a single statement may run or wait on a lock

# lock wait timeout, statement execution time exceeded, lost connection during query
TIMEOUT_ERRNOS = {1205, 3024, 2013}

def db_config() -> Dict[str, Any]:
    return dict(
        host=os.getenv("DB_HOST", "127.0.0.1"),
        user=os.getenv("DB_USER", "root"),
        password=os.getenv("DB_PASSWORD", ""),
        database=os.getenv("DB_NAME", "labinventory"),
        autocommit=False,
        connection_timeout=CONNECT_TIMEOUT,
    )

def get_conn():
    conn = mysql.connector.connect(**db_config())
    cur = conn.cursor()
    try:
        cur.execute(f"SET SESSION MAX_EXECUTION_TIME={STATEMENT_TIMEOUT * 1000}")
        cur.execute(f"SET SESSION innodb_lock_wait_timeout={STATEMENT_TIMEOUT}")
    finally:
        cur.close()
    return conn


class Mutation(NamedTuple):
    rowcount: int
    lastrowid: Optional[int]


def _ping_on_checkout(dbapi_conn, record, proxy):
    check = getattr(dbapi_conn, "is_connected", None)
    if check is not None and not check():
        log.info("Dropping stale database connection")
        raise sa_exc.DisconnectionError()


# --------------------------------------------------------------------------
# Pooled gateway
# --------------------------------------------------------------------------
class Database:
    """
    Parameterized query gateway over a SQLAlchemy ``QueuePool``.

    At most ``pool_size`` connections are open at once (no overflow). When all
    of them are checked out, callers wait (up to ``acquire_timeout`` seconds)
    for one to come back instead of being rejected outright. Returned
    connections are rolled back by the pool.
    """

    driver_errors: Tuple[type, ...] = (mysql_errors.Error,)
    integrity_errors: Tuple[type, ...] = (mysql_errors.IntegrityError,)

    def __init__(self, connect=get_conn, pool_size: int = POOL_SIZE,
                 acquire_timeout: float = ACQUIRE_TIMEOUT):
        self.pool_size = pool_size
        self.acquire_timeout = acquire_timeout
        self._pool = QueuePool(
            connect,
            pool_size=pool_size,
            max_overflow=0,
            timeout=acquire_timeout,
            reset_on_return="rollback",
        )
        event.listen(self._pool, "checkout", _ping_on_checkout)
        self._closed = False

    # ---- connection handling ----
    @contextmanager
    def connection(self):
        if self._closed:
            raise UpstreamError("Database pool is closed")
        try:
            conn = self._pool.connect()
        except sa_exc.TimeoutError as e:
            log.error("No database connection free after %.1fs (pool size %d)",
                      self.acquire_timeout, self.pool_size)
            raise ServiceUnavailableError() from e
        except self.driver_errors as e:
            log.error("Could not connect to database: %s", e)
            if self._is_timeout(e):
                raise ServiceUnavailableError() from e
            raise UpstreamError() from e
        try:
            yield conn
        finally:
            conn.close()
            if self._closed:
                self._pool.dispose()

    def close(self) -> None:
        self._closed = True
        self._pool.dispose()

    # ---- driver hooks ----
    def _cursor(self, conn):
        return conn.cursor(dictionary=True)

    def _prepare(self, sql: str) -> str:
        return sql

    def _is_timeout(self, exc) -> bool:
        return getattr(exc, "errno", None) in TIMEOUT_ERRNOS

    # ---- queries ----
    def fetch_all(self, sql: str, params: Sequence[Any] = (), *, log_params: bool = True) -> List[Dict[str, Any]]:
        with self.connection() as conn:
            cur = self._cursor(conn)
            try:
                cur.execute(self._prepare(sql), _bind(params))
                rows = [dict(r) for r in cur.fetchall()]
                # end the read transaction so the next checkout sees fresh data
                conn.rollback()
                return rows
            except self.driver_errors as e:
                self._fail(conn, e, sql, params, log_params)
            finally:
                cur.close()

    def fetch_one(self, sql: str, params: Sequence[Any] = (), *, log_params: bool = True) -> Optional[Dict[str, Any]]:
        rows = self.fetch_all(sql, params, log_params=log_params)
        return rows[0] if rows else None

    def execute(self, sql: str, params: Sequence[Any] = (), *, log_params: bool = True) -> Mutation:
        with self.connection() as conn:
            cur = self._cursor(conn)
            try:
                cur.execute(self._prepare(sql), _bind(params))
                conn.commit()
                return Mutation(rowcount=cur.rowcount, lastrowid=cur.lastrowid)
            except self.driver_errors as e:
                self._fail(conn, e, sql, params, log_params)
            finally:
                cur.close()

    def _fail(self, conn, exc, sql, params, log_params) -> NoReturn:
        try:
            conn.rollback()
        except self.driver_errors as e:
            log.warning("Rollback after failed statement also failed: %s", e)
        shown = params if log_params else "<redacted>"
        if self._is_timeout(exc):
            log.error("Database timeout: %s | query=%s | params=%s", exc, " ".join(sql.split()), shown)
            raise ServiceUnavailableError() from exc
        if isinstance(exc, self.integrity_errors):
            log.warning("Constraint violation: %s | query=%s | params=%s", exc, " ".join(sql.split()), shown)
            raise ConflictError("Operation conflicts with existing data") from exc
        log.error("Database error: %s | query=%s | params=%s", exc, " ".join(sql.split()), shown)
        raise UpstreamError() from exc


def _bind(params: Sequence[Any]) -> Tuple[Any, ...]:
    return tuple(v.isoformat() if isinstance(v, date) else v for v in params)


# --------------------------------------------------------------------------
# Partial updates
# --------------------------------------------------------------------------
_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

def build_update(table: str, changes: Mapping[str, Any], key_value: Any,
                 key: str = "id") -> Tuple[str, Tuple[Any, ...]]:
    """
    Build ``UPDATE <table> SET a=%s, b=%s WHERE <key>=%s`` for the supplied
    columns only, in the mapping's iteration order.

    Column names end up in the statement text, so they must be plain
    identifiers; values are always bound as parameters.
    """
    if not changes:
        raise ValidationError("No fields to update")
    for name in (table, key, *changes):
        if not _IDENTIFIER.match(name):
            raise ValueError(f"Illegal SQL identifier: {name!r}")
    assignments = ", ".join(f"{column}=%s" for column in changes)
    sql = f"UPDATE {table} SET {assignments} WHERE {key}=%s"
    return sql, tuple(changes.values()) + (key_value,)


# --------------------------------------------------------------------------
# Schema bootstrap
# --------------------------------------------------------------------------
SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS room (
        id INT AUTO_INCREMENT PRIMARY KEY,
        label VARCHAR(100) NOT NULL,
        type VARCHAR(50) NOT NULL,
        status VARCHAR(20) NOT NULL DEFAULT 'active',
        image_file_id VARCHAR(100) NULL
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS computer_cat (
        id INT AUTO_INCREMENT PRIMARY KEY,
        label VARCHAR(100) NOT NULL,
        model_release_date DATE NOT NULL,
        description TEXT NOT NULL
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS computer (
        id INT AUTO_INCREMENT PRIMARY KEY,
        label VARCHAR(100) NOT NULL,
        install_date DATE NULL,
        isassignedto INT NOT NULL,
        belongstocategory INT NOT NULL,
        status VARCHAR(20) NOT NULL,
        quantity INT NOT NULL DEFAULT 1,
        CONSTRAINT fk_computer_room FOREIGN KEY (isassignedto)
          REFERENCES room(id) ON DELETE RESTRICT,
        CONSTRAINT fk_computer_cat FOREIGN KEY (belongstocategory)
          REFERENCES computer_cat(id) ON DELETE RESTRICT
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS smart_board (
        id INT AUTO_INCREMENT PRIMARY KEY,
        model_id VARCHAR(100) NOT NULL,
        isassignedto INT NOT NULL,
        installed_date DATE NOT NULL,
        status VARCHAR(20) NOT NULL,
        image_file_id VARCHAR(100) NULL,
        CONSTRAINT fk_smart_board_room FOREIGN KEY (isassignedto)
          REFERENCES room(id) ON DELETE RESTRICT
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS lab_utility (
        id INT AUTO_INCREMENT PRIMARY KEY,
        label VARCHAR(100) NOT NULL,
        description TEXT NOT NULL,
        quantity INT NOT NULL,
        isassignedto INT NOT NULL,
        status VARCHAR(20) NOT NULL,
        CONSTRAINT fk_lab_utility_room FOREIGN KEY (isassignedto)
          REFERENCES room(id) ON DELETE RESTRICT
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id INT AUTO_INCREMENT PRIMARY KEY,
        username VARCHAR(100) NOT NULL UNIQUE,
        password_hash VARCHAR(255) NOT NULL,
        name VARCHAR(100) NOT NULL
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
    """,
]

def ensure_schema(db: Database) -> None:
    """Create the inventory tables if they do not exist yet."""
    for statement in SCHEMA:
        db.execute(statement)
