# manages connection to db and the change feed, helpers internal to db package
import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from sqlite3 import Row
from typing import Callable, Dict, List

import aiosqlite
from werkzeug.security import generate_password_hash

from stockdesk.utils.config import get_settings
from stockdesk.utils.logger import get_logger

_logger = get_logger(__name__)

_HERE = Path(__file__).resolve().parent

DB_PATH = str(get_settings().db_path)
SCHEMA_SCRIPT = _HERE / "schema.sql"
SEED_SCRIPT = _HERE / "seed-data.sql"

# flipped off by tests that want an empty catalog
SEED_DEMO = get_settings().seed_demo

_initialized = False
_init_lock = asyncio.Lock()

_subscribers: Dict[str, List[Callable[[str], None]]] = defaultdict(list)


def now() -> datetime:
    return datetime.now().replace(microsecond=0)


def to_db_time(when: datetime) -> str:
    return when.isoformat(sep=" ", timespec="seconds")


def from_db_time(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


async def _run_script(conn: aiosqlite.Connection, script: Path) -> None:
    if not script.exists() or script.stat().st_size == 0:
        return
    _logger.info(f"Running database script {script.name}...")
    await conn.executescript(script.read_text(encoding="utf-8"))


async def _seed_admin(conn: aiosqlite.Connection) -> None:
    settings = get_settings()
    await conn.execute(
        """
        INSERT INTO users(name, last_name, email, role, bid, pwd_hash, created_at)
        VALUES ('Admin', '', ?, 'admin', NULL, ?, ?);
        """,
        (
            settings.admin_email,
            generate_password_hash(settings.admin_password),
            to_db_time(now()),
        ),
    )
    _logger.info(f"Bootstrap admin account {settings.admin_email} created.")


async def _init_db(conn: aiosqlite.Connection) -> None:
    await _run_script(conn, SCHEMA_SCRIPT)
    if SEED_DEMO:
        await _run_script(conn, SEED_SCRIPT)
    await _seed_admin(conn)
    await conn.commit()


async def _table_exists(conn: aiosqlite.Connection, table_name: str) -> bool:
    cur = await conn.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table'
          AND name = ?;
        """,
        (table_name,),
    )
    row = await cur.fetchone()
    await cur.close()
    return row is not None


@asynccontextmanager
async def connect() -> aiosqlite.Connection:
    """Async context manager yielding an aiosqlite connection with FK enabled.

    Creates the schema, demo data and the bootstrap admin on first use.
    """
    global _initialized
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(DB_PATH)
    conn.row_factory = Row
    await conn.execute("PRAGMA foreign_keys = ON;")

    if not _initialized:
        async with _init_lock:
            if not _initialized:
                if not await _table_exists(conn, "users"):
                    _logger.info(f"Initializing database at {DB_PATH}...")
                    await _init_db(conn)
                _initialized = True
    try:
        yield conn
    finally:
        await conn.close()


# ---------------------------
# Change feed
# ---------------------------


def subscribe(table: str, callback: Callable[[str], None]) -> Callable[[], None]:
    """Call ``callback(table)`` after every committed write to ``table``.

    Returns a function that removes the subscription.
    """
    _subscribers[table].append(callback)

    def unsubscribe() -> None:
        if callback in _subscribers[table]:
            _subscribers[table].remove(callback)

    return unsubscribe


def publish(table: str) -> None:
    for callback in list(_subscribers[table]):
        try:
            callback(table)
        except Exception:
            # the write is already committed
            _logger.exception(f"Change listener for '{table}' failed.")
