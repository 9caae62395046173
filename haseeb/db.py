import sqlite3
from contextlib import contextmanager
from pathlib import Path

from fncli import cli
from loguru import logger

from . import config
from .lib.errors import echo

MIGRATIONS_TABLE = "_migrations"

Migration = tuple[str, str]


@contextmanager
def get_db(db_path: Path | None = None):
    db_path = db_path if db_path else config.DB_PATH
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _table_count(conn: sqlite3.Connection, table: str) -> int:
    try:
        return conn.execute(f'SELECT COUNT(*) FROM "{table}"').fetchone()[0]  # noqa: S608
    except sqlite3.OperationalError:
        return 0


def _check_data_loss(conn: sqlite3.Connection, before: dict[str, int]) -> None:
    for table, count in before.items():
        after = _table_count(conn, table)
        if after < count:
            raise ValueError(f"migration data loss: {table} had {count} rows, now {after}")


def load_migrations() -> list[Migration]:
    migrations_dir = Path(__file__).parent / "migrations"
    if not migrations_dir.exists():
        return []
    return [
        (sql_file.stem, sql_file.read_text())
        for sql_file in sorted(migrations_dir.glob("*.sql"))
    ]


def _apply_migrations(conn: sqlite3.Connection) -> list[str]:
    conn.execute(
        f"CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} "
        "(id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL UNIQUE, applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
    )
    conn.commit()

    applied = {row[0] for row in conn.execute(f"SELECT name FROM {MIGRATIONS_TABLE}").fetchall()}  # noqa: S608
    pending = [(n, sql) for n, sql in load_migrations() if n not in applied]

    for name, sql in pending:
        tables = [
            row[0]
            for row in conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name != ?",
                (MIGRATIONS_TABLE,),
            ).fetchall()
        ]
        before = {t: _table_count(conn, t) for t in tables}
        try:
            conn.executescript(sql)
            _check_data_loss(conn, before)
            conn.execute(f"INSERT OR IGNORE INTO {MIGRATIONS_TABLE} (name) VALUES (?)", (name,))  # noqa: S608
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        logger.info(f"applied migration {name}")
    return [name for name, _ in pending]


def init(db_path: Path | None = None) -> list[str]:
    """Create the database file if needed and apply pending migrations."""
    db_path = db_path if db_path else config.DB_PATH
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with get_db(db_path) as conn:
        return _apply_migrations(conn)


@cli("haseeb db", name="migrate")
def db_migrate():
    """Run pending database migrations"""
    applied = init()
    echo(f"{len(applied)} migrations applied" if applied else "up to date")
