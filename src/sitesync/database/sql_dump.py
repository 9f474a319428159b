"""
In-process SQL dump writer and statement executor.

Used when neither WP-CLI nor the native MySQL clients are available. The
dump is plain SQL: DROP TABLE IF EXISTS, the SHOW CREATE TABLE statement
and batched multi-row INSERTs for every table.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time as dt_time, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterator, List, Optional

logger = logging.getLogger(__name__)

_ESCAPES = {
    "\\": "\\\\",
    "\x00": "\\0",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "'": "\\'",
    '"': '\\"',
    "\x1a": "\\Z",
}


def escape_sql_value(value: Any) -> str:
    """Render a Python value as a MySQL literal."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (bytes, bytearray, memoryview)):
        data = bytes(value)
        return "X'" + data.hex() + "'" if data else "''"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        value = value.strftime("%Y-%m-%d %H:%M:%S")
    elif isinstance(value, (date, dt_time)):
        value = value.isoformat()
    text = str(value)
    return "'" + "".join(_ESCAPES.get(ch, ch) for ch in text) + "'"


def quote_identifier(name: str) -> str:
    return "`" + str(name).replace("`", "``") + "`"


@dataclass
class DumpStats:
    """Counts from an in-process dump."""
    tables: int = 0
    rows: int = 0


@dataclass
class ExecutionStats:
    """Counts from executing a SQL file."""
    executed: int = 0
    errors: int = 0
    error_messages: List[str] = field(default_factory=list)


class SqlDumper:
    """Writes a MySQL database to a SQL file through a DB-API connection."""

    def __init__(self, conn, database_name: str = "", insert_batch_rows: int = 100):
        self.conn = conn
        self.database_name = database_name
        self.insert_batch_rows = max(1, int(insert_batch_rows))

    def list_tables(self) -> List[str]:
        cursor = self.conn.cursor()
        cursor.execute("SHOW TABLES")
        tables = [row[0] for row in cursor.fetchall()]
        cursor.close()
        return tables

    def dump_to(self, path: Path, tables: Optional[List[str]] = None) -> DumpStats:
        """
        Write the dump file.

        Args:
            path: Destination .sql file
            tables: Tables to dump (all tables if None)

        Returns:
            DumpStats with table and row counts
        """
        stats = DumpStats()
        tables = tables if tables is not None else self.list_tables()
        logger.info(f"Dumping {len(tables)} tables to {path}")

        with open(path, "w", encoding="utf-8", newline="\n") as f:
            f.write("-- sitesync database dump\n")
            if self.database_name:
                f.write(f"-- Database: {self.database_name}\n")
            f.write(f"-- Generated: {datetime.now(timezone.utc).isoformat()}\n\n")
            f.write("SET NAMES utf8mb4;\n")
            f.write("SET FOREIGN_KEY_CHECKS=0;\n")
            f.write("SET SQL_MODE='NO_AUTO_VALUE_ON_ZERO';\n\n")

            for table in tables:
                stats.rows += self._dump_table(f, table)
                stats.tables += 1

            f.write("SET FOREIGN_KEY_CHECKS=1;\n")

        logger.info(f"Dumped {stats.tables} tables, {stats.rows} rows")
        return stats

    def _dump_table(self, f, table: str) -> int:
        logger.debug(f"Dumping table {table}")
        quoted = quote_identifier(table)
        cursor = self.conn.cursor()

        cursor.execute(f"SHOW CREATE TABLE {quoted}")
        create_stmt = cursor.fetchone()[1]
        f.write(f"-- Table: {table}\n")
        f.write(f"DROP TABLE IF EXISTS {quoted};\n")
        f.write(f"{create_stmt};\n\n")

        cursor.execute(f"SELECT * FROM {quoted}")
        columns = [desc[0] for desc in cursor.description]
        col_list = ", ".join(quote_identifier(c) for c in columns)

        count = 0
        while True:
            batch = cursor.fetchmany(self.insert_batch_rows)
            if not batch:
                break
            values = ",\n".join(
                "(" + ", ".join(escape_sql_value(v) for v in row) + ")" for row in batch
            )
            f.write(f"INSERT INTO {quoted} ({col_list}) VALUES\n{values};\n")
            count += len(batch)

        cursor.close()
        f.write("\n")
        return count


def iter_sql_statements(sql: str) -> Iterator[str]:
    """
    Split SQL text into statements on ';'.

    Semicolons inside quoted strings, backtick identifiers and comments do
    not terminate a statement. Comments are dropped.
    """
    buf: List[str] = []
    quote: Optional[str] = None
    i = 0
    length = len(sql)

    while i < length:
        ch = sql[i]

        if quote is not None:
            buf.append(ch)
            if ch == "\\" and quote != "`" and i + 1 < length:
                buf.append(sql[i + 1])
                i += 2
                continue
            if ch == quote:
                # Doubled quote is an escaped quote
                if i + 1 < length and sql[i + 1] == quote:
                    buf.append(sql[i + 1])
                    i += 2
                    continue
                quote = None
            i += 1
            continue

        if ch in ("'", '"', "`"):
            quote = ch
            buf.append(ch)
            i += 1
            continue

        if ch == "-" and sql.startswith("--", i) and (i + 2 >= length or sql[i + 2] in " \t\r\n"):
            end = sql.find("\n", i)
            i = length if end == -1 else end + 1
            continue
        if ch == "#":
            end = sql.find("\n", i)
            i = length if end == -1 else end + 1
            continue
        if ch == "/" and sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            comment = sql[i:length if end == -1 else end + 2]
            # /*!40101 ... */ carries version-gated statements
            if comment.startswith("/*!"):
                buf.append(comment)
            i = length if end == -1 else end + 2
            continue

        if ch == ";":
            statement = "".join(buf).strip()
            if statement:
                yield statement
            buf = []
            i += 1
            continue

        buf.append(ch)
        i += 1

    statement = "".join(buf).strip()
    if statement:
        yield statement


def split_sql_statements(sql: str) -> List[str]:
    return list(iter_sql_statements(sql))


class SqlExecutor:
    """Executes a SQL file statement by statement, counting failures."""

    def __init__(self, conn, max_logged_errors: int = 5):
        self.conn = conn
        self.max_logged_errors = max_logged_errors

    def execute_sql(self, sql: str) -> ExecutionStats:
        stats = ExecutionStats()
        cursor = self.conn.cursor()
        for statement in iter_sql_statements(sql):
            try:
                cursor.execute(statement)
                stats.executed += 1
            except Exception as e:
                stats.errors += 1
                stats.error_messages.append(str(e))
                if stats.errors <= self.max_logged_errors:
                    logger.warning(f"SQL error: {e}")
        self.conn.commit()
        cursor.close()
        logger.info(f"Executed {stats.executed} statements, {stats.errors} errors")
        return stats

    def execute_file(self, path: Path) -> ExecutionStats:
        sql = Path(path).read_text(encoding="utf-8", errors="replace")
        return self.execute_sql(sql)
