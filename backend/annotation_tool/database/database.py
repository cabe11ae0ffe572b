import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List

from annotation_tool.core.timestamps import now_millis

logger = logging.getLogger(__name__)

# TODO: store annotations in their own table once they need to be queried by time range

DEFAULT_INIT_SQL_PATH = Path(__file__).parent / "init.sql"


@dataclass(frozen=True)
class DatabaseContext:
    database_path: Path
    init_sql_path: Path = DEFAULT_INIT_SQL_PATH


class Database:
    """
    JSON record store keyed by (collection, record id).

    A collection is the url of a resource list, e.g. "tracks" or
    "tracks/42/annotations", which is what client side local storage keys on.
    """

    def __init__(self, context: DatabaseContext):
        self.context = context

    def connect_to_database(self, timeout: float = 5) -> sqlite3.Connection | None:
        database_path = self.context.database_path
        try:
            conn = sqlite3.connect(database_path, timeout=timeout)
            conn.execute("PRAGMA journal_mode=WAL")
            conn.commit()
            return conn
        except Exception as e:
            logger.error(
                f"Error connecting to the sqlite database. database path: {database_path} Exception: {e}"
            )
            return None

    def initialize(self) -> bool:
        if self.context.database_path.exists():
            logger.info("Database already exists, so skipping")
            return True

        conn = self.connect_to_database()
        if not conn:
            logger.error("Unable to connect to the database, connect_to_database returned None")
            return False

        with open(self.context.init_sql_path, "r") as f:
            init_script = f.read()

        try:
            conn.executescript(init_script)
            conn.commit()
        except Exception as e:
            logger.error(
                f"Error loading sqlite init script, found at path {self.context.init_sql_path} with exception {e}"
            )
            conn.rollback()
            return False
        finally:
            conn.close()

        return True

    def add_record(self, collection: str, record: dict[str, Any], timeout: float = 5) -> dict[str, Any] | None:
        """Insert a record, assigning a uuid id when it has none. Returns the stored record."""
        stored = dict(record)
        if stored.get("id") is None:
            stored["id"] = str(uuid.uuid4())

        conn = self.connect_to_database(timeout=timeout)
        if not conn:
            return None

        now = now_millis()
        try:
            conn.execute(
                "INSERT INTO records (collection, record_id, data, created_at, last_updated) "
                "VALUES (?, ?, ?, ?, ?)",
                (collection, str(stored["id"]), json.dumps(stored), now, now),
            )
            conn.commit()
        except Exception as e:
            logger.error(f"Failed to insert {stored} into {collection}: {e}")
            conn.rollback()
            return None
        finally:
            conn.close()

        return stored

    def update_record(
        self, collection: str, record_id: str | int, record: dict[str, Any], timeout: float = 5
    ) -> dict[str, Any] | None:
        stored = dict(record)
        stored["id"] = stored.get("id", record_id)

        conn = self.connect_to_database(timeout=timeout)
        if not conn:
            return None

        try:
            cursor = conn.execute(
                "UPDATE records SET data = ?, last_updated = ? WHERE collection = ? AND record_id = ?",
                (json.dumps(stored), now_millis(), collection, str(record_id)),
            )
            if cursor.rowcount == 0:
                conn.rollback()
                return None
            conn.commit()
        except Exception as e:
            logger.error(f"Failed to update {record_id} in {collection}: {e}")
            conn.rollback()
            return None
        finally:
            conn.close()

        return stored

    def get_record(self, collection: str, record_id: str | int, timeout: float = 5) -> dict[str, Any] | None:
        conn = self.connect_to_database(timeout=timeout)
        if not conn:
            return None

        try:
            row = conn.execute(
                "SELECT data FROM records WHERE collection = ? AND record_id = ?",
                (collection, str(record_id)),
            ).fetchone()
        except Exception as e:
            logger.error(f"Failed to read {record_id} from {collection}: {e}")
            return None
        finally:
            conn.close()

        if row is None:
            return None
        return json.loads(row[0])

    def get_records(self, collection: str, timeout: float = 5) -> List[dict[str, Any]] | None:
        """All records of a collection in insertion order, None if the store is unreadable."""
        conn = self.connect_to_database(timeout=timeout)
        if not conn:
            return None

        try:
            rows = conn.execute(
                "SELECT data FROM records WHERE collection = ? ORDER BY id ASC",
                (collection,),
            ).fetchall()
        except Exception as e:
            logger.error(f"Failed to read collection {collection}: {e}")
            return None
        finally:
            conn.close()

        return [json.loads(row[0]) for row in rows]

    def delete_record(self, collection: str, record_id: str | int, timeout: float = 5) -> bool:
        conn = self.connect_to_database(timeout=timeout)
        if not conn:
            return False

        try:
            cursor = conn.execute(
                "DELETE FROM records WHERE collection = ? AND record_id = ?",
                (collection, str(record_id)),
            )
            if cursor.rowcount == 0:
                conn.rollback()
                return False
            conn.commit()
        except Exception as e:
            logger.error(f"Failed to delete {record_id} from {collection}: {e}")
            conn.rollback()
            return False
        finally:
            conn.close()

        return True
