#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: session_table.py

    Description:
        PostgreSQL-backed SessionStore. Manages the session_storage table, which
        holds one row per session: the identifier, the namespaced data as JSONB,
        and the last_activity / created_at timestamps. Saves are upserts while
        updates never insert. Compare-and-delete is a conditional DELETE on
        last_activity, and re-keying is a single UPDATE so the old identifier
        is never readable after the new one is committed.
"""

import json
from datetime import datetime
from typing import List, Optional
import psycopg2.extras
from cookiesession.database.database_object import Database
from cookiesession.database.session_store import SessionRecord, SessionStore
from cookiesession.handlers.error_handler import SessionError, StoreUnavailable, ApplicationCodes, HTTPCodes


class PostgresSessionStore(SessionStore):

    """
        Initialize a PostgresSessionStore bound to a Database instance.

        @param database (Database): Shared Database helper used to communicate with PostgreSQL.
        @require isinstance(database, Database)
        @ensures The session_storage table and its last_activity index exist.
    """
    def __init__(self, database: Database) -> None:
        super().__init__()

        try:
            if not isinstance(database, Database):
                raise SessionError(ApplicationCodes.INVALID_TYPE, HTTPCodes.INTERNAL_SERVER_ERROR, "PostgresSessionStore requires a Database instance", "database")

            self._database: Database = database

            self._ensure_table_exists()

        except SessionError:
            raise

        except Exception:
            raise StoreUnavailable("Failed to initialize PostgresSessionStore", "session_table_init")


    """
        Create the session_storage table if it does not already exist.

        @ensures session_storage contains session_id, namespaces, last_activity, created_at.
    """
    def _ensure_table_exists(self) -> None:

        create_session_sql = """
            CREATE TABLE IF NOT EXISTS session_storage (
                session_id    TEXT        PRIMARY KEY,
                namespaces    JSONB       NOT NULL DEFAULT '{}'::jsonb,
                last_activity TIMESTAMPTZ NOT NULL,
                created_at    TIMESTAMPTZ NOT NULL
            );
        """

        # Idle purges scan by last_activity
        create_index_sql = """
            CREATE INDEX IF NOT EXISTS session_storage_last_activity_idx
                ON session_storage (last_activity);
        """

        self._database.execute_statment(create_session_sql)
        self._database.execute_statment(create_index_sql)


    """
        Convert a session_storage row into a SessionRecord.

        @param row (dict): Row with session_id, namespaces, last_activity, created_at.
        @return SessionRecord: Record built from the row.
        @ensures Malformed namespace payloads raise StoreUnavailable.
    """
    def _row_to_record(self, row: dict) -> SessionRecord:

        namespaces = row.get("namespaces")

        # psycopg2 decodes JSONB automatically; plain JSON text is tolerated
        if isinstance(namespaces, str):
            try:
                namespaces = json.loads(namespaces)
            except ValueError:
                raise StoreUnavailable("Stored session namespaces are not valid JSON", "namespaces")

        if not isinstance(namespaces, dict) or not all(isinstance(v, dict) for v in namespaces.values()):
            raise StoreUnavailable("Stored session namespaces must be an object of objects", "namespaces")

        return SessionRecord(
            session_id=row["session_id"],
            namespaces=namespaces,
            last_activity=row["last_activity"],
            created_at=row["created_at"],
        )


    """
        Load the record stored under session_id.

        @return SessionRecord | None: Record, or None when no row matches.
    """
    def load(self, session_id: str) -> Optional[SessionRecord]:
        try:
            self._validate_session_id(session_id)

            select_sql = """
                SELECT session_id, namespaces, last_activity, created_at
                FROM session_storage
                WHERE session_id = %s;
            """

            row = self._database.get_row(select_sql, (session_id,))
            if row is None:
                return None

            return self._row_to_record(row)

        except SessionError:
            raise
        except Exception:
            raise StoreUnavailable("Failed to load session record", "session_load")


    """
        Upsert the record under its session_id.
    """
    def save(self, record: SessionRecord) -> None:
        try:
            self._validate_record(record)

            upsert_sql = """
                INSERT INTO session_storage (session_id, namespaces, last_activity, created_at)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (session_id) DO UPDATE
                    SET namespaces = EXCLUDED.namespaces,
                        last_activity = EXCLUDED.last_activity;
            """

            self._database.execute_statment(
                upsert_sql,
                (
                    record.session_id,
                    psycopg2.extras.Json(record.namespaces),
                    record.last_activity,
                    record.created_at,
                ),
            )

        except SessionError:
            raise
        except Exception:
            raise StoreUnavailable("Failed to save session record", "session_save")


    """
        Overwrite the namespaces and last_activity of an existing row.

        @return bool: False when no row matches; a missing row is never recreated.
    """
    def update(self, record: SessionRecord) -> bool:
        try:
            self._validate_record(record)

            update_sql = """
                UPDATE session_storage
                SET namespaces = %s, last_activity = %s
                WHERE session_id = %s;
            """

            rc = self._database.execute_statment(
                update_sql,
                (
                    psycopg2.extras.Json(record.namespaces),
                    record.last_activity,
                    record.session_id,
                ),
            )
            return rc > 0

        except SessionError:
            raise
        except Exception:
            raise StoreUnavailable("Failed to update session record", "session_update")


    """
        Delete the row stored under session_id.

        @return bool: True if a row was removed.
    """
    def delete(self, session_id: str) -> bool:
        try:
            self._validate_session_id(session_id)

            rc = self._database.execute_statment("DELETE FROM session_storage WHERE session_id = %s;", (session_id,))
            return rc > 0

        except SessionError:
            raise
        except Exception:
            raise StoreUnavailable("Failed to delete session record", "session_delete")


    """
        Delete the row only if last_activity still equals the observed value.

        @return bool: True if this statement removed the row.
        @ensures Concurrent requests holding the same stale identifier delete it at most once.
    """
    def delete_if_unchanged(self, session_id: str, last_activity: datetime) -> bool:
        try:
            self._validate_session_id(session_id)

            delete_sql = """
                DELETE FROM session_storage
                WHERE session_id = %s AND last_activity = %s;
            """

            rc = self._database.execute_statment(delete_sql, (session_id, last_activity))
            return rc > 0

        except SessionError:
            raise
        except Exception:
            raise StoreUnavailable("Failed to conditionally delete session record", "session_delete")


    """
        Move a record to a new identifier.

        @param old_session_id (str): Identifier being retired.
        @param record (SessionRecord): Record already carrying the new session_id.
        @param delete_old (bool): Rename the row in place (True) or leave the old row and insert a copy (False).
        @ensures With delete_old, a single UPDATE retires the old identifier as the new one is committed.
    """
    def rekey(self, old_session_id: str, record: SessionRecord, delete_old: bool = True) -> None:
        try:
            self._validate_session_id(old_session_id, "old_session_id")
            self._validate_record(record)

            if not delete_old:
                self.save(record)
                return

            rename_sql = """
                UPDATE session_storage
                SET session_id = %s, namespaces = %s, last_activity = %s
                WHERE session_id = %s;
            """

            rc = self._database.execute_statment(
                rename_sql,
                (
                    record.session_id,
                    psycopg2.extras.Json(record.namespaces),
                    record.last_activity,
                    old_session_id,
                ),
            )

            # The old row vanished (purged concurrently); persist under the new id only
            if rc == 0:
                self.save(record)

        except SessionError:
            raise
        except Exception:
            raise StoreUnavailable("Failed to move session record to a new identifier", "session_rekey")


    """
        Remove every row idle since before cutoff.

        @return list[str]: Identifiers removed.
    """
    def purge_idle(self, cutoff: datetime) -> List[str]:
        try:
            purge_sql = """
                DELETE FROM session_storage
                WHERE last_activity < %s
                RETURNING session_id;
            """

            rows: List[dict] = self._database.execute_returning_rows(purge_sql, (cutoff,))
            return [row["session_id"] for row in rows]

        except SessionError:
            raise
        except Exception:
            raise StoreUnavailable("Failed to purge idle session records", "session_purge")
