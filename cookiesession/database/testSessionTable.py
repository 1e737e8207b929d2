#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: testSessionTable.py

    Description:
        Unit tests for PostgresSessionStore. A RecordingDatabase stands in for
        the psycopg2-backed Database so every statement and parameter tuple
        issued by the store can be inspected without a live server.
"""


import unittest
from datetime import datetime, timedelta, timezone

import psycopg2.extras

from cookiesession.database.database_object import Database
from cookiesession.database.session_table import PostgresSessionStore
from cookiesession.database.session_store import SessionRecord
from cookiesession.handlers.error_handler import SessionError, StoreUnavailable, ApplicationCodes


_T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


"""
    Database double that records statements and replays canned results.
"""
class RecordingDatabase(Database):

    def __init__(self) -> None:
        self.statements = []
        self.rowcount = 1
        self.row = None
        self.rows = []
        self.fail = False

    def _record(self, sql, params):
        if self.fail:
            raise RuntimeError("connection reset")
        self.statements.append((" ".join(sql.split()), params))

    def execute_statment(self, sql, params=None):
        self._record(sql, params)
        return self.rowcount

    def get_row(self, sql, params=None):
        self._record(sql, params)
        return self.row

    def execute_returning_rows(self, sql, params=None):
        self._record(sql, params)
        return self.rows


class TestPostgresSessionStore(unittest.TestCase):

    def setUp(self) -> None:
        self.database = RecordingDatabase()
        self.store = PostgresSessionStore(self.database)
        self.database.statements.clear()

        self.record = SessionRecord(session_id=self.store.generate_id(), namespaces={"default": {"k": "v"}}, last_activity=_T0, created_at=_T0)


    """
        Construction creates the session_storage table and its last_activity index.
    """
    def test_init_creates_schema(self):

        database = RecordingDatabase()
        PostgresSessionStore(database)

        self.assertEqual(2, len(database.statements))
        self.assertIn("CREATE TABLE IF NOT EXISTS session_storage", database.statements[0][0])
        self.assertIn("namespaces JSONB", database.statements[0][0])
        self.assertIn("CREATE INDEX IF NOT EXISTS", database.statements[1][0])


    def test_init_requires_database(self):

        with self.assertRaises(SessionError) as ctx:
            PostgresSessionStore(object())

        self.assertEqual(ApplicationCodes.INVALID_TYPE, ctx.exception.application_code)


    def test_load_missing_returns_none(self):

        self.assertIsNone(self.store.load(self.record.session_id))

        sql, params = self.database.statements[0]
        self.assertTrue(sql.startswith("SELECT session_id, namespaces, last_activity, created_at FROM session_storage"))
        self.assertEqual((self.record.session_id,), params)


    def test_load_builds_record(self):

        self.database.row = {"session_id": self.record.session_id, "namespaces": {"default": {"k": "v"}}, "last_activity": _T0, "created_at": _T0}

        loaded = self.store.load(self.record.session_id)

        self.assertEqual(self.record, loaded)


    def test_load_accepts_json_text(self):

        self.database.row = {"session_id": self.record.session_id, "namespaces": '{"cart": {"n": 2}}', "last_activity": _T0, "created_at": _T0}

        self.assertEqual({"cart": {"n": 2}}, self.store.load(self.record.session_id).namespaces)


    def test_load_rejects_corrupt_namespaces(self):

        for namespaces in ("{not json", "[1, 2]", {"default": 5}):
            self.database.row = {"session_id": self.record.session_id, "namespaces": namespaces, "last_activity": _T0, "created_at": _T0}

            with self.assertRaises(StoreUnavailable):
                self.store.load(self.record.session_id)


    """
        save is an upsert carrying the namespaces as a JSONB adapter.
    """
    def test_save_upserts(self):

        self.store.save(self.record)

        sql, params = self.database.statements[0]
        self.assertIn("INSERT INTO session_storage", sql)
        self.assertIn("ON CONFLICT (session_id) DO UPDATE", sql)
        self.assertEqual(self.record.session_id, params[0])
        self.assertIsInstance(params[1], psycopg2.extras.Json)
        self.assertEqual(self.record.namespaces, params[1].adapted)
        self.assertEqual((_T0, _T0), params[2:])


    """
        update only rewrites an existing row; no matching row reports False instead of inserting.
    """
    def test_update_never_inserts(self):

        self.assertTrue(self.store.update(self.record))

        self.database.rowcount = 0
        self.assertFalse(self.store.update(self.record))

        for sql, params in self.database.statements:
            self.assertTrue(sql.startswith("UPDATE session_storage"))
            self.assertNotIn("INSERT", sql)
            self.assertIn("WHERE session_id = %s", sql)
            self.assertEqual(self.record.namespaces, params[0].adapted)
            self.assertEqual((_T0, self.record.session_id), params[1:])


    def test_delete_reports_rowcount(self):

        self.assertTrue(self.store.delete(self.record.session_id))

        self.database.rowcount = 0
        self.assertFalse(self.store.delete(self.record.session_id))


    def test_delete_if_unchanged_matches_last_activity(self):

        self.database.rowcount = 0
        self.assertFalse(self.store.delete_if_unchanged(self.record.session_id, _T0))

        sql, params = self.database.statements[0]
        self.assertIn("WHERE session_id = %s AND last_activity = %s", sql)
        self.assertEqual((self.record.session_id, _T0), params)


    """
        With delete_old the row is renamed by one UPDATE; a vanished row is re-inserted under the new id.
    """
    def test_rekey_renames_row(self):

        old_id = self.record.session_id
        moved = self.record.clone()
        moved.session_id = self.store.generate_id()

        self.store.rekey(old_id, moved)

        self.assertEqual(1, len(self.database.statements))
        sql, params = self.database.statements[0]
        self.assertTrue(sql.startswith("UPDATE session_storage SET session_id = %s"))
        self.assertEqual(moved.session_id, params[0])
        self.assertEqual(old_id, params[3])

        self.database.statements.clear()
        self.database.rowcount = 0
        self.store.rekey(old_id, moved)

        self.assertEqual(2, len(self.database.statements))
        self.assertIn("INSERT INTO session_storage", self.database.statements[1][0])


    def test_rekey_keeping_old_inserts_copy(self):

        moved = self.record.clone()
        moved.session_id = self.store.generate_id()

        self.store.rekey(self.record.session_id, moved, delete_old=False)

        self.assertEqual(1, len(self.database.statements))
        self.assertIn("INSERT INTO session_storage", self.database.statements[0][0])
        self.assertEqual(moved.session_id, self.database.statements[0][1][0])


    def test_purge_idle_returns_ids(self):

        self.database.rows = [{"session_id": "a"}, {"session_id": "b"}]
        cutoff = _T0 - timedelta(minutes=15)

        self.assertEqual(["a", "b"], self.store.purge_idle(cutoff))

        sql, params = self.database.statements[0]
        self.assertIn("RETURNING session_id", sql)
        self.assertEqual((cutoff,), params)


    """
        Unexpected driver failures surface as StoreUnavailable.
    """
    def test_driver_failure_is_store_unavailable(self):

        self.database.fail = True

        for operation in (lambda: self.store.load(self.record.session_id), lambda: self.store.save(self.record), lambda: self.store.update(self.record), lambda: self.store.delete(self.record.session_id), lambda: self.store.purge_idle(_T0)):
            with self.assertRaises(StoreUnavailable):
                operation()


if __name__ == "__main__":
    unittest.main()
