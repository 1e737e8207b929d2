#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: testDatabase.py

    Description:
        Unit tests for the Database helper. Verifies credential loading and
        validation from JSON files, SQL/parameter validation, and that each
        statement commits on success, rolls back on failure, always closes its
        connection, and reports driver failures as StoreUnavailable. The
        psycopg2 connection is replaced with a mock so no server is needed.
"""


import json
import os
import tempfile
import unittest
from unittest import mock

from cookiesession.database.database_object import Database
from cookiesession.handlers.error_handler import SessionError, ConfigurationError, StoreUnavailable, ApplicationCodes


_VALID_CREDENTIALS = {"database": "sessions", "user": "app", "password": "pw", "host": "db.internal", "port": 5433}


####################################################################################################
#                                         Credential Tests
####################################################################################################

class TestDatabaseCredentials(unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write(self, content: str) -> str:
        path = os.path.join(self._tmp.name, "credentials.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return path


    def test_loads_valid_credentials(self):

        db = Database(self._write(json.dumps(_VALID_CREDENTIALS)))

        self.assertEqual("sessions", db._database)
        self.assertEqual("app", db._user)
        self.assertEqual("db.internal", db._host)
        self.assertEqual(5433, db._port)


    """
        host and port are optional and default to localhost:5432.
    """
    def test_optional_fields_default(self):

        db = Database(self._write(json.dumps({"database": "sessions", "user": "app", "password": "pw"})))

        self.assertEqual("localhost", db._host)
        self.assertEqual(5432, db._port)


    def test_invalid_path(self):

        for path in (123, "   ", os.path.join(self._tmp.name, "missing.json")):
            with self.assertRaises(ConfigurationError) as ctx:
                Database(path)
            self.assertEqual(ApplicationCodes.INVALID_PATH, ctx.exception.application_code)


    def test_malformed_json(self):

        with self.assertRaises(ConfigurationError) as ctx:
            Database(self._write("{not json"))

        self.assertEqual(ApplicationCodes.MALFORMED_JSON, ctx.exception.application_code)


    """
        Every required field must be a non-empty string; port must be a valid TCP port.
    """
    def test_invalid_fields(self):

        cases = [
            [1, 2],
            {"user": "app", "password": "pw"},
            dict(_VALID_CREDENTIALS, database=""),
            dict(_VALID_CREDENTIALS, password=None),
            dict(_VALID_CREDENTIALS, host=""),
            dict(_VALID_CREDENTIALS, port="5432"),
            dict(_VALID_CREDENTIALS, port=0),
            dict(_VALID_CREDENTIALS, port=True),
        ]

        for creds in cases:
            with self.assertRaises(ConfigurationError, msg=repr(creds)):
                Database(self._write(json.dumps(creds)))



####################################################################################################
#                                         Execution Tests
####################################################################################################

class TestDatabaseExecution(unittest.TestCase):

    def setUp(self) -> None:
        self.db = Database.__new__(Database)
        self.db._credentials_path = ""
        self.db._database = "sessions"
        self.db._user = "app"
        self.db._password = "pw"
        self.db._host = "localhost"
        self.db._port = 5432

        patcher = mock.patch("cookiesession.database.database_object.psycopg2.connect")
        self.connect = patcher.start()
        self.addCleanup(patcher.stop)

        self.conn = self.connect.return_value
        self.cur = self.conn.cursor.return_value


    def test_execute_statment_commits_and_returns_rowcount(self):

        self.cur.rowcount = 3

        self.assertEqual(3, self.db.execute_statment("DELETE FROM session_storage WHERE last_activity < %s;", ("t",)))

        self.cur.execute.assert_called_once_with("DELETE FROM session_storage WHERE last_activity < %s;", ("t",))
        self.conn.commit.assert_called_once()
        self.conn.rollback.assert_not_called()
        self.cur.close.assert_called_once()
        self.conn.close.assert_called_once()

        kwargs = self.connect.call_args.kwargs
        self.assertEqual(("sessions", "app", 5432), (kwargs["dbname"], kwargs["user"], kwargs["port"]))


    def test_get_row(self):

        self.cur.fetchone.return_value = {"session_id": "abc"}
        self.assertEqual({"session_id": "abc"}, self.db.get_row("SELECT 1;"))

        self.cur.fetchone.return_value = None
        self.assertIsNone(self.db.get_row("SELECT 1;"))


    def test_execute_returning_rows(self):

        self.cur.fetchall.return_value = [{"session_id": "a"}, {"session_id": "b"}]

        rows = self.db.execute_returning_rows("DELETE FROM session_storage RETURNING session_id;")

        self.assertEqual([{"session_id": "a"}, {"session_id": "b"}], rows)
        self.conn.commit.assert_called_once()


    """
        A failing statement is rolled back, the connection closed, and StoreUnavailable raised.
    """
    def test_failure_rolls_back(self):

        self.cur.execute.side_effect = RuntimeError("syntax error")

        with self.assertRaises(StoreUnavailable):
            self.db.execute_statment("BROKEN SQL;")

        self.conn.rollback.assert_called_once()
        self.conn.commit.assert_not_called()
        self.conn.close.assert_called_once()


    def test_connection_failure_is_store_unavailable(self):

        self.connect.side_effect = RuntimeError("connection refused")

        with self.assertRaises(StoreUnavailable):
            self.db.get_row("SELECT 1;")


    def test_statement_validation(self):

        for sql, params in (("", None), ("   ", None), (None, None), ("SELECT 1;", ["not", "tuple"])):
            with self.assertRaises(SessionError) as ctx:
                self.db.execute_statment(sql, params)
            self.assertEqual(ApplicationCodes.INVALID_TYPE, ctx.exception.application_code)

        self.connect.assert_not_called()


if __name__ == "__main__":
    unittest.main()
