#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: database_object.py

    Description:
        Provides PostgreSQL connection handling and parameterized SQL execution
        for the PostgreSQL session store. Loads and validates credentials from a
        JSON file, opens one psycopg2 connection per statement, commits or rolls
        back each statement in its own transaction, and raises every driver
        failure upward as StoreUnavailable so no session operation proceeds on
        inconsistent state.
"""


import json
import os
import typing
import psycopg2
import psycopg2.extras
from cookiesession.handlers.error_handler import SessionError, ConfigurationError, StoreUnavailable, ApplicationCodes, HTTPCodes


_FETCH_NONE = "none"
_FETCH_ONE = "one"
_FETCH_ALL = "all"


"""
    Provides connection management and query execution methods for the session store.

    @ensures Credentials are validated, statements use parameterized queries, and driver errors are raised as StoreUnavailable.
"""
class Database:

    """
        Initialize a Database helper bound to a single PostgreSQL credential set.

        @param credentials_path (str): Path to a JSON file with database, user, password, host and optional port.
        @require credentials_path is a non-empty string naming an existing file
        @ensures Credentials are loaded and validated; ConfigurationError otherwise.
    """
    def __init__(self, credentials_path: str) -> None:

        try:
            self._credentials_path: str = credentials_path

            # Initialize placeholders
            self._database: str = ""
            self._user: str = ""
            self._password: str = ""
            self._host: str = ""
            self._port: int = 5432

            self._load_database_credentials()

        except SessionError:
            raise

        except Exception:
            raise ConfigurationError(ApplicationCodes.INVALID_CONFIGURATION, "Failed to initialize Database helper", "database_init")


    """
        Load and validate database credentials from disk.

        @require JSON contains string fields database, user, password and optionally host and integer port
        @ensures Populates self._database, self._user, self._password, self._host and self._port.
    """
    def _load_database_credentials(self) -> None:

        # Ensure path is a non-empty string
        if not isinstance(self._credentials_path, str) or not self._credentials_path.strip():
            raise ConfigurationError(ApplicationCodes.INVALID_PATH, "Database credentials path must be a non-empty string", "database_credentials_path")

        # Ensure file actually exists
        if not os.path.isfile(self._credentials_path):
            raise ConfigurationError(ApplicationCodes.INVALID_PATH, "Database credentials file not found", "database_credentials_path")

        with open(self._credentials_path, "r", encoding="utf-8") as f:
            raw = f.read()

        try:
            creds = json.loads(raw)
        except ValueError:
            raise ConfigurationError(ApplicationCodes.MALFORMED_JSON, "Database credentials file must contain valid JSON", "database_credentials")

        if not isinstance(creds, dict):
            raise ConfigurationError(ApplicationCodes.INVALID_TYPE, "Database credentials JSON must be an object", "database_credentials")

        for required in ("database", "user", "password"):
            value = creds.get(required)
            if not isinstance(value, str) or not value.strip():
                raise ConfigurationError(ApplicationCodes.INVALID_CONFIGURATION, f"Missing or invalid '{required}' in credentials file", required)

        host = creds.get("host", "localhost")
        if not isinstance(host, str) or not host.strip():
            raise ConfigurationError(ApplicationCodes.INVALID_CONFIGURATION, "Missing or invalid 'host' in credentials file", "host")

        port = creds.get("port", 5432)
        if not isinstance(port, int) or isinstance(port, bool) or not 0 < port < 65536:
            raise ConfigurationError(ApplicationCodes.INVALID_CONFIGURATION, "Invalid 'port' in credentials file", "port")

        # Assign validated fields
        self._database = creds["database"].strip()
        self._user = creds["user"].strip()
        self._password = creds["password"]
        self._host = host.strip()
        self._port = port


    """
        Create a new psycopg2 connection using the validated credentials.

        @return connection (psycopg2.extensions.connection): A live PostgreSQL connection object.
        @ensures Connection failures raise StoreUnavailable.
    """
    def _get_database_connection(self):

        try:
            return psycopg2.connect(
                dbname=self._database,
                user=self._user,
                password=self._password,
                host=self._host,
                port=self._port,
            )

        except Exception:
            raise StoreUnavailable("Error connecting to PostgreSQL database", "database_connection")


    def _validate_statement(self, sql: typing.Any, params: typing.Any) -> tuple:

        if not isinstance(sql, str) or not sql.strip():
            raise SessionError(ApplicationCodes.INVALID_TYPE, HTTPCodes.INTERNAL_SERVER_ERROR, "SQL must be a non-empty string", "sql")

        if params is None:
            params = ()

        if not isinstance(params, tuple):
            raise SessionError(ApplicationCodes.INVALID_TYPE, HTTPCodes.INTERNAL_SERVER_ERROR, "params must be a tuple", "params")

        return params


    """
        Run one statement in its own transaction.

        @param fetch (str): _FETCH_NONE returns the rowcount, _FETCH_ONE a dict or None, _FETCH_ALL a list of dicts.
        @ensures Commits on success, rolls back on any failure, always closes cursor and connection.
    """
    def _run(self, sql: str, params: typing.Optional[tuple], fetch: str):

        params = self._validate_statement(sql, params)

        conn = self._get_database_connection()
        cur = None

        try:
            cur = conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            cur.execute(sql, params)

            if fetch == _FETCH_ONE:
                row = cur.fetchone()
                result = dict(row) if row is not None else None
            elif fetch == _FETCH_ALL:
                result = [dict(r) for r in cur.fetchall()]
            else:
                result = cur.rowcount

            conn.commit()
            return result

        except Exception:
            conn.rollback()
            raise StoreUnavailable("Database execution error", "sql_execute")

        finally:
            if cur is not None:
                cur.close()
            conn.close()


    """
        Execute a statement that returns no rows (CREATE, INSERT, UPDATE, DELETE).

        @param sql (str): SQL statement with %s placeholders.
        @param params (tuple|None): Parameter tuple for the statement.
        @return int: Number of rows affected.
    """
    def execute_statment(self, sql: str, params: typing.Optional[typing.Tuple[typing.Any, ...]] = None) -> int:
        return self._run(sql, params, _FETCH_NONE)


    """
        Execute a query that returns at most one row.

        @return dict|None: Dictionary row if one exists, otherwise None.
    """
    def get_row(self, sql: str, params: typing.Optional[typing.Tuple[typing.Any, ...]] = None) -> typing.Optional[dict]:
        return self._run(sql, params, _FETCH_ONE)


    """
        Execute a statement returning rows (SELECT, or DML with RETURNING) and commit it.

        @return list[dict]: All rows produced, possibly empty.
    """
    def execute_returning_rows(self, sql: str, params: typing.Optional[typing.Tuple[typing.Any, ...]] = None) -> typing.List[dict]:
        return self._run(sql, params, _FETCH_ALL)
