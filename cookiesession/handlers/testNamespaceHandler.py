#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: testNamespaceHandler.py

    Description:
        Unit tests for NamespacedSessionHandle: get/set/has/remove/all/clear,
        namespace isolation, copy semantics of stored and returned values,
        key and value validation, and the rule that every operation touches
        the session.
"""


import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone

from cookiesession.handlers.session_handler import SessionLifecycle
from cookiesession.handlers.cookie_policy import build_cookie_policy
from cookiesession.handlers.error_handler import SessionError, ApplicationCodes, HTTPCodes
from cookiesession.database.session_store import InMemorySessionStore
from cookiesession.utilities.audit_log import AuditLog
import cookiesession.constants as CONSTANTS


class FakeClock:

    def __init__(self) -> None:
        self.now = datetime(2024, 6, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class TestNamespacedSessionHandle(unittest.TestCase):

    """
        Start a session on an in-memory store with a 10 second idle timeout.
    """
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.clock = FakeClock()
        self.store = InMemorySessionStore()
        self.lifecycle = SessionLifecycle(
            self.store,
            build_cookie_policy({"idle_timeout": 10}),
            audit_log=AuditLog(os.path.join(self._tmp.name, "audit.log")),
            clock=self.clock,
        )
        self.handle = self.lifecycle.start()

    def tearDown(self) -> None:
        self._tmp.cleanup()


    def test_get_missing_key_returns_default(self):
        self.assertIsNone(self.handle.get("missing"))
        self.assertEqual("fallback", self.handle.get("missing", "fallback"))


    """
        The last set for a key wins.
    """
    def test_set_then_get(self):

        self.handle.set("count", 1)
        self.handle.set("count", 2)

        self.assertEqual(2, self.handle.get("count"))
        self.assertTrue(self.handle.has("count"))
        self.assertEqual({"count": 2}, self.store.load(self.lifecycle.session_id).namespaces["default"])


    def test_stored_none_is_distinct_from_missing(self):

        self.handle.set("nothing", None)

        self.assertTrue(self.handle.has("nothing"))
        self.assertIsNone(self.handle.get("nothing", "default"))


    def test_remove_is_idempotent(self):

        self.handle.set("k", "v")
        self.handle.remove("k")
        self.handle.remove("k")

        self.assertFalse(self.handle.has("k"))
        self.assertEqual({}, self.handle.all())


    """
        Namespaces are independent: writes and clear in one never affect another.
    """
    def test_namespace_isolation(self):

        auth = self.lifecycle.namespace("auth")
        cart = self.lifecycle.namespace("cart")

        auth.set("user", "bob")
        cart.set("user", "guest")
        cart.set("items", [1])

        self.assertEqual("bob", auth.get("user"))
        self.assertEqual("guest", cart.get("user"))
        self.assertFalse(self.handle.has("user"))

        cart.clear()

        self.assertEqual({}, cart.all())
        self.assertEqual({"user": "bob"}, auth.all())


    """
        all() and get() return copies; mutating them leaves the session unchanged.
    """
    def test_returned_values_are_copies(self):

        self.handle.set("prefs", {"theme": "dark"})

        snapshot = self.handle.all()
        snapshot["prefs"]["theme"] = "light"
        snapshot["new"] = 1

        value = self.handle.get("prefs")
        value["theme"] = "blue"

        self.assertEqual({"prefs": {"theme": "dark"}}, self.handle.all())


    def test_set_stores_a_copy(self):

        items = [1, 2]
        self.handle.set("items", items)
        items.append(3)

        self.assertEqual([1, 2], self.handle.get("items"))


    def test_invalid_keys_rejected(self):

        for bad in ("", "   ", None, 5, "k" * (CONSTANTS._MAX_KEY_LEN + 1)):
            with self.assertRaises(SessionError) as ctx:
                self.handle.set(bad, 1)
            self.assertEqual(ApplicationCodes.INVALID_KEY, ctx.exception.application_code)
            self.assertEqual(HTTPCodes.BAD_REQUEST, ctx.exception.http_code)


    def test_non_json_values_rejected(self):

        for bad in (object(), {1, 2}, float("nan"), b"bytes"):
            with self.assertRaises(SessionError) as ctx:
                self.handle.set("k", bad)
            self.assertEqual(ApplicationCodes.INVALID_VALUE, ctx.exception.application_code)

        self.assertFalse(self.handle.has("k"))


    """
        Reads (get, has, all) refresh last_activity just like writes.
    """
    def test_every_operation_touches(self):

        operations = (
            lambda: self.handle.get("k"),
            lambda: self.handle.has("k"),
            lambda: self.handle.all(),
            lambda: self.handle.set("k", 1),
            lambda: self.handle.remove("k"),
            lambda: self.handle.clear(),
        )

        for operation in operations:
            self.clock.advance(5)
            operation()
            self.assertEqual(self.clock.now, self.lifecycle.last_activity)
            self.assertEqual(self.clock.now, self.store.load(self.lifecycle.session_id).last_activity)


    def test_handle_reports_namespace_and_session(self):

        handle = self.lifecycle.namespace("profile")

        self.assertEqual("profile", handle.namespace)
        self.assertEqual(self.lifecycle.session_id, handle.session_id)


if __name__ == "__main__":
    unittest.main()
