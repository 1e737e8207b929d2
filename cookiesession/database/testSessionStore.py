#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: testSessionStore.py

    Description:
        Unit tests for SessionRecord, the shared SessionStore behavior
        (identifier generation and per-identifier locks), and
        InMemorySessionStore persistence semantics: copy isolation,
        compare-and-delete, re-keying, and idle purges.
"""


import threading
import time
import unittest
from datetime import datetime, timedelta, timezone
from unittest import mock

from cookiesession.database.session_store import InMemorySessionStore, SessionRecord, SessionStore
from cookiesession.handlers.error_handler import SessionError, ApplicationCodes
import cookiesession.handlers.sanitization_validation as VALIDATION


_T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestSessionRecord(unittest.TestCase):

    def test_get_or_create_namespace_is_lazy_and_live(self):

        record = SessionRecord(session_id="s", last_activity=_T0, created_at=_T0)
        self.assertEqual({}, record.namespaces)

        record.get_or_create_namespace("cart")["items"] = [1]

        self.assertEqual({"cart": {"items": [1]}}, record.namespaces)
        self.assertIs(record.namespaces["cart"], record.get_or_create_namespace("cart"))


    def test_clone_is_deep(self):

        record = SessionRecord(session_id="s", namespaces={"a": {"k": [1]}}, last_activity=_T0, created_at=_T0)
        copy = record.clone()
        copy.namespaces["a"]["k"].append(2)

        self.assertEqual([1], record.namespaces["a"]["k"])



class TestSessionStoreBase(unittest.TestCase):

    """
        Identifiers are 43-character base64url strings and never repeat.
    """
    def test_generate_id(self):

        store = SessionStore()
        ids = {store.generate_id() for _ in range(200)}

        self.assertEqual(200, len(ids))
        for session_id in ids:
            self.assertTrue(VALIDATION.is_well_formed_session_id(session_id))


    """
        A failing entropy source is fatal; no fallback identifier is produced.
    """
    def test_generate_id_entropy_failure(self):

        with mock.patch("cookiesession.database.session_store.os.urandom", side_effect=NotImplementedError("no entropy")):
            with self.assertRaises(SessionError) as ctx:
                SessionStore().generate_id()

        self.assertEqual(ApplicationCodes.ID_GENERATION_ERROR, ctx.exception.application_code)


    def test_abstract_operations(self):

        store = SessionStore()
        record = SessionRecord(session_id="s", last_activity=_T0, created_at=_T0)

        for operation in (lambda: store.load("s"), lambda: store.save(record), lambda: store.update(record), lambda: store.delete("s"), lambda: store.delete_if_unchanged("s", _T0), lambda: store.rekey("s", record), lambda: store.purge_idle(_T0)):
            with self.assertRaises(NotImplementedError):
                operation()


    """
        The per-id lock excludes other threads, is re-entrant, and is released from the registry afterwards.
    """
    def test_session_lock(self):

        store = SessionStore()
        order = []

        def contender():
            with store.session_lock("same"):
                order.append("contender")

        with store.session_lock("same"):
            with store.session_lock("same"):
                thread = threading.Thread(target=contender)
                thread.start()
                time.sleep(0.05)
                order.append("owner")

        thread.join(timeout=5)

        self.assertEqual(["owner", "contender"], order)
        self.assertEqual({}, store._session_locks)


    def test_session_lock_independent_ids(self):

        store = SessionStore()
        entered = threading.Event()

        def other():
            with store.session_lock("b"):
                entered.set()

        with store.session_lock("a"):
            thread = threading.Thread(target=other)
            thread.start()
            self.assertTrue(entered.wait(timeout=5))

        thread.join(timeout=5)



class TestInMemorySessionStore(unittest.TestCase):

    def setUp(self) -> None:
        self.store = InMemorySessionStore()
        self.record = SessionRecord(session_id=self.store.generate_id(), namespaces={"default": {"k": "v"}}, last_activity=_T0, created_at=_T0)


    def test_load_missing_returns_none(self):
        self.assertIsNone(self.store.load(self.store.generate_id()))


    """
        Saved and loaded records are independent copies of the stored state.
    """
    def test_save_and_load_are_isolated(self):

        self.store.save(self.record)
        self.record.namespaces["default"]["k"] = "changed"

        loaded = self.store.load(self.record.session_id)
        self.assertEqual("v", loaded.namespaces["default"]["k"])

        loaded.namespaces["default"]["k"] = "also changed"
        self.assertEqual("v", self.store.load(self.record.session_id).namespaces["default"]["k"])


    """
        update overwrites an existing record and refuses to create a missing one.
    """
    def test_update_requires_existing_record(self):

        self.assertFalse(self.store.update(self.record))
        self.assertIsNone(self.store.load(self.record.session_id))

        self.store.save(self.record)

        changed = self.record.clone()
        changed.namespaces["default"]["k"] = "new"
        changed.last_activity = _T0 + timedelta(seconds=5)

        self.assertTrue(self.store.update(changed))

        loaded = self.store.load(self.record.session_id)
        self.assertEqual("new", loaded.namespaces["default"]["k"])
        self.assertEqual(changed.last_activity, loaded.last_activity)

        self.store.delete(self.record.session_id)
        self.assertFalse(self.store.update(changed))
        self.assertEqual(0, len(self.store))


    def test_delete(self):

        self.store.save(self.record)

        self.assertTrue(self.store.delete(self.record.session_id))
        self.assertFalse(self.store.delete(self.record.session_id))
        self.assertEqual(0, len(self.store))


    """
        Compare-and-delete only removes the version the caller observed.
    """
    def test_delete_if_unchanged(self):

        self.store.save(self.record)

        newer = self.record.clone()
        newer.last_activity = _T0 + timedelta(seconds=5)
        self.store.save(newer)

        self.assertFalse(self.store.delete_if_unchanged(self.record.session_id, _T0))
        self.assertIsNotNone(self.store.load(self.record.session_id))

        self.assertTrue(self.store.delete_if_unchanged(self.record.session_id, newer.last_activity))
        self.assertIsNone(self.store.load(self.record.session_id))
        self.assertFalse(self.store.delete_if_unchanged(self.record.session_id, newer.last_activity))


    def test_rekey(self):

        self.store.save(self.record)
        old_id = self.record.session_id

        moved = self.record.clone()
        moved.session_id = self.store.generate_id()
        self.store.rekey(old_id, moved)

        self.assertIsNone(self.store.load(old_id))
        self.assertEqual({"default": {"k": "v"}}, self.store.load(moved.session_id).namespaces)

        kept = moved.clone()
        kept.session_id = self.store.generate_id()
        self.store.rekey(moved.session_id, kept, delete_old=False)

        self.assertIsNotNone(self.store.load(moved.session_id))
        self.assertIsNotNone(self.store.load(kept.session_id))


    def test_purge_idle(self):

        self.store.save(self.record)
        recent = SessionRecord(session_id=self.store.generate_id(), last_activity=_T0 + timedelta(minutes=10), created_at=_T0)
        self.store.save(recent)

        removed = self.store.purge_idle(_T0 + timedelta(minutes=1))

        self.assertEqual([self.record.session_id], removed)
        self.assertEqual(1, len(self.store))


    def test_invalid_arguments(self):

        with self.assertRaises(SessionError) as ctx:
            self.store.save({"session_id": "x"})
        self.assertEqual(ApplicationCodes.INVALID_RECORD, ctx.exception.application_code)

        for bad in (None, "", 12):
            with self.assertRaises(SessionError):
                self.store.load(bad)


if __name__ == "__main__":
    unittest.main()
