#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: testSessionHandler.py

    Description:
        Unit tests for SessionLifecycle and cleanup_expired_sessions. Covers
        session creation, resumption, idle expiry (including the exact
        boundary), touch monotonicity, identifier regeneration, destruction,
        cookie instruction emission, concurrent expiry of the same stale
        identifier, identifiers retired by another request, failed destroys,
        and bulk purging of idle records. Time is driven by an
        injected FakeClock so no test sleeps.
"""


import json
import os
import tempfile
import threading
import unittest
from datetime import datetime, timedelta, timezone

from cookiesession.handlers.session_handler import SessionLifecycle, cleanup_expired_sessions
from cookiesession.handlers.cookie_policy import build_cookie_policy
from cookiesession.handlers.error_handler import SessionError, StoreUnavailable, ApplicationCodes, HTTPCodes
from cookiesession.database.session_store import InMemorySessionStore, SessionRecord
from cookiesession.utilities.audit_log import AuditLog
import cookiesession.constants as CONSTANTS
import cookiesession.handlers.sanitization_validation as VALIDATION


_EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


"""
    Deterministic clock; tests move time forward explicitly.
"""
class FakeClock:

    def __init__(self, start: datetime = _EPOCH) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


"""
    Store whose load always fails, to check that backend outages surface unchanged.
"""
class UnavailableStore(InMemorySessionStore):

    def load(self, session_id):
        raise StoreUnavailable("backend offline", "session_load")


"""
    Store whose delete always fails, leaving the stored record in place.
"""
class UndeletableStore(InMemorySessionStore):

    def delete(self, session_id):
        raise StoreUnavailable("backend offline", "session_delete")


class TestSessionLifecycle(unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.audit_path = os.path.join(self._tmp.name, "audit.log")
        self.audit_log = AuditLog(self.audit_path)

        self.clock = FakeClock()
        self.store = InMemorySessionStore()
        self.policy = build_cookie_policy({"idle_timeout": 2})

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _lifecycle(self, policy=None) -> SessionLifecycle:
        return SessionLifecycle(self.store, policy or self.policy, audit_log=self.audit_log, clock=self.clock)

    def _audit_events(self) -> list:
        if not os.path.exists(self.audit_path):
            return []
        with open(self.audit_path, "r", encoding="utf-8") as f:
            return [json.loads(line)["event"] for line in f if line.strip()]


    ################################################################################################
    # start
    ################################################################################################

    """
        A request without a cookie gets a brand-new session and exactly one write cookie.
    """
    def test_start_without_cookie_creates_session(self):

        lifecycle = self._lifecycle()
        self.assertEqual(CONSTANTS._STATE_UNINITIALIZED, lifecycle.state)

        handle = lifecycle.start()

        self.assertEqual(CONSTANTS._STATE_ACTIVE, lifecycle.state)
        self.assertTrue(VALIDATION.is_well_formed_session_id(lifecycle.session_id))
        self.assertEqual(lifecycle.session_id, handle.session_id)
        self.assertEqual(CONSTANTS._DEFAULT_NAMESPACE, handle.namespace)
        self.assertEqual(_EPOCH, lifecycle.last_activity)

        stored = self.store.load(lifecycle.session_id)
        self.assertIsNotNone(stored)
        self.assertEqual(_EPOCH, stored.created_at)

        cookies = lifecycle.drain_cookie_instructions()
        self.assertEqual(1, len(cookies))
        self.assertEqual(lifecycle.session_id, cookies[0].value)
        self.assertEqual(CONSTANTS._DEFAULT_LIFETIME_SECONDS, cookies[0].max_age)
        self.assertEqual([], lifecycle.drain_cookie_instructions())

        self.assertIn("session_started", self._audit_events())


    """
        Unknown and malformed identifiers are both treated as absent.
    """
    def test_start_with_unknown_or_malformed_id_creates_new_session(self):

        unknown = self.store.generate_id()

        for incoming in (unknown, "not-a-session-id", "", "x" * 500):
            lifecycle = self._lifecycle()
            lifecycle.start(incoming)

            self.assertNotEqual(incoming, lifecycle.session_id)
            self.assertTrue(VALIDATION.is_well_formed_session_id(lifecycle.session_id))

        self.assertIsNone(self.store.load(unknown))


    """
        A fresh incoming identifier is resumed with its data; no cookie is re-issued.
    """
    def test_start_resumes_live_session(self):

        first = self._lifecycle()
        first.start().set("user", "alice")
        session_id = first.session_id

        self.clock.advance(1)

        second = self._lifecycle()
        handle = second.start(session_id)

        self.assertEqual(session_id, second.session_id)
        self.assertEqual("alice", handle.get("user"))
        self.assertEqual([], second.drain_cookie_instructions())
        self.assertEqual(self.clock.now, self.store.load(session_id).last_activity)
        self.assertIn("session_resumed", self._audit_events())


    """
        start is idempotent within one lifecycle and returns handles on the same record.
    """
    def test_start_twice_returns_same_record(self):

        lifecycle = self._lifecycle()
        lifecycle.start().set("a", 1)
        session_id = lifecycle.session_id

        other = lifecycle.start(None, "other")

        self.assertEqual(session_id, lifecycle.session_id)
        self.assertEqual("other", other.namespace)
        self.assertEqual(1, lifecycle.namespace(CONSTANTS._DEFAULT_NAMESPACE).get("a"))
        self.assertEqual(1, len(lifecycle.drain_cookie_instructions()))


    def test_start_rejects_invalid_namespace(self):

        lifecycle = self._lifecycle()

        for bad in ("", "has space", "x" * (CONSTANTS._MAX_NAMESPACE_LEN + 1), None):
            with self.assertRaises(SessionError) as ctx:
                lifecycle.start(None, bad)
            self.assertEqual(ApplicationCodes.INVALID_NAMESPACE, ctx.exception.application_code)


    """
        A record idle past the timeout is deleted and replaced; the old cookie is invalidated first.
    """
    def test_start_with_idle_session_restarts(self):

        first = self._lifecycle()
        first.start().set("cart", [1, 2])
        old_id = first.session_id

        self.clock.advance(3)

        second = self._lifecycle()
        handle = second.start(old_id)

        self.assertNotEqual(old_id, second.session_id)
        self.assertIsNone(self.store.load(old_id))
        self.assertIsNone(handle.get("cart"))

        cookies = second.drain_cookie_instructions()
        self.assertEqual(2, len(cookies))
        self.assertTrue(cookies[0].is_invalidation)
        self.assertEqual(second.session_id, cookies[1].value)

        self.assertIn("session_expired", self._audit_events())


    def test_store_outage_propagates_from_start(self):

        lifecycle = SessionLifecycle(UnavailableStore(), self.policy, audit_log=self.audit_log, clock=self.clock)

        with self.assertRaises(StoreUnavailable) as ctx:
            lifecycle.start(self.store.generate_id())

        self.assertEqual(HTTPCodes.SERVICE_UNAVAILABLE, ctx.exception.http_code)
        self.assertEqual(CONSTANTS._STATE_UNINITIALIZED, lifecycle.state)


    def test_naive_clock_rejected(self):

        lifecycle = SessionLifecycle(self.store, self.policy, audit_log=self.audit_log, clock=lambda: datetime(2024, 1, 1))

        with self.assertRaises(SessionError) as ctx:
            lifecycle.start()

        self.assertEqual(ApplicationCodes.INVALID_TIMESTAMP, ctx.exception.application_code)


    def test_constructor_validates_collaborators(self):

        with self.assertRaises(SessionError):
            SessionLifecycle(object(), self.policy, audit_log=self.audit_log)

        with self.assertRaises(SessionError):
            SessionLifecycle(self.store, {"idle_timeout": 2}, audit_log=self.audit_log)

        with self.assertRaises(SessionError):
            SessionLifecycle(self.store, self.policy, audit_log=self.audit_log, clock="now")


    ################################################################################################
    # idle timeout through handles
    ################################################################################################

    """
        idle_timeout=2: activity at t=1 keeps the session; at t=4 the value is gone under a new id.
    """
    def test_idle_timeout_scenario(self):

        lifecycle = self._lifecycle()
        handle = lifecycle.start()
        handle.set("x", 42)
        original_id = lifecycle.session_id
        lifecycle.drain_cookie_instructions()

        self.clock.advance(1)
        self.assertEqual(42, handle.get("x"))
        self.assertEqual(original_id, lifecycle.session_id)

        self.clock.advance(3)
        self.assertIsNone(handle.get("x"))
        self.assertNotEqual(original_id, lifecycle.session_id)
        self.assertIsNone(self.store.load(original_id))

        cookies = lifecycle.drain_cookie_instructions()
        self.assertEqual(["", lifecycle.session_id], [c.value for c in cookies])


    """
        Idle time exactly equal to idle_timeout does not expire the session.
    """
    def test_idle_boundary_is_not_expired(self):

        lifecycle = self._lifecycle()
        handle = lifecycle.start()
        handle.set("k", "v")
        session_id = lifecycle.session_id

        self.clock.advance(2)
        self.assertEqual("v", handle.get("k"))
        self.assertEqual(session_id, lifecycle.session_id)

        self.clock.advance(2.001)
        self.assertIsNone(handle.get("k"))
        self.assertNotEqual(session_id, lifecycle.session_id)


    """
        A record kept alive by another request is adopted rather than expired.
    """
    def test_concurrent_activity_keeps_session_alive(self):

        first = self._lifecycle()
        handle = first.start()
        handle.set("k", "v")
        session_id = first.session_id

        self.clock.advance(1.5)
        second = self._lifecycle()
        second.start(session_id).set("other", True)

        self.clock.advance(1.5)
        self.assertEqual("v", handle.get("k"))
        self.assertTrue(handle.get("other"))
        self.assertEqual(session_id, first.session_id)


    ################################################################################################
    # touch
    ################################################################################################

    def test_touch_requires_started_session(self):

        with self.assertRaises(SessionError) as ctx:
            self._lifecycle().touch()

        self.assertEqual(ApplicationCodes.SESSION_NOT_STARTED, ctx.exception.application_code)
        self.assertEqual(HTTPCodes.CONFLICT, ctx.exception.http_code)


    """
        last_activity never moves backwards when the clock does.
    """
    def test_touch_is_monotonic(self):

        lifecycle = self._lifecycle()
        lifecycle.start()

        self.clock.advance(1)
        lifecycle.touch()
        advanced = lifecycle.last_activity
        self.assertEqual(self.clock.now, advanced)

        self.clock.advance(-0.5)
        lifecycle.touch()
        self.assertEqual(advanced, lifecycle.last_activity)
        self.assertEqual(advanced, self.store.load(lifecycle.session_id).last_activity)


    ################################################################################################
    # regenerate
    ################################################################################################

    """
        Regeneration moves the data to a new identifier and retires the old one.
    """
    def test_regenerate_deletes_old_session(self):

        lifecycle = self._lifecycle()
        handle = lifecycle.start()
        handle.set("role", "admin")
        lifecycle.namespace("flash").set("msg", "hi")
        old_id = lifecycle.session_id
        lifecycle.drain_cookie_instructions()

        self.clock.advance(1)
        new_id = lifecycle.regenerate()

        self.assertNotEqual(old_id, new_id)
        self.assertEqual(new_id, lifecycle.session_id)
        self.assertEqual(self.clock.now, lifecycle.last_activity)
        self.assertIsNone(self.store.load(old_id))

        moved = self.store.load(new_id)
        self.assertEqual({"default": {"role": "admin"}, "flash": {"msg": "hi"}}, moved.namespaces)
        self.assertEqual("admin", handle.get("role"))

        cookies = lifecycle.drain_cookie_instructions()
        self.assertEqual([new_id], [c.value for c in cookies])
        self.assertIn("session_regenerated", self._audit_events())


    def test_regenerate_can_keep_old_session(self):

        lifecycle = self._lifecycle()
        lifecycle.start().set("a", 1)
        old_id = lifecycle.session_id

        new_id = lifecycle.regenerate(delete_old_session=False)

        self.assertEqual({"a": 1}, self.store.load(old_id).namespaces["default"])
        self.assertEqual({"a": 1}, self.store.load(new_id).namespaces["default"])


    def test_regenerate_rejects_non_bool_flag(self):

        lifecycle = self._lifecycle()
        lifecycle.start()

        with self.assertRaises(SessionError) as ctx:
            lifecycle.regenerate("yes")

        self.assertEqual(ApplicationCodes.INVALID_TYPE, ctx.exception.application_code)


    def test_regenerate_requires_started_session(self):

        with self.assertRaises(SessionError) as ctx:
            self._lifecycle().regenerate()

        self.assertEqual(ApplicationCodes.SESSION_NOT_STARTED, ctx.exception.application_code)


    ################################################################################################
    # destroy
    ################################################################################################

    """
        Destroy removes every trace of the session and invalidates the cookie.
    """
    def test_destroy_removes_session(self):

        lifecycle = self._lifecycle()
        handle = lifecycle.start()
        handle.set("a", 1)
        session_id = lifecycle.session_id
        lifecycle.drain_cookie_instructions()

        lifecycle.destroy()

        self.assertEqual(CONSTANTS._STATE_DESTROYED, lifecycle.state)
        self.assertIsNone(lifecycle.session_id)
        self.assertIsNone(self.store.load(session_id))
        self.assertEqual(0, len(self.store))

        cookies = lifecycle.drain_cookie_instructions()
        self.assertEqual(1, len(cookies))
        self.assertTrue(cookies[0].is_invalidation)
        self.assertEqual(self.policy.path, cookies[0].path)
        self.assertLess(cookies[0].expires, self.clock.now)

        self.assertIn("session_destroyed", self._audit_events())


    """
        Every operation after destroy fails with SESSION_DESTROYED until start is called again.
    """
    def test_operations_after_destroy_fail(self):

        lifecycle = self._lifecycle()
        handle = lifecycle.start()
        lifecycle.destroy()

        for operation in (lambda: handle.get("a"), lambda: handle.set("a", 1), lambda: handle.all(), lifecycle.touch, lifecycle.regenerate, lifecycle.destroy):
            with self.assertRaises(SessionError) as ctx:
                operation()
            self.assertEqual(ApplicationCodes.SESSION_DESTROYED, ctx.exception.application_code)
            self.assertEqual(HTTPCodes.GONE, ctx.exception.http_code)

        fresh = lifecycle.start()
        self.assertEqual(CONSTANTS._STATE_ACTIVE, lifecycle.state)
        self.assertEqual({}, fresh.all())



    """
        A failed delete leaves the session active with its namespaces intact, and later writes keep them.
    """
    def test_failed_destroy_keeps_session_data(self):

        self.store = UndeletableStore()
        lifecycle = self._lifecycle()
        lifecycle.start(None, "cart").set("item", 1)
        session_id = lifecycle.session_id

        with self.assertRaises(StoreUnavailable):
            lifecycle.destroy()

        self.assertEqual(CONSTANTS._STATE_ACTIVE, lifecycle.state)
        self.assertEqual(session_id, lifecycle.session_id)
        self.assertEqual(1, lifecycle.namespace("cart").get("item"))

        lifecycle.namespace("other").get("x")

        self.assertEqual({"item": 1}, self.store.load(session_id).namespaces["cart"])
        self.assertNotIn("session_destroyed", self._audit_events())


    ################################################################################################
    # cookies
    ################################################################################################

    def test_lifetime_zero_issues_browser_session_cookie(self):

        lifecycle = self._lifecycle(build_cookie_policy({"lifetime": 0, "idle_timeout": 2}))
        lifecycle.start()

        cookie = lifecycle.drain_cookie_instructions()[0]
        self.assertIsNone(cookie.expires)
        self.assertIsNone(cookie.max_age)


    def test_raw_session_id_never_logged(self):

        lifecycle = self._lifecycle()
        lifecycle.start()
        lifecycle.regenerate()
        session_id = lifecycle.session_id
        lifecycle.destroy()

        with open(self.audit_path, "r", encoding="utf-8") as f:
            contents = f.read()

        self.assertNotIn(session_id, contents)
        self.assertIn(VALIDATION.session_fingerprint(session_id), contents)



"""
    Two lifecycles share one identifier; the second keeps working after the first retires it.
"""
class TestRetiredIdentifier(unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.audit_path = os.path.join(self._tmp.name, "audit.log")
        self.audit_log = AuditLog(self.audit_path)
        self.clock = FakeClock()
        self.store = InMemorySessionStore()
        self.policy = build_cookie_policy({"idle_timeout": 2})

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _lifecycle(self) -> SessionLifecycle:
        return SessionLifecycle(self.store, self.policy, audit_log=self.audit_log, clock=self.clock)

    def _shared_session(self):
        first = self._lifecycle()
        first.start().set("role", "admin")
        old_id = first.session_id

        second = self._lifecycle()
        handle = second.start(old_id)
        second.drain_cookie_instructions()

        return first, second, handle, old_id

    def _assert_restarted(self, lifecycle, old_id):
        self.assertIsNone(self.store.load(old_id))
        self.assertNotEqual(old_id, lifecycle.session_id)
        self.assertIsNotNone(self.store.load(lifecycle.session_id))

        cookies = lifecycle.drain_cookie_instructions()
        self.assertEqual(2, len(cookies))
        self.assertTrue(cookies[0].is_invalidation)
        self.assertEqual(lifecycle.session_id, cookies[1].value)

        with open(self.audit_path, "r", encoding="utf-8") as f:
            self.assertIn("session_vanished", [json.loads(line)["event"] for line in f if line.strip()])


    """
        A touch on an identifier retired by regeneration does not bring it back.
    """
    def test_touch_after_regenerate_does_not_resurrect_old_id(self):

        first, second, handle, old_id = self._shared_session()

        self.clock.advance(1)
        new_id = first.regenerate(True)

        handle.get("role")

        self._assert_restarted(second, old_id)
        self.assertNotEqual(new_id, second.session_id)
        self.assertEqual({"role": "admin"}, self.store.load(new_id).namespaces["default"])


    """
        A write on a destroyed identifier does not bring it back.
    """
    def test_write_after_destroy_does_not_resurrect_old_id(self):

        first, second, handle, old_id = self._shared_session()

        first.destroy()

        handle.set("role", "guest")

        self._assert_restarted(second, old_id)
        self.assertEqual(1, len(self.store))


    """
        A record purged while idle stays purged when its holder touches it.
    """
    def test_touch_after_purge_does_not_resurrect_old_id(self):

        first, second, handle, old_id = self._shared_session()

        self.clock.advance(2)
        cleanup_expired_sessions(self.store, build_cookie_policy({"idle_timeout": 1}), clock=self.clock)

        second.touch()

        self._assert_restarted(second, old_id)



class TestConcurrentExpiry(unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.audit_log = AuditLog(os.path.join(self._tmp.name, "audit.log"))
        self.clock = FakeClock()
        self.store = InMemorySessionStore()
        self.policy = build_cookie_policy({"idle_timeout": 2})

    def tearDown(self) -> None:
        self._tmp.cleanup()


    """
        Two requests presenting the same stale identifier each end up with their own new record;
        neither deletes the other's.
    """
    def test_two_requests_expire_same_id(self):

        seed = SessionLifecycle(self.store, self.policy, audit_log=self.audit_log, clock=self.clock)
        seed.start().set("a", 1)
        stale_id = seed.session_id

        self.clock.advance(10)

        barrier = threading.Barrier(2)
        results = []
        errors = []

        def worker():
            try:
                lifecycle = SessionLifecycle(self.store, self.policy, audit_log=self.audit_log, clock=self.clock)
                barrier.wait()
                lifecycle.start(stale_id)
                results.append(lifecycle.session_id)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        self.assertEqual([], errors)
        self.assertEqual(2, len(set(results)))
        self.assertNotIn(stale_id, results)
        self.assertIsNone(self.store.load(stale_id))

        for session_id in results:
            self.assertIsNotNone(self.store.load(session_id))
        self.assertEqual(2, len(self.store))



class TestCleanupExpiredSessions(unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.audit_path = os.path.join(self._tmp.name, "audit.log")
        self.audit_log = AuditLog(self.audit_path)
        self.clock = FakeClock()
        self.store = InMemorySessionStore()
        self.policy = build_cookie_policy({"idle_timeout": 60})

    def tearDown(self) -> None:
        self._tmp.cleanup()


    """
        Only records idle longer than idle_timeout are purged, and the purge is audit-logged.
    """
    def test_purges_only_idle_records(self):

        stale = SessionRecord(session_id=self.store.generate_id(), last_activity=_EPOCH - timedelta(seconds=61), created_at=_EPOCH - timedelta(seconds=120))
        boundary = SessionRecord(session_id=self.store.generate_id(), last_activity=_EPOCH - timedelta(seconds=60), created_at=_EPOCH - timedelta(seconds=60))
        fresh = SessionRecord(session_id=self.store.generate_id(), last_activity=_EPOCH, created_at=_EPOCH)

        for record in (stale, boundary, fresh):
            self.store.save(record)

        removed = cleanup_expired_sessions(self.store, self.policy, clock=self.clock, audit_log=self.audit_log)

        self.assertEqual([stale.session_id], removed)
        self.assertIsNone(self.store.load(stale.session_id))
        self.assertIsNotNone(self.store.load(boundary.session_id))
        self.assertIsNotNone(self.store.load(fresh.session_id))

        with open(self.audit_path, "r", encoding="utf-8") as f:
            events = [json.loads(line) for line in f if line.strip()]

        self.assertEqual("session_cleanup", events[-1]["event"])
        self.assertEqual(1, events[-1]["removed"])


    def test_nothing_to_purge_logs_nothing(self):

        removed = cleanup_expired_sessions(self.store, self.policy, clock=self.clock, audit_log=self.audit_log)

        self.assertEqual([], removed)
        self.assertFalse(os.path.exists(self.audit_path))


    def test_rejects_non_store(self):

        with self.assertRaises(SessionError) as ctx:
            cleanup_expired_sessions({}, self.policy, clock=self.clock)

        self.assertEqual(ApplicationCodes.INVALID_TYPE, ctx.exception.application_code)


if __name__ == "__main__":
    unittest.main()
