#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: testServer.py

    Description:
        End-to-end tests for the Flask binding through app.test_client():
        session cookie issuance and attributes, namespaced reads and writes,
        idle expiry across requests, identifier regeneration, destruction,
        request validation, payload limits, store outages, and application
        factory configuration.
"""


import json
import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from unittest import mock

from cookiesession.server import create_app
from cookiesession.database.session_store import InMemorySessionStore, SessionRecord
from cookiesession.utilities.audit_log import AuditLog
from cookiesession.handlers.error_handler import ConfigurationError, StoreUnavailable, ApplicationCodes
import cookiesession.constants as CONSTANTS


class FakeClock:

    def __init__(self) -> None:
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class OfflineStore(InMemorySessionStore):

    def save(self, record):
        raise StoreUnavailable("backend offline", "session_save")


class ServerTestCase(unittest.TestCase):

    policy_overrides = {"idle_timeout": 2}

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.audit_path = os.path.join(self._tmp.name, "audit.log")

        self.clock = FakeClock()
        self.store = InMemorySessionStore()

        self.app = create_app(
            store=self.store,
            policy_overrides=dict(self.policy_overrides),
            audit_log=AuditLog(self.audit_path),
            clock=self.clock,
            start_cleanup_worker=False,
        )
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _session_cookies(self, response) -> list:
        return [h for h in response.headers.getlist("Set-Cookie") if h.startswith(CONSTANTS._DEFAULT_COOKIE_NAME + "=")]

    def _session_id(self) -> str:
        cookie = self.client.get_cookie(CONSTANTS._DEFAULT_COOKIE_NAME)
        return cookie.value if cookie is not None else None

    def _put(self, path: str, value):
        return self.client.put(path, data=json.dumps({"value": value}), content_type="application/json")



class TestSessionRoutes(ServerTestCase):

    """
        The first request issues a session cookie with the configured attributes.
    """
    def test_first_request_sets_cookie(self):

        response = self.client.get("/api/session/cart")

        self.assertEqual(200, response.status_code)
        self.assertEqual({}, response.get_json()["data"])

        cookies = self._session_cookies(response)
        self.assertEqual(1, len(cookies))
        self.assertIn("HttpOnly", cookies[0])
        self.assertIn("SameSite=Lax", cookies[0])
        self.assertIn("Path=/", cookies[0])
        self.assertIn("Max-Age=1800", cookies[0])
        self.assertNotIn("Secure", cookies[0])

        self.assertIsNotNone(self.store.load(self._session_id()))


    def test_secure_follows_tls(self):

        response = self.client.get("/api/session/cart", base_url="https://localhost")

        self.assertIn("Secure", self._session_cookies(response)[0])


    """
        Values written in one request are read back in the next under the same cookie.
    """
    def test_set_then_get_value(self):

        response = self._put("/api/session/cart/items", [1, 2])
        self.assertEqual(200, response.status_code)
        self.assertTrue(response.get_json()["present"])
        session_id = self._session_id()

        response = self.client.get("/api/session/cart/items")
        body = response.get_json()

        self.assertTrue(body["present"])
        self.assertEqual([1, 2], body["value"])
        self.assertEqual(session_id, self._session_id())
        self.assertEqual([], self._session_cookies(response))


    def test_missing_key_reported_absent(self):

        body = self.client.get("/api/session/cart/nothing").get_json()

        self.assertEqual("success", body["response_status"])
        self.assertFalse(body["present"])
        self.assertIsNone(body["value"])


    def test_remove_value(self):

        self._put("/api/session/cart/items", [1])

        body = self.client.delete("/api/session/cart/items").get_json()
        self.assertFalse(body["present"])

        self.assertFalse(self.client.get("/api/session/cart/items").get_json()["present"])


    """
        Clearing a namespace leaves sibling namespaces untouched.
    """
    def test_clear_namespace(self):

        self._put("/api/session/cart/items", [1])
        self._put("/api/session/auth/user", "bob")

        response = self.client.delete("/api/session/cart")
        self.assertEqual(200, response.status_code)

        self.assertEqual({}, self.client.get("/api/session/cart").get_json()["data"])
        self.assertEqual({"user": "bob"}, self.client.get("/api/session/auth").get_json()["data"])


    """
        After the idle window the old data is gone and a new identifier is issued.
    """
    def test_idle_expiry_across_requests(self):

        self._put("/api/session/default/x", 42)
        old_id = self._session_id()

        self.clock.advance(1)
        self.assertEqual(42, self.client.get("/api/session/default/x").get_json()["value"])

        self.clock.advance(3)
        response = self.client.get("/api/session/default/x")

        self.assertFalse(response.get_json()["present"])
        self.assertNotEqual(old_id, self._session_id())
        self.assertIsNone(self.store.load(old_id))

        cookies = self._session_cookies(response)
        self.assertEqual(2, len(cookies))
        self.assertTrue(cookies[0].startswith(CONSTANTS._DEFAULT_COOKIE_NAME + "=;"))


    def test_malformed_cookie_starts_new_session(self):

        self.client.set_cookie(CONSTANTS._DEFAULT_COOKIE_NAME, "forged")

        response = self.client.get("/api/session/cart")

        self.assertEqual(200, response.status_code)
        self.assertNotEqual("forged", self._session_id())
        self.assertEqual(1, len(self.store))


    """
        Regeneration moves the data to a new cookie value and retires the old identifier.
    """
    def test_regenerate(self):

        self._put("/api/session/auth/user", "alice")
        old_id = self._session_id()

        response = self.client.post("/api/session/regenerate")
        self.assertEqual(200, response.status_code)

        new_id = self._session_id()
        self.assertNotEqual(old_id, new_id)
        self.assertIsNone(self.store.load(old_id))
        self.assertEqual("alice", self.client.get("/api/session/auth/user").get_json()["value"])


    def test_regenerate_keeping_old_session(self):

        self._put("/api/session/auth/user", "alice")
        old_id = self._session_id()

        response = self.client.post("/api/session/regenerate", data=json.dumps({"delete_old_session": False}), content_type="application/json")
        self.assertEqual(200, response.status_code)

        self.assertIsNotNone(self.store.load(old_id))
        self.assertIsNotNone(self.store.load(self._session_id()))


    def test_destroy(self):

        self._put("/api/session/auth/user", "alice")

        response = self.client.post("/api/session/destroy")
        self.assertEqual(200, response.status_code)
        self.assertEqual(0, len(self.store))

        cookies = self._session_cookies(response)
        self.assertTrue(cookies[-1].startswith(CONSTANTS._DEFAULT_COOKIE_NAME + "=;"))
        self.assertIn("Path=/", cookies[-1])
        self.assertIn("HttpOnly", cookies[-1])

        self.assertEqual({}, self.client.get("/api/session/auth").get_json()["data"])
        self.assertEqual(1, len(self.store))



class TestRequestValidation(ServerTestCase):

    def test_invalid_namespace(self):

        response = self.client.get("/api/session/bad%20name")

        self.assertEqual(400, response.status_code)
        self.assertEqual(ApplicationCodes.INVALID_NAMESPACE, response.get_json()["error_code"])


    def test_put_requires_json(self):

        response = self.client.put("/api/session/cart/items", data="value=1", content_type="application/x-www-form-urlencoded")
        self.assertEqual(400, response.status_code)
        self.assertEqual(ApplicationCodes.INVALID_CONTENT_TYPE, response.get_json()["error_code"])

        response = self.client.put("/api/session/cart/items", data="{broken", content_type="application/json")
        self.assertEqual(ApplicationCodes.MALFORMED_JSON, response.get_json()["error_code"])

        response = self.client.put("/api/session/cart/items")
        self.assertEqual(ApplicationCodes.MALFORMED_JSON, response.get_json()["error_code"])


    def test_put_rejects_bad_packet(self):

        response = self.client.put("/api/session/cart/items", data=json.dumps({"val": 1}), content_type="application/json")

        self.assertEqual(400, response.status_code)
        self.assertEqual(ApplicationCodes.INVALID_PACKET_STRUCTURE, response.get_json()["error_code"])
        self.assertEqual(0, len(self.store))


    def test_regenerate_rejects_bad_flag(self):

        response = self.client.post("/api/session/regenerate", data=json.dumps({"delete_old_session": "yes"}), content_type="application/json")

        self.assertEqual(400, response.status_code)
        self.assertEqual(ApplicationCodes.INVALID_TYPE, response.get_json()["error_code"])


    """
        Bodies above the configured limit receive a 413 failure packet.
    """
    def test_payload_too_large(self):

        oversized = json.dumps({"value": "x" * CONSTANTS._MAX_CONTENT_LENGTH})

        response = self.client.put("/api/session/cart/items", data=oversized, content_type="application/json")

        self.assertEqual(413, response.status_code)
        self.assertEqual("failure", response.get_json()["response_status"])
        self.assertEqual(ApplicationCodes.INVALID_LENGTH, response.get_json()["error_code"])


    def test_unknown_route_is_404(self):
        self.assertEqual(404, self.client.get("/api/unknown").status_code)


    def test_store_outage_is_503(self):

        self.app.session_store = OfflineStore()

        response = self.client.get("/api/session/cart")

        self.assertEqual(503, response.status_code)
        self.assertEqual(ApplicationCodes.STORE_UNAVAILABLE, response.get_json()["error_code"])
        self.assertEqual([], self._session_cookies(response))



class TestCreateApp(unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.audit_path = os.path.join(self._tmp.name, "audit.log")

    def tearDown(self) -> None:
        self._tmp.cleanup()


    def test_invalid_policy_fails_at_startup(self):

        with self.assertRaises(ConfigurationError):
            create_app(policy_overrides={"idle_timeout": -5}, start_cleanup_worker=False)

        with self.assertRaises(ConfigurationError):
            create_app(policy_overrides={"colour": "blue"}, start_cleanup_worker=False)


    """
        Sessions live server-side, so the app carries no signing secret even when one is in the environment.
    """
    def test_app_has_no_secret_key(self):

        environ = {"FLASK_SECRET_KEY": "from-environment", "COOKIESESSION_AUDIT_FILE": self.audit_path}

        with mock.patch.dict(os.environ, environ, clear=True):
            app = create_app(start_cleanup_worker=False)

        self.assertIsNone(app.config.get("SECRET_KEY"))
        self.assertIsNone(app.secret_key)
        self.assertEqual(CONSTANTS._MAX_CONTENT_LENGTH, app.config["MAX_CONTENT_LENGTH"])


    """
        Environment overrides apply unless the caller overrides the same key.
    """
    def test_environment_overrides(self):

        environ = {"COOKIESESSION_LIFETIME": "60", "COOKIESESSION_NAME": "sid", "COOKIESESSION_AUDIT_FILE": self.audit_path}

        with mock.patch.dict(os.environ, environ, clear=True):
            app = create_app(policy_overrides={"lifetime": 90}, start_cleanup_worker=False)

        self.assertEqual({"lifetime": 90, "name": "sid"}, app.session_policy_overrides)
        self.assertIsInstance(app.session_store, InMemorySessionStore)

        response = app.test_client().get("/api/session/cart")
        cookie = [h for h in response.headers.getlist("Set-Cookie") if h.startswith("sid=")][0]
        self.assertIn("Max-Age=90", cookie)


    def test_database_credentials_select_postgres_store(self):

        environ = {CONSTANTS._ENV_DB_CREDENTIALS: "/etc/cookiesession/db.json", "COOKIESESSION_AUDIT_FILE": self.audit_path}
        postgres_store = InMemorySessionStore()

        with mock.patch.dict(os.environ, environ, clear=True), \
             mock.patch("cookiesession.server.Database") as database, \
             mock.patch("cookiesession.server.PostgresSessionStore", return_value=postgres_store) as store_class:
            app = create_app(start_cleanup_worker=False)

        database.assert_called_once_with(credentials_path="/etc/cookiesession/db.json")
        store_class.assert_called_once_with(database.return_value)
        self.assertIs(postgres_store, app.session_store)


    """
        The cleanup worker purges idle sessions on its first pass.
    """
    def test_cleanup_worker_purges_idle_sessions(self):


        clock = FakeClock()
        store = InMemorySessionStore()
        stale = SessionRecord(session_id=store.generate_id(), last_activity=clock.now - timedelta(seconds=10), created_at=clock.now - timedelta(seconds=10))
        store.save(stale)

        purged = []
        original = store.purge_idle

        def recording_purge(cutoff):
            removed = original(cutoff)
            purged.append(removed)
            return removed

        store.purge_idle = recording_purge

        with mock.patch("cookiesession.server.time.sleep", side_effect=SystemExit):
            with mock.patch("cookiesession.server.threading.Thread") as thread_class:
                create_app(store=store, policy_overrides={"idle_timeout": 2}, audit_log=AuditLog(self.audit_path), clock=clock)

            worker = thread_class.call_args.kwargs["target"]
            self.assertTrue(thread_class.call_args.kwargs["daemon"])

            with self.assertRaises(SystemExit):
                worker()

        self.assertEqual([[stale.session_id]], purged)
        self.assertEqual(0, len(store))


if __name__ == "__main__":
    unittest.main()
