#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: testErrorHandler.py

    Description:
        Unit tests for the SessionError family and ErrorHandler. Verifies that
        SessionError, ConfigurationError and StoreUnavailable carry the right
        codes, that handle_server_error produces canonical failure packets for
        both known and unexpected exceptions, and that every handled error is
        recorded in the audit log.
"""


import json
import os
import tempfile
import unittest

from cookiesession.handlers.error_handler import ErrorHandler, SessionError, ConfigurationError, StoreUnavailable, ApplicationCodes, HTTPCodes
from cookiesession.utilities.audit_log import AuditLog
import cookiesession.constants as CONSTANTS


class TestSessionErrors(unittest.TestCase):

    def test_session_error_fields(self):

        e = SessionError(ApplicationCodes.INVALID_KEY, HTTPCodes.BAD_REQUEST, "key must be a non-empty string.", "key")

        self.assertEqual(ApplicationCodes.INVALID_KEY, e.application_code)
        self.assertEqual(HTTPCodes.BAD_REQUEST, e.http_code)
        self.assertEqual("key", e.field)
        self.assertIn("invalid_key", str(e))


    def test_configuration_error_is_fatal_500(self):

        e = ConfigurationError(ApplicationCodes.INVALID_SAMESITE, "bad samesite", "samesite")

        self.assertIsInstance(e, SessionError)
        self.assertEqual(HTTPCodes.INTERNAL_SERVER_ERROR, e.http_code)


    def test_store_unavailable_is_503(self):

        e = StoreUnavailable("database down")

        self.assertIsInstance(e, SessionError)
        self.assertEqual(ApplicationCodes.STORE_UNAVAILABLE, e.application_code)
        self.assertEqual(HTTPCodes.SERVICE_UNAVAILABLE, e.http_code)
        self.assertEqual("session_store", e.field)



class TestErrorHandler(unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.audit_path = os.path.join(self._tmp.name, "audit.log")
        self.handler = ErrorHandler(AuditLog(self.audit_path))

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _last_event(self) -> dict:
        with open(self.audit_path, "r", encoding="utf-8") as f:
            return json.loads(f.readlines()[-1])


    """
        A SessionError keeps its code, status, detail and field in the packet.
    """
    def test_session_error_packet(self):

        e = SessionError(ApplicationCodes.SESSION_DESTROYED, HTTPCodes.GONE, "Session has been destroyed", "session")

        packet, status = self.handler.handle_server_error(e, context="unit")

        self.assertEqual(HTTPCodes.GONE, status)
        self.assertEqual("failure", packet["response_status"])
        self.assertEqual(ApplicationCodes.SESSION_DESTROYED, packet["error_code"])
        self.assertEqual("Session has been destroyed", packet["message"])
        self.assertEqual("session", packet["field"])
        self.assertRegex(packet["timestamp"], CONSTANTS._ISO8601Z)

        event = self._last_event()
        self.assertEqual("server_exception", event["event"])
        self.assertEqual("unit", event["context"])
        self.assertEqual(ApplicationCodes.SESSION_DESTROYED, event["error_code"])


    """
        Unexpected exceptions become a generic 500 without leaking their detail to the client.
    """
    def test_unexpected_exception_is_masked(self):

        packet, status = self.handler.handle_server_error(KeyError("secret internals"), context="unit")

        self.assertEqual(HTTPCodes.INTERNAL_SERVER_ERROR, status)
        self.assertEqual(ApplicationCodes.INTERNAL_SERVER_ERROR, packet["error_code"])
        self.assertNotIn("secret internals", packet["message"])
        self.assertEqual("", packet["field"])

        self.assertIn("secret internals", self._last_event()["detail"])


    def test_create_error_response_packet(self):

        packet = self.handler.create_error_response_packet("bad", ApplicationCodes.INVALID_REQUEST)

        self.assertEqual({"response_status", "timestamp", "message", "error_code", "field"}, set(packet))
        self.assertEqual("", packet["field"])


if __name__ == "__main__":
    unittest.main()
