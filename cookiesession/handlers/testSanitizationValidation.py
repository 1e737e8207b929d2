#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: testSanitizationValidation.py

    Description:
        Unit tests for the shared validation helpers: base64url encoding,
        session id shape checks, audit fingerprints, namespace and key checks,
        configuration coercion, and ISO8601Z timestamps.
"""


import unittest
from datetime import datetime, timezone

import cookiesession.handlers.sanitization_validation as VALIDATION
from cookiesession.handlers.error_handler import SessionError, ConfigurationError, ApplicationCodes


class TestSanitizationValidation(unittest.TestCase):

    def test_encode_bytes_to_base64url(self):

        self.assertEqual("-_8", VALIDATION.encode_bytes_to_base64url(b"\xfb\xff"))
        self.assertEqual(43, len(VALIDATION.encode_bytes_to_base64url(bytes(32))))

        with self.assertRaises(SessionError):
            VALIDATION.encode_bytes_to_base64url("text")


    def test_is_well_formed_session_id(self):

        self.assertTrue(VALIDATION.is_well_formed_session_id("A" * 43))
        self.assertTrue(VALIDATION.is_well_formed_session_id("a-_" + "0" * 40))

        for bad in (None, 43, "", "A" * 42, "A" * 44, "A" * 42 + "=", "A" * 42 + "/"):
            self.assertFalse(VALIDATION.is_well_formed_session_id(bad), msg=repr(bad))


    """
        Fingerprints are short, stable, and never echo the identifier.
    """
    def test_session_fingerprint(self):

        session_id = "B" * 43
        fingerprint = VALIDATION.session_fingerprint(session_id)

        self.assertEqual(16, len(fingerprint))
        self.assertEqual(fingerprint, VALIDATION.session_fingerprint(session_id))
        self.assertNotIn(session_id[:16], fingerprint)
        self.assertEqual("", VALIDATION.session_fingerprint(None))


    def test_validate_namespace(self):

        VALIDATION.validate_namespace("auth.v2_tokens-1")

        for bad in ("", "a/b", "a b", "n" * 65, 7):
            with self.assertRaises(SessionError) as ctx:
                VALIDATION.validate_namespace(bad)
            self.assertEqual(ApplicationCodes.INVALID_NAMESPACE, ctx.exception.application_code)


    def test_validate_json_serializable(self):

        VALIDATION.validate_json_serializable({"a": [1, "two", None, True, 2.5]}, "value")

        with self.assertRaises(SessionError) as ctx:
            VALIDATION.validate_json_serializable(float("inf"), "value")
        self.assertEqual(ApplicationCodes.INVALID_VALUE, ctx.exception.application_code)


    def test_coercion(self):

        self.assertTrue(VALIDATION.coerce_to_bool(" Yes ", "secure"))
        self.assertFalse(VALIDATION.coerce_to_bool("off", "secure"))
        self.assertEqual(42, VALIDATION.coerce_to_int(" 42 ", "lifetime"))

        with self.assertRaises(ConfigurationError):
            VALIDATION.coerce_to_bool("2", "secure")
        with self.assertRaises(ConfigurationError):
            VALIDATION.coerce_to_int("4.2", "lifetime")


    def test_get_timestamp_iso8601z(self):

        moment = datetime(2024, 2, 29, 23, 59, 58, 999999, tzinfo=timezone.utc)
        self.assertEqual("2024-02-29T23:59:58Z", VALIDATION.get_timestamp_iso8601z(moment))

        with self.assertRaises(SessionError):
            VALIDATION.validate_iso8601("2024-02-29 23:59:58", ApplicationCodes.INVALID_TIMESTAMP, "timestamp")


if __name__ == "__main__":
    unittest.main()
