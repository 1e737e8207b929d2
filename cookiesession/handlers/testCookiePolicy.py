#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: testCookiePolicy.py

    Description:
        Unit tests for CookiePolicy, build_cookie_policy and
        load_policy_overrides_from_environ. Verifies defaults, key-by-key
        override merging, validation of every attribute, SameSite
        normalization, and the shape of session and invalidation cookies.
"""


import unittest
from datetime import datetime, timedelta, timezone

from cookiesession.handlers.cookie_policy import CookiePolicy, build_cookie_policy, load_policy_overrides_from_environ
from cookiesession.handlers.error_handler import ConfigurationError, ApplicationCodes, HTTPCodes
import cookiesession.constants as CONSTANTS


_NOW = datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc)


class TestBuildCookiePolicy(unittest.TestCase):

    """
        With no overrides every field takes its documented default and secure follows TLS.
    """
    def test_defaults(self):

        policy = build_cookie_policy()

        self.assertEqual(1800, policy.lifetime)
        self.assertEqual(900, policy.idle_timeout)
        self.assertEqual("/", policy.path)
        self.assertEqual("", policy.domain)
        self.assertFalse(policy.secure)
        self.assertTrue(policy.httponly)
        self.assertEqual("Lax", policy.samesite)
        self.assertEqual("SESSIONID", policy.name)

        self.assertTrue(build_cookie_policy(tls_active=True).secure)


    """
        Overrides replace only the keys they name.
    """
    def test_overrides_merge_key_by_key(self):

        policy = build_cookie_policy({"lifetime": 60, "path": "/app"}, tls_active=True)

        self.assertEqual(60, policy.lifetime)
        self.assertEqual("/app", policy.path)
        self.assertEqual(CONSTANTS._DEFAULT_IDLE_TIMEOUT_SECONDS, policy.idle_timeout)
        self.assertTrue(policy.secure)

        self.assertFalse(build_cookie_policy({"secure": False}, tls_active=True).secure)


    def test_unknown_override_rejected(self):

        with self.assertRaises(ConfigurationError) as ctx:
            build_cookie_policy({"lifetim": 10})

        self.assertEqual(ApplicationCodes.INVALID_CONFIGURATION, ctx.exception.application_code)
        self.assertEqual(HTTPCodes.INTERNAL_SERVER_ERROR, ctx.exception.http_code)


    def test_overrides_must_be_dict(self):

        with self.assertRaises(ConfigurationError):
            build_cookie_policy([("lifetime", 10)])


    """
        Each invalid attribute raises ConfigurationError with a specific code.
    """
    def test_invalid_values_rejected(self):

        cases = [
            ({"lifetime": -1}, ApplicationCodes.INVALID_LIFETIME),
            ({"lifetime": "60"}, ApplicationCodes.INVALID_LIFETIME),
            ({"lifetime": True}, ApplicationCodes.INVALID_LIFETIME),
            ({"idle_timeout": 0}, ApplicationCodes.INVALID_IDLE_TIMEOUT),
            ({"idle_timeout": 1.5}, ApplicationCodes.INVALID_IDLE_TIMEOUT),
            ({"name": ""}, ApplicationCodes.INVALID_COOKIE_NAME),
            ({"name": "bad name"}, ApplicationCodes.INVALID_COOKIE_NAME),
            ({"name": "semi;colon"}, ApplicationCodes.INVALID_COOKIE_NAME),
            ({"path": "relative"}, ApplicationCodes.INVALID_COOKIE_PATH),
            ({"path": "/a;b"}, ApplicationCodes.INVALID_COOKIE_PATH),
            ({"domain": "exa mple.com"}, ApplicationCodes.INVALID_COOKIE_DOMAIN),
            ({"secure": "yes"}, ApplicationCodes.INVALID_CONFIGURATION),
            ({"httponly": 1}, ApplicationCodes.INVALID_CONFIGURATION),
            ({"samesite": "Sometimes"}, ApplicationCodes.INVALID_SAMESITE),
            ({"samesite": None}, ApplicationCodes.INVALID_SAMESITE),
        ]

        for overrides, code in cases:
            with self.assertRaises(ConfigurationError, msg=str(overrides)) as ctx:
                build_cookie_policy(overrides)
            self.assertEqual(code, ctx.exception.application_code, msg=str(overrides))


    def test_samesite_normalized(self):

        self.assertEqual("Strict", build_cookie_policy({"samesite": "strict"}).samesite)
        self.assertEqual("Lax", build_cookie_policy({"samesite": " LAX "}).samesite)
        self.assertEqual("None", build_cookie_policy({"samesite": "none", "secure": True}).samesite)


    """
        SameSite=None is only accepted together with Secure.
    """
    def test_samesite_none_requires_secure(self):

        with self.assertRaises(ConfigurationError) as ctx:
            build_cookie_policy({"samesite": "None"})

        self.assertEqual(ApplicationCodes.INSECURE_SAMESITE_NONE, ctx.exception.application_code)

        self.assertTrue(build_cookie_policy({"samesite": "None"}, tls_active=True).secure)


    def test_policy_is_immutable(self):

        policy = CookiePolicy()

        with self.assertRaises(Exception):
            policy.lifetime = 5



class TestCookieInstructions(unittest.TestCase):

    def setUp(self) -> None:
        self.policy = build_cookie_policy({"lifetime": 120, "domain": "example.com", "path": "/app", "samesite": "Strict"}, tls_active=True)


    def test_session_cookie(self):

        cookie = self.policy.session_cookie("abc", _NOW)

        self.assertEqual("SESSIONID", cookie.name)
        self.assertEqual("abc", cookie.value)
        self.assertEqual(_NOW + timedelta(seconds=120), cookie.expires)
        self.assertEqual(120, cookie.max_age)
        self.assertEqual("/app", cookie.path)
        self.assertEqual("example.com", cookie.domain)
        self.assertTrue(cookie.secure)
        self.assertTrue(cookie.httponly)
        self.assertEqual("Strict", cookie.samesite)
        self.assertFalse(cookie.is_invalidation)


    """
        The invalidation cookie is empty, already expired, and scoped exactly like the session cookie.
    """
    def test_invalidation_cookie_matches_scope(self):

        written = self.policy.session_cookie("abc", _NOW)
        cleared = self.policy.invalidation_cookie(_NOW)

        self.assertTrue(cleared.is_invalidation)
        self.assertEqual("", cleared.value)
        self.assertEqual(_NOW - timedelta(seconds=CONSTANTS._COOKIE_INVALIDATION_OFFSET_SECONDS), cleared.expires)

        for attribute in ("name", "path", "domain", "secure", "httponly", "samesite"):
            self.assertEqual(getattr(written, attribute), getattr(cleared, attribute), msg=attribute)


    def test_zero_lifetime_is_browser_session_cookie(self):

        cookie = build_cookie_policy({"lifetime": 0}).session_cookie("abc", _NOW)

        self.assertIsNone(cookie.expires)
        self.assertIsNone(cookie.max_age)



class TestEnvironmentOverrides(unittest.TestCase):

    def test_reads_only_set_variables(self):

        overrides = load_policy_overrides_from_environ({
            "COOKIESESSION_LIFETIME": "600",
            "COOKIESESSION_SECURE": "true",
            "COOKIESESSION_HTTPONLY": "0",
            "COOKIESESSION_SAMESITE": " strict ",
            "COOKIESESSION_NAME": "sid",
            "UNRELATED": "x",
        })

        self.assertEqual({"lifetime": 600, "secure": True, "httponly": False, "samesite": "strict", "name": "sid"}, overrides)

        policy = build_cookie_policy(overrides)
        self.assertEqual("Strict", policy.samesite)


    def test_empty_environment(self):
        self.assertEqual({}, load_policy_overrides_from_environ({}))


    def test_malformed_values_rejected(self):

        with self.assertRaises(ConfigurationError):
            load_policy_overrides_from_environ({"COOKIESESSION_IDLE_TIMEOUT": "ten"})

        with self.assertRaises(ConfigurationError):
            load_policy_overrides_from_environ({"COOKIESESSION_SECURE": "maybe"})


if __name__ == "__main__":
    unittest.main()
