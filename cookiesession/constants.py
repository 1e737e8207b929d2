#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: constants.py

    Description:
        Centralized constants for cookiesession. Defines the default cookie
        policy values, allowed SameSite modes, identifier sizes, namespace and
        key limits, environment variable names, and regex patterns shared across
        validation modules (cookie policy, lifecycle, stores, and the Flask app).
"""

import re
from typing import Set


################################################################################################
# Default cookie policy
################################################################################################

# Namespace used when the caller does not name one
_DEFAULT_NAMESPACE = "default"

# 30 minutes cookie lifetime (0 means a browser-session cookie)
_DEFAULT_LIFETIME_SECONDS: int = 30 * 60

# 15 minutes of inactivity before a session is abandoned
_DEFAULT_IDLE_TIMEOUT_SECONDS: int = 15 * 60

_DEFAULT_COOKIE_PATH = "/"
_DEFAULT_COOKIE_DOMAIN = ""
_DEFAULT_COOKIE_HTTPONLY = True
_DEFAULT_COOKIE_SAMESITE = "Lax"
_DEFAULT_COOKIE_NAME = "SESSIONID"

# Keys accepted as cookie policy overrides
_COOKIE_POLICY_FIELDS: Set[str] = {
    "lifetime",
    "idle_timeout",
    "path",
    "domain",
    "secure",
    "httponly",
    "samesite",
    "name",
}

# Allowed SameSite attribute values
_SAMESITE_STRICT = "Strict"
_SAMESITE_LAX = "Lax"
_SAMESITE_NONE = "None"
_ALLOWED_SAMESITE_VALUES: Set[str] = {_SAMESITE_STRICT, _SAMESITE_LAX, _SAMESITE_NONE}

# Offset used to push an invalidation cookie's expiry into the past
_COOKIE_INVALIDATION_OFFSET_SECONDS: int = 42000


################################################################################################
# Session identifiers
################################################################################################

# Bytes of CSPRNG output per session identifier (256 bits)
_SESSION_ID_BYTES = 32

# Base64URL of _SESSION_ID_BYTES without padding is 43 characters
_SESSION_ID_RX = re.compile(r"^[A-Za-z0-9_\-]{43}$")

# Hex characters of SHA-256 kept when a session is referenced in the audit log
_SESSION_FINGERPRINT_LEN = 16


################################################################################################
# Lifecycle states
################################################################################################

_STATE_UNINITIALIZED = "uninitialized"
_STATE_ACTIVE = "active"
_STATE_DESTROYED = "destroyed"


################################################################################################
# Namespaces and keys
################################################################################################

_MAX_NAMESPACE_LEN = 64
_NAMESPACE_RX = re.compile(r"^[A-Za-z0-9_.\-]+$")
_MAX_KEY_LEN = 128

# Cookie names are RFC 6265 tokens
_COOKIE_NAME_RX = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


# ISO8601 UTC timestamp regex
_ISO8601Z = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")


################################################################################################
# Environment configuration
################################################################################################

# Maps environment variable names to cookie policy fields
_ENV_POLICY_FIELDS = {
    "COOKIESESSION_LIFETIME": "lifetime",
    "COOKIESESSION_IDLE_TIMEOUT": "idle_timeout",
    "COOKIESESSION_PATH": "path",
    "COOKIESESSION_DOMAIN": "domain",
    "COOKIESESSION_SECURE": "secure",
    "COOKIESESSION_HTTPONLY": "httponly",
    "COOKIESESSION_SAMESITE": "samesite",
    "COOKIESESSION_NAME": "name",
}

_ENV_DB_CREDENTIALS = "COOKIESESSION_DB_CREDENTIALS"

_TRUE_STRINGS: Set[str] = {"1", "true", "yes", "on"}
_FALSE_STRINGS: Set[str] = {"0", "false", "no", "off"}


################################################################################################
# Background cleanup
################################################################################################

# Seconds between purges of idle sessions
_CLEANUP_INTERVAL_SECONDS = 60

# Maximum JSON request body accepted by the Flask app
_MAX_CONTENT_LENGTH = 262_144

