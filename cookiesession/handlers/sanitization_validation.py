#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: sanitization_validation.py

    Description:
        Provides encoding, type-conversion, and reusable field-level validation
        helpers for cookiesession. Includes Base64URL encoding of identifier
        bytes, session id shape checks, namespace and key validation, JSON
        serializability checks for stored values, boolean and integer coercion
        for environment configuration, ISO8601Z timestamps, and the SHA-256
        fingerprint used to reference sessions in the audit log.

        Raises SessionError (or ConfigurationError for configuration values) for
        all malformed or non-conforming data.
"""

import base64
import hashlib
import json
import typing
from datetime import datetime, timezone

from cookiesession.handlers.error_handler import SessionError, ConfigurationError, ApplicationCodes, HTTPCodes
import cookiesession.constants as CONSTANTS


####################################################################################################
#                                   Base64URL Encoding
####################################################################################################

"""
    Convert raw bytes into a Base64URL string without padding.

    @param raw (bytes): Bytes to encode.
    @require raw is bytes or bytearray
    @return str: Base64URL-encoded ASCII string without '=' padding.
    @ensures Output string is safe for cookie values and JSON serialization.
"""
def encode_bytes_to_base64url(raw: bytes) -> str:
    try:
        # Validate input type
        if not isinstance(raw, (bytes, bytearray)):
            raise SessionError(ApplicationCodes.INVALID_TYPE, HTTPCodes.INTERNAL_SERVER_ERROR, "b64url encode expects bytes", "raw")

        # Perform base64url encoding and strip padding
        return base64.urlsafe_b64encode(bytes(raw)).decode("ascii").rstrip("=")

    except SessionError:
        raise
    except Exception:
        raise SessionError(ApplicationCodes.INTERNAL_SERVER_ERROR, HTTPCodes.INTERNAL_SERVER_ERROR, "Unexpected error during base64url encoding", "raw")



####################################################################################################
#                                   Session identifiers
####################################################################################################

"""
    Report whether a value has the shape of an identifier produced by generate_id.

    @param value (Any): Candidate session identifier (typically a raw cookie value).
    @return bool: True for a 43-character base64url string, False otherwise.
"""
def is_well_formed_session_id(value: typing.Any) -> bool:
    return isinstance(value, str) and CONSTANTS._SESSION_ID_RX.fullmatch(value) is not None



"""
    Reduce a session identifier to a short SHA-256 fingerprint for log lines.

    @param session_id (str): Session identifier.
    @return str: First _SESSION_FINGERPRINT_LEN hex characters of SHA-256(session_id), or "" when absent.
    @ensures Raw identifiers never reach the audit log.
"""
def session_fingerprint(session_id: typing.Optional[str]) -> str:
    if not session_id:
        return ""
    digest = hashlib.sha256(session_id.encode("utf-8")).hexdigest()
    return digest[:CONSTANTS._SESSION_FINGERPRINT_LEN]



####################################################################################################
#                               Namespaces, keys and stored values
####################################################################################################

"""
    Validate a namespace name.

    @param namespace (Any): Candidate namespace name.
    @require namespace is a non-empty string of [A-Za-z0-9_.-] at most _MAX_NAMESPACE_LEN long
    @ensures raises SessionError(INVALID_NAMESPACE) otherwise
"""
def validate_namespace(namespace: typing.Any) -> None:
    validate_string(namespace, ApplicationCodes.INVALID_NAMESPACE, "namespace")
    validate_max_length(namespace, CONSTANTS._MAX_NAMESPACE_LEN, ApplicationCodes.INVALID_NAMESPACE, "namespace")
    validate_regex(namespace, CONSTANTS._NAMESPACE_RX, ApplicationCodes.INVALID_NAMESPACE, "namespace")



"""
    Validate a key inside a namespace.

    @param key (Any): Candidate key.
    @require key is a non-empty string at most _MAX_KEY_LEN long
    @ensures raises SessionError(INVALID_KEY) otherwise
"""
def validate_key(key: typing.Any) -> None:
    validate_string(key, ApplicationCodes.INVALID_KEY, "key")
    validate_max_length(key, CONSTANTS._MAX_KEY_LEN, ApplicationCodes.INVALID_KEY, "key")



"""
    Validate that a value can be persisted by every session store.

    @param value (Any): Value about to be stored in a namespace.
    @ensures raises SessionError(INVALID_VALUE) if json.dumps rejects the value
"""
def validate_json_serializable(value: typing.Any, field_name: str) -> None:
    try:
        json.dumps(value, allow_nan=False)
    except (TypeError, ValueError):
        raise SessionError(ApplicationCodes.INVALID_VALUE, HTTPCodes.BAD_REQUEST, f"{field_name} must be JSON-serializable.", field_name)



####################################################################################################
#                                   Configuration coercion
####################################################################################################

"""
    Convert an environment string into a boolean.

    @param value (str): Raw environment value.
    @param field_name (str): Policy field being configured.
    @return bool: Parsed flag.
    @ensures Raises ConfigurationError for anything outside _TRUE_STRINGS / _FALSE_STRINGS.
"""
def coerce_to_bool(value: str, field_name: str) -> bool:
    cleaned = str(value).strip().lower()
    if cleaned in CONSTANTS._TRUE_STRINGS:
        return True
    if cleaned in CONSTANTS._FALSE_STRINGS:
        return False
    raise ConfigurationError(ApplicationCodes.INVALID_CONFIGURATION, f"{field_name} must be a boolean flag, got '{value}'.", field_name)



"""
    Convert a numeric string into an integer.

    @param value (str): Raw environment value.
    @param field_name (str): Policy field being configured.
    @return int: Parsed integer.
    @ensures Raises ConfigurationError if conversion fails.
"""
def coerce_to_int(value: str, field_name: str) -> int:
    try:
        return int(str(value).strip())
    except Exception:
        raise ConfigurationError(ApplicationCodes.INVALID_CONFIGURATION, f"{field_name} must be an integer, got '{value}'.", field_name)



####################################################################################################
#                               GENERIC VALIDATORS (REUSABLE)
####################################################################################################

"""
    Function: Validate that a value is a non-empty string.

    @param: typing.Any - value to be validated
    @param: ApplicationCodes - application-level error type to raise if validation fails
    @param: str - field_name identifying the failing field
    @ensures: raises SessionError if value is not a valid non-empty string
"""
def validate_string(value: typing.Any, application_code, field_name: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise SessionError(application_code, HTTPCodes.BAD_REQUEST, f"{field_name} must be a non-empty string.", field_name)



"""
    Function: Validate that a string does not exceed a maximum length.

    @param: str - value to be validated
    @param: int - max_len specifying the maximum allowed characters
    @param: ApplicationCodes - application-level error type to raise if validation fails
    @param: str - field_name identifying the failing field
    @ensures: raises SessionError if value length exceeds max_len
"""
def validate_max_length(value: str, max_len: int, application_code, field_name: str) -> None:
    if len(value) > max_len:
        raise SessionError(application_code, HTTPCodes.BAD_REQUEST, f"{field_name} exceeds maximum length ({max_len}).", field_name)



"""
    Function: Validate that a string matches a regular expression exactly.

    @param: str - value to be validated
    @param: regex - compiled regex pattern to enforce fullmatch
    @param: ApplicationCodes - application-level error type to raise if validation fails
    @param: str - field_name identifying the failing field
    @ensures: raises SessionError if value does not match regex
"""
def validate_regex(value: str, regex, application_code, field_name: str) -> None:
    if not regex.fullmatch(value):
        raise SessionError(application_code, HTTPCodes.BAD_REQUEST, f"{field_name} has invalid format.", field_name)



"""
    Function: Validate that a value is a strict ISO8601Z timestamp.

    @param: str - value containing timestamp
    @param: ApplicationCodes - application-level error type to raise on failure
    @param: str - field_name identifying the failing field
    @ensures: raises SessionError if timestamp does not match ISO8601Z pattern
"""
def validate_iso8601(value: str, application_code, field_name: str) -> None:
    if not isinstance(value, str) or not CONSTANTS._ISO8601Z.fullmatch(value):
        raise SessionError(application_code, HTTPCodes.BAD_REQUEST, f"{value} must be ISO8601Z timestamp.", field_name)



"""
    Function: Format a datetime as a strict ISO8601Z UTC timestamp.

    @param: datetime - moment to format; defaults to now
    @returns: str - timestamp in exact format YYYY-MM-DDTHH:MM:SSZ
"""
def get_timestamp_iso8601z(moment: typing.Optional[datetime] = None) -> str:

    # Normalize to UTC without fractional seconds
    now = (moment or datetime.now(timezone.utc)).astimezone(timezone.utc).replace(microsecond=0)

    # Produce ISO8601 without offset, force 'Z'
    ts = now.strftime("%Y-%m-%dT%H:%M:%SZ")

    validate_iso8601(ts, ApplicationCodes.INVALID_TIMESTAMP, "timestamp")

    return ts
