#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: error_handler.py

    Description:
        Centralized error handling for the cookiesession backend. Defines the
        SessionError family (ConfigurationError, StoreUnavailable), converts
        exceptions into standardized failure packets, and records diagnostic
        information in the audit log. Supports both SessionError and
        unexpected exceptions, always producing a canonical failure packet.
"""


import typing
from dataclasses import dataclass
from typing import Tuple
from datetime import datetime, timezone
from cookiesession.utilities.audit_log import AuditLog


"""
    Container Class for HTTP status constants.
"""
@dataclass
class HTTPCodes:
    # 200 OK
    OK = 200

    # 400 Bad Request
    BAD_REQUEST = 400

    # 404 Not Found
    NOT_FOUND = 404

    # 409 Conflict
    CONFLICT = 409

    # 410 Gone – operation on a destroyed session
    GONE = 410

    # 413 Payload Too Large
    PAYLOAD_TOO_LARGE = 413

    # 500 Internal Server Error
    INTERNAL_SERVER_ERROR = 500

    # 503 Service Unavailable – session store unreachable
    SERVICE_UNAVAILABLE = 503


"""
    Container Class for server error code strings.
"""
@dataclass
class ApplicationCodes:

    MALFORMED_JSON           = "malformed_json"
    INVALID_TYPE             = "invalid_type"
    INVALID_LENGTH           = "invalid_length"
    INVALID_CONTENT_TYPE     = "invalid_content_type"
    INVALID_REQUEST          = "invalid_request"
    INVALID_PACKET_STRUCTURE = "invalid_packet_structure"
    INVALID_TIMESTAMP        = "invalid_timestamp"
    INVALID_PATH             = "invalid_path"
    INTERNAL_SERVER_ERROR    = "internal_server_error"

    # Cookie policy configuration
    INVALID_CONFIGURATION    = "invalid_configuration"
    INVALID_COOKIE_NAME      = "invalid_cookie_name"
    INVALID_COOKIE_PATH      = "invalid_cookie_path"
    INVALID_COOKIE_DOMAIN    = "invalid_cookie_domain"
    INVALID_LIFETIME         = "invalid_lifetime"
    INVALID_IDLE_TIMEOUT     = "invalid_idle_timeout"
    INVALID_SAMESITE         = "invalid_samesite"
    INSECURE_SAMESITE_NONE   = "insecure_samesite_none"

    # Session lifecycle
    SESSION_NOT_STARTED      = "session_not_started"
    SESSION_DESTROYED        = "session_destroyed"
    SESSION_START_ERROR      = "session_start_error"
    SESSION_UPDATE_ERROR     = "session_update_error"
    SESSION_REGENERATE_ERROR = "session_regenerate_error"
    SESSION_DESTROY_ERROR    = "session_destroy_error"
    SESSION_CLEANUP_ERROR    = "session_cleanup_error"
    ID_GENERATION_ERROR      = "id_generation_error"

    # Namespaced data access
    INVALID_NAMESPACE        = "invalid_namespace"
    INVALID_KEY              = "invalid_key"
    INVALID_VALUE            = "invalid_value"

    # Persistence
    SESSION_STORE_ERROR      = "session_store_error"
    STORE_UNAVAILABLE        = "store_unavailable"
    INVALID_RECORD           = "invalid_record"




class SessionError(Exception):

    """
        Initialize a SessionError containing application code, HTTP code, detail message, and field context.

        @param application_code (str): Identifier from ApplicationCodes signaling the failure type.
        @param http_code (int): HTTP status code associated with the error.
        @param detail (str): Descriptive message intended for client-facing error packets.
        @param field (str): Logical field related to the error (optional).
        @ensures Error metadata is accessible to the centralized ErrorHandler.
    """
    def __init__(self, application_code: str, http_code: int, detail: str, field: str = "") -> None:
        self.application_code = application_code
        self.http_code = http_code
        self.detail = detail
        self.field = field
        super().__init__(f"{application_code}: {detail}")



"""
    Raised when a cookie policy or other configuration value is invalid. Fatal at construction time.
"""
class ConfigurationError(SessionError):

    def __init__(self, application_code: str, detail: str, field: str = "") -> None:
        super().__init__(application_code, HTTPCodes.INTERNAL_SERVER_ERROR, detail, field)



"""
    Raised when the session store backend fails on load, save, or delete.
"""
class StoreUnavailable(SessionError):

    def __init__(self, detail: str, field: str = "session_store") -> None:
        super().__init__(ApplicationCodes.STORE_UNAVAILABLE, HTTPCodes.SERVICE_UNAVAILABLE, detail, field)




class ErrorHandler:

    """
        Initialize the ErrorHandler and attach an AuditLog for diagnostic event recording.

        @param audit_log (AuditLog|None): Shared audit log; a default one is created when omitted.
        @ensures ErrorHandler is ready to format and log errors.
    """
    def __init__(self, audit_log: typing.Optional[AuditLog] = None) -> None:

        self.audit_log = audit_log if audit_log is not None else AuditLog()


    """
        Process an exception and return a standardized failure packet.

        @param e (Exception): Exception raised during request handling.
        @param context (str): Logical context string identifying the failing operation.
        @return tuple[dict, int]: (clean_error_packet, http_status_code)
        @ensures Exception is logged to audit_log and a canonical failure packet is returned.
    """
    def handle_server_error(self, e: Exception, context: str = "") -> Tuple[dict, int]:

        # If the exception is already a SessionError
        if isinstance(e, SessionError):
            application_code = e.application_code
            http_code = e.http_code
            message = e.detail
            field = e.field
        else:
            # For non-raised errors, normalize to INTERNAL_SERVER_ERROR
            application_code = ApplicationCodes.INTERNAL_SERVER_ERROR
            http_code = HTTPCodes.INTERNAL_SERVER_ERROR
            message = "An internal server error occurred. Please try again later."
            field = ""

        # Always log the raw exception detail for operators
        self.audit_log.event(event="server_exception", context=context, error_code=application_code, detail=str(e))

        # Build standardized error packet
        clean_packet = self.create_error_response_packet(message, application_code, field)

        return clean_packet, http_code



    """
        Build a standardized failure packet.

        @param message (str): Human-readable error message for client.
        @param error_code (str): One of ApplicationCodes.* defining the error type.
        @param field (str): Logical field associated with the error (optional).
        @return dict: Error packet including timestamp.
    """
    def create_error_response_packet(self, message: str, error_code: str, field: str = "") -> dict:
        try:
            timestamp_iso = datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")

            return {
                "response_status": "failure",
                "timestamp": timestamp_iso,
                "message": message,
                "error_code": error_code,
                "field": field
            }

        except Exception:
            raise SessionError(ApplicationCodes.INTERNAL_SERVER_ERROR, HTTPCodes.INTERNAL_SERVER_ERROR, "Internal error creating error response packet.", "")
