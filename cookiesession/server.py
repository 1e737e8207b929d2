#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: server.py

    Description:
        Flask binding for cookiesession. Configures the application, the
        session store (PostgreSQL when credentials are configured, in-process
        otherwise), the cookie policy, audit logging, error handling, and the
        periodic purge of idle sessions. Each request lazily gets its own
        SessionLifecycle started from the request cookie; queued cookie
        instructions are applied to the response in after_request. Exposes a
        JSON API over namespaces plus regenerate and destroy, normalizing all
        exceptions through the centralized ErrorHandler.
"""


import os
import time
import threading
import typing
from datetime import datetime
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from cookiesession.utilities.audit_log import AuditLog
from cookiesession.handlers.cookie_policy import CookieInstruction, build_cookie_policy, load_policy_overrides_from_environ
from cookiesession.handlers.session_handler import SessionLifecycle, cleanup_expired_sessions
from cookiesession.handlers.namespace_handler import NamespacedSessionHandle
from cookiesession.handlers.error_handler import ErrorHandler, ApplicationCodes, HTTPCodes, SessionError
from cookiesession.handlers.packet_handler import PacketHandler
from cookiesession.database.session_store import InMemorySessionStore, SessionStore
from cookiesession.database.session_table import PostgresSessionStore
from cookiesession.database.database_object import Database
import cookiesession.constants as CONSTANTS


_ABSENT = object()


"""
    Apply one cookie instruction to a Flask response.

    @param response (flask.Response): Outgoing response.
    @param instruction (CookieInstruction): Write or invalidation to apply.
    @ensures An empty domain produces a host-only cookie.
"""
def _apply_cookie_instruction(response, instruction: CookieInstruction) -> None:
    response.set_cookie(
        instruction.name,
        value=instruction.value,
        max_age=instruction.max_age,
        expires=instruction.expires,
        path=instruction.path,
        domain=instruction.domain or None,
        secure=instruction.secure,
        httponly=instruction.httponly,
        samesite=instruction.samesite,
    )


#####################################################################################################################################################################

"""
    Create and configure the cookiesession Flask application.

    @param store (SessionStore|None): Session backend; defaults to PostgreSQL when COOKIESESSION_DB_CREDENTIALS is set, else in-memory.
    @param policy_overrides (dict|None): Cookie policy overrides; applied on top of COOKIESESSION_* environment overrides.
    @param audit_log (AuditLog|None): Shared audit log.
    @param clock (callable|None): Current-time source injected into every lifecycle.
    @param start_cleanup_worker (bool): Start the daemon thread that purges idle sessions.
    @return Flask: Fully configured Flask application instance.
    @ensures Invalid cookie configuration raises ConfigurationError before the app is returned.
"""
def create_app(store: typing.Optional[SessionStore] = None, policy_overrides: typing.Optional[dict] = None, audit_log: typing.Optional[AuditLog] = None, clock: typing.Optional[typing.Callable[[], datetime]] = None, start_cleanup_worker: bool = True) -> Flask:

    app = Flask(__name__)

    # Enforce a 256 KB payload limit
    app.config["MAX_CONTENT_LENGTH"] = CONSTANTS._MAX_CONTENT_LENGTH


    ################################################################################################
    # Initialize Handlers
    ################################################################################################

    # Instantiate audit log for operational logging
    app.audit_log = audit_log if audit_log is not None else AuditLog()

    # Centralized error handler
    app.error_handler = ErrorHandler(app.audit_log)

    # Packet formatter/builder
    app.packet_handler = PacketHandler()

    # Environment overrides first, caller overrides win key-by-key
    overrides = load_policy_overrides_from_environ()
    overrides.update(policy_overrides or {})
    app.session_policy_overrides = overrides

    # Validate configuration now; secure is resolved per request from TLS status
    cleanup_policy = build_cookie_policy(overrides, tls_active=True)

    # Session backend
    if store is None:
        credentials_path = os.environ.get(CONSTANTS._ENV_DB_CREDENTIALS)
        if credentials_path:
            store = PostgresSessionStore(Database(credentials_path=credentials_path))
        else:
            store = InMemorySessionStore()

    if not isinstance(store, SessionStore):
        raise SessionError(ApplicationCodes.INVALID_TYPE, HTTPCodes.INTERNAL_SERVER_ERROR, "create_app requires a SessionStore instance", "store")

    app.session_store = store


    ################################################################################################
    # Background Session Cleanup (idle purge)
    ################################################################################################

    """
        Background daemon that periodically purges idle sessions.

        @ensures Idle records are removed and failures are logged every _CLEANUP_INTERVAL_SECONDS without blocking the server.
    """
    def _session_cleanup_worker():

        while True:
            try:
                cleanup_expired_sessions(app.session_store, cleanup_policy, clock=clock, audit_log=app.audit_log)

            except Exception as e:
                clean_packet, status = app.error_handler.handle_server_error(e, context="session_cleanup_worker")
                app.audit_log.event(event="cleanup_exception", context="cleanup_worker", detail=str(clean_packet))

            time.sleep(CONSTANTS._CLEANUP_INTERVAL_SECONDS)

    if start_cleanup_worker:
        cleanup_thread = threading.Thread(target=_session_cleanup_worker, daemon=True)
        cleanup_thread.start()


    ################################################################################################
    # Request-scoped session plumbing
    ################################################################################################

    def _current_lifecycle() -> SessionLifecycle:

        lifecycle = g.get("session_lifecycle")
        if lifecycle is None:
            policy = build_cookie_policy(app.session_policy_overrides, tls_active=request.is_secure)
            lifecycle = SessionLifecycle(app.session_store, policy, audit_log=app.audit_log, clock=clock)
            g.session_lifecycle = lifecycle

        return lifecycle


    def _session(namespace: str) -> NamespacedSessionHandle:

        lifecycle = _current_lifecycle()
        return lifecycle.start(request.cookies.get(lifecycle.policy.name), namespace)


    def _json_body(required: bool) -> typing.Any:

        try:
            raw = request.get_data(cache=True)
        except RequestEntityTooLarge:
            raise SessionError(ApplicationCodes.INVALID_LENGTH, HTTPCodes.PAYLOAD_TOO_LARGE, "Payload exceeds maximum size limit", "body")

        if not raw:
            if required:
                raise SessionError(ApplicationCodes.MALFORMED_JSON, HTTPCodes.BAD_REQUEST, "Request body is required", "body")
            return None

        # Require JSON content type
        content_type = request.headers.get("Content-Type", "").lower()
        if "application/json" not in content_type:
            raise SessionError(ApplicationCodes.INVALID_CONTENT_TYPE, HTTPCodes.BAD_REQUEST, f"Invalid Content-Type header: {content_type}", "Content-Type")

        payload = request.get_json(silent=True)
        if payload is None:
            raise SessionError(ApplicationCodes.MALFORMED_JSON, HTTPCodes.BAD_REQUEST, "Failed to parse JSON body", "body")

        return payload


    """
        Apply every cookie instruction queued by this request's lifecycle.
    """
    @app.after_request
    def apply_session_cookies(response):

        lifecycle = g.get("session_lifecycle")
        if lifecycle is not None:
            for instruction in lifecycle.drain_cookie_instructions():
                _apply_cookie_instruction(response, instruction)

        return response


    ################################################################################################
    # ROUTES
    ################################################################################################

    """
        Return every key of one namespace.
    """
    @app.get("/api/session/<namespace>")
    def read_namespace(namespace: str):
        try:
            handle = _session(namespace)
            packet = app.packet_handler.create_namespace_response_packet(namespace, handle.all())
            return jsonify(packet), HTTPCodes.OK

        except Exception as e:
            clean_packet, status = app.error_handler.handle_server_error(e, context="read_namespace_error")
            return jsonify(clean_packet), status


    """
        Empty one namespace, leaving sibling namespaces untouched.
    """
    @app.delete("/api/session/<namespace>")
    def clear_namespace(namespace: str):
        try:
            _session(namespace).clear()
            return jsonify(app.packet_handler.create_session_response_packet(f"Namespace '{namespace}' cleared.")), HTTPCodes.OK

        except Exception as e:
            clean_packet, status = app.error_handler.handle_server_error(e, context="clear_namespace_error")
            return jsonify(clean_packet), status


    """
        Read one key; absent keys are reported with present=false rather than an error.
    """
    @app.get("/api/session/<namespace>/<key>")
    def read_value(namespace: str, key: str):
        try:
            value = _session(namespace).get(key, _ABSENT)
            present = value is not _ABSENT

            packet = app.packet_handler.create_value_response_packet(namespace, key, present, value if present else None)
            return jsonify(packet), HTTPCodes.OK

        except Exception as e:
            clean_packet, status = app.error_handler.handle_server_error(e, context="read_value_error")
            return jsonify(clean_packet), status


    """
        Store one key from a {"value": ...} JSON body.
    """
    @app.put("/api/session/<namespace>/<key>")
    def write_value(namespace: str, key: str):
        try:
            value = app.packet_handler.parse_set_value_request(_json_body(required=True))

            _session(namespace).set(key, value)

            packet = app.packet_handler.create_value_response_packet(namespace, key, True, value)
            return jsonify(packet), HTTPCodes.OK

        except Exception as e:
            clean_packet, status = app.error_handler.handle_server_error(e, context="write_value_error")
            return jsonify(clean_packet), status


    """
        Remove one key; removing an absent key succeeds.
    """
    @app.delete("/api/session/<namespace>/<key>")
    def remove_value(namespace: str, key: str):
        try:
            _session(namespace).remove(key)

            packet = app.packet_handler.create_value_response_packet(namespace, key, False, None)
            return jsonify(packet), HTTPCodes.OK

        except Exception as e:
            clean_packet, status = app.error_handler.handle_server_error(e, context="remove_value_error")
            return jsonify(clean_packet), status


    """
        Issue a new session identifier, optionally keeping the old record.
    """
    @app.post("/api/session/regenerate")
    def regenerate_session():
        try:
            delete_old_session = app.packet_handler.parse_regenerate_request(_json_body(required=False))

            _session(CONSTANTS._DEFAULT_NAMESPACE)
            _current_lifecycle().regenerate(delete_old_session)

            return jsonify(app.packet_handler.create_session_response_packet("Session identifier regenerated.")), HTTPCodes.OK

        except Exception as e:
            clean_packet, status = app.error_handler.handle_server_error(e, context="regenerate_session_error")
            return jsonify(clean_packet), status


    """
        Destroy the session and invalidate its cookie.
    """
    @app.post("/api/session/destroy")
    def destroy_session():
        try:
            _session(CONSTANTS._DEFAULT_NAMESPACE)
            _current_lifecycle().destroy()

            return jsonify(app.packet_handler.create_session_response_packet("Session destroyed.")), HTTPCodes.OK

        except Exception as e:
            clean_packet, status = app.error_handler.handle_server_error(e, context="destroy_session_error")
            return jsonify(clean_packet), status


    ################################################################################################
    # GLOBAL ERROR HANDLERS
    ################################################################################################

    """
        413 Payload Too Large into a failure packet.
    """
    @app.errorhandler(413)
    def handle_payload_too_large(_e):

        e = SessionError(ApplicationCodes.INVALID_LENGTH, HTTPCodes.PAYLOAD_TOO_LARGE, "Payload exceeds maximum size limit", "body")
        clean_packet, status = app.error_handler.handle_server_error(e, context="payload_too_large")
        return jsonify(clean_packet), status


    """
        Catch-all handler for any unexpected exception raised during request processing.

        @ensures Routing errors keep their HTTP status; everything else is normalized through ErrorHandler.
    """
    @app.errorhandler(Exception)
    def handle_internal_error(e: Exception):

        if isinstance(e, HTTPException):
            return e

        clean_packet, status = app.error_handler.handle_server_error(e, context="global_error_handler")
        return jsonify(clean_packet), status

    return app
