#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: packet_handler.py

    Description:
        Provides request-body validation and response-packet construction for
        the session HTTP API. Ensures strict schema enforcement for the
        set-value and regenerate request bodies, and builds the canonical
        success packets for namespace snapshots, single values, and session
        operations (regenerate, destroy, clear).
"""


import typing
from cookiesession.handlers.error_handler import SessionError, ApplicationCodes, HTTPCodes
import cookiesession.handlers.sanitization_validation as VALIDATION


# Fields accepted in a PUT /api/session/<namespace>/<key> body
_SET_VALUE_REQUIRED_FIELDS = {"value"}

# Fields accepted in a POST /api/session/regenerate body
_REGENERATE_ALLOWED_FIELDS = {"delete_old_session"}


####################################################################################################
#                                         Packet Format Handlers
####################################################################################################

"""
    Provides helper methods to validate client request bodies and construct response packets.
    Each packet is returned as a dictionary ready for JSON serialization.
"""
class PacketHandler:

    ################################################################################################
    #                                     GENERIC VALIDATION WRAPPERS
    ################################################################################################

    def _require_object(self, payload: typing.Any, packet_name: str) -> None:
        if not isinstance(payload, dict):
            raise SessionError(ApplicationCodes.INVALID_PACKET_STRUCTURE, HTTPCodes.BAD_REQUEST, f"{packet_name} body must be a JSON object.", "body")

    def _reject_unknown_fields(self, payload: dict, allowed_fields: set, packet_name: str) -> None:
        unknown_fields = set(payload.keys()) - allowed_fields
        if unknown_fields:
            raise SessionError(ApplicationCodes.INVALID_PACKET_STRUCTURE, HTTPCodes.BAD_REQUEST, f"Unknown fields detected in {packet_name}: {', '.join(sorted(unknown_fields))}.", "body")



    ################################################################################################
    #                                       CLIENT REQUEST BODIES
    ################################################################################################

    """
        Validate a set-value request body and return the value to store.

        @param payload (dict): Parsed JSON body, expected as {"value": <any JSON>}.
        @return Any: The value to store.
        @ensures Missing or extra fields raise SessionError(INVALID_PACKET_STRUCTURE).
    """
    def parse_set_value_request(self, payload: typing.Any) -> typing.Any:

        self._require_object(payload, "SetValueRequest")

        for field in _SET_VALUE_REQUIRED_FIELDS:
            if field not in payload:
                raise SessionError(ApplicationCodes.INVALID_PACKET_STRUCTURE, HTTPCodes.BAD_REQUEST, f"Missing required field '{field}' in SetValueRequest.", field)

        self._reject_unknown_fields(payload, _SET_VALUE_REQUIRED_FIELDS, "SetValueRequest")

        return payload["value"]



    """
        Validate a regenerate request body.

        @param payload (dict|None): Parsed JSON body; may be omitted entirely.
        @return bool: delete_old_session flag (defaults to True).
    """
    def parse_regenerate_request(self, payload: typing.Any) -> bool:

        if payload is None:
            return True

        self._require_object(payload, "RegenerateRequest")
        self._reject_unknown_fields(payload, _REGENERATE_ALLOWED_FIELDS, "RegenerateRequest")

        delete_old_session = payload.get("delete_old_session", True)
        if not isinstance(delete_old_session, bool):
            raise SessionError(ApplicationCodes.INVALID_TYPE, HTTPCodes.BAD_REQUEST, "delete_old_session must be a boolean.", "delete_old_session")

        return delete_old_session



    ################################################################################################
    #                                       SERVER RESPONSE PACKETS
    ################################################################################################

    """
        Construct the packet returned for a whole-namespace read.

        @param namespace (str): Namespace name.
        @param data (dict): Snapshot of the namespace.
        @return dict: Success packet with namespace and data.
    """
    def create_namespace_response_packet(self, namespace: str, data: dict) -> dict:
        return {
            "response_status": "success",
            "timestamp": VALIDATION.get_timestamp_iso8601z(),
            "namespace": namespace,
            "data": data,
        }



    """
        Construct the packet returned for a single-key read or write.

        @param present (bool): Whether the key exists after the operation.
        @param value (Any): Stored value, or None when absent.
        @return dict: Success packet with namespace, key, present and value.
    """
    def create_value_response_packet(self, namespace: str, key: str, present: bool, value: typing.Any) -> dict:
        return {
            "response_status": "success",
            "timestamp": VALIDATION.get_timestamp_iso8601z(),
            "namespace": namespace,
            "key": key,
            "present": present,
            "value": value,
        }



    """
        Construct a confirmation packet for a session-level operation.

        @param message (str): Human-readable confirmation.
        @return dict: Success packet with message.
    """
    def create_session_response_packet(self, message: str) -> dict:

        VALIDATION.validate_string(message, ApplicationCodes.INTERNAL_SERVER_ERROR, "message")

        return {
            "response_status": "success",
            "timestamp": VALIDATION.get_timestamp_iso8601z(),
            "message": message,
        }
