#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: namespace_handler.py

    Description:
        Per-request facade over one namespace of the active session record.
        Every operation (get, set, has, remove, all, clear) goes through the
        owning SessionLifecycle, which evaluates idle expiry first and touches
        the record afterwards. Values cross the boundary as deep copies so no
        caller can mutate session state without a touch.
"""


import copy
import typing
import cookiesession.handlers.sanitization_validation as VALIDATION


_MISSING = object()


class NamespacedSessionHandle:

    """
        Bind a handle to one namespace of a lifecycle.

        @param lifecycle (SessionLifecycle): Owning lifecycle; resolves the current record on every call.
        @param namespace (str): Namespace name, already validated by the lifecycle.
    """
    def __init__(self, lifecycle, namespace: str) -> None:
        self._lifecycle = lifecycle
        self._namespace = namespace


    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def session_id(self) -> typing.Optional[str]:
        return self._lifecycle.session_id


    """
        Get a session value.

        @param key (str): Key inside this namespace.
        @param default (Any): Returned when the key is absent.
        @return Any: Copy of the stored value, or default.
    """
    def get(self, key: str, default: typing.Any = None) -> typing.Any:
        VALIDATION.validate_key(key)

        with self._lifecycle._namespace_operation(self._namespace) as data:
            value = data.get(key, _MISSING)

        if value is _MISSING:
            return default
        return copy.deepcopy(value)


    """
        Set a session value.

        @param key (str): Key inside this namespace.
        @param value (Any): JSON-serializable value; stored as a copy.
    """
    def set(self, key: str, value: typing.Any) -> None:
        VALIDATION.validate_key(key)
        VALIDATION.validate_json_serializable(value, "value")

        with self._lifecycle._namespace_operation(self._namespace) as data:
            data[key] = copy.deepcopy(value)


    def has(self, key: str) -> bool:
        VALIDATION.validate_key(key)

        with self._lifecycle._namespace_operation(self._namespace) as data:
            return key in data


    """
        Remove a session key; a missing key is a no-op.
    """
    def remove(self, key: str) -> None:
        VALIDATION.validate_key(key)

        with self._lifecycle._namespace_operation(self._namespace) as data:
            data.pop(key, None)


    """
        Get all session data for this namespace.

        @return dict: Deep copy of the namespace.
    """
    def all(self) -> typing.Dict[str, typing.Any]:
        with self._lifecycle._namespace_operation(self._namespace) as data:
            return copy.deepcopy(data)


    """
        Clear all session data for this namespace; sibling namespaces are untouched.
    """
    def clear(self) -> None:
        with self._lifecycle._namespace_operation(self._namespace) as data:
            data.clear()
