#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: session_store.py

    Description:
        Defines the SessionRecord persisted for every session and the
        SessionStore capability consumed by the lifecycle: load, save, delete,
        atomic compare-and-delete, atomic re-keying, idle purge, identifier
        generation from the OS CSPRNG, and per-identifier critical sections.
        Also provides InMemorySessionStore, a thread-safe in-process backend
        that stores deep copies so load/save behave like real persistence.
"""


import copy
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from cookiesession.handlers.error_handler import SessionError, StoreUnavailable, ApplicationCodes, HTTPCodes
import cookiesession.constants as CONSTANTS
import cookiesession.handlers.sanitization_validation as VALIDATION

####################################################################################################
# Session Record
####################################################################################################

"""
    Represents all server-side state for a single session.

    session_id     : Opaque identifier delivered to the client in the session cookie
    namespaces     : Mapping of namespace name -> mapping of key -> JSON-serializable value
    last_activity  : UTC datetime of the most recent touch
    created_at     : UTC datetime when this record was created
"""
@dataclass
class SessionRecord:

    session_id: str
    namespaces: Dict[str, Dict[str, Any]] =  field(default_factory=dict)
    last_activity: datetime =                       field(default_factory=lambda: datetime.now(timezone.utc))
    created_at: datetime =                          field(default_factory=lambda: datetime.now(timezone.utc))


    """
        Return the sub-map for a namespace, allocating an empty one on first access.

        @param namespace (str): Namespace name.
        @return dict: The live sub-map owned by this record.
    """
    def get_or_create_namespace(self, namespace: str) -> Dict[str, Any]:
        return self.namespaces.setdefault(namespace, {})


    def clone(self) -> "SessionRecord":
        return copy.deepcopy(self)



####################################################################################################
# SESSION STORE CAPABILITY
####################################################################################################

"""
    Base class for session persistence backends.

    Subclasses implement load, save, update, delete, delete_if_unchanged, rekey and purge_idle.
    Identifier generation and the in-process per-identifier locks are shared.
    load returns None for an unknown identifier; backend failures raise StoreUnavailable.
"""
class SessionStore:

    def __init__(self) -> None:

        # Guards the registry of per-session locks
        self._registry_lock = threading.Lock()

        # session_id -> [RLock, number of holders or waiters]
        self._session_locks: Dict[str, list] = {}


    """
        Generate a fresh session identifier.

        @return str: 43-character base64url encoding of 32 bytes from os.urandom (256 bits of entropy).
        @ensures Entropy failure raises SessionError(ID_GENERATION_ERROR); never degrades to a predictable id.
    """
    def generate_id(self) -> str:
        try:
            raw = os.urandom(CONSTANTS._SESSION_ID_BYTES)

            if not isinstance(raw, bytes) or len(raw) != CONSTANTS._SESSION_ID_BYTES:
                raise SessionError(ApplicationCodes.ID_GENERATION_ERROR, HTTPCodes.INTERNAL_SERVER_ERROR, "CSPRNG returned an unexpected number of bytes", "session_id")

            session_id = VALIDATION.encode_bytes_to_base64url(raw)

            if not VALIDATION.is_well_formed_session_id(session_id):
                raise SessionError(ApplicationCodes.ID_GENERATION_ERROR, HTTPCodes.INTERNAL_SERVER_ERROR, "Generated session identifier is malformed", "session_id")

            return session_id

        except SessionError:
            raise
        except Exception:
            raise SessionError(ApplicationCodes.ID_GENERATION_ERROR, HTTPCodes.INTERNAL_SERVER_ERROR, "Secure random source unavailable for session identifier", "session_id")


    """
        Hold the critical section for one session identifier.

        @param session_id (str): Identifier whose load/idle-check/delete sequence must not interleave.
        @ensures Re-entrant for the owning thread; registry entries are dropped once no thread needs them.
    """
    @contextmanager
    def session_lock(self, session_id: str):

        with self._registry_lock:
            entry = self._session_locks.get(session_id)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._session_locks[session_id] = entry
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._registry_lock:
                entry[1] -= 1
                if entry[1] == 0:
                    self._session_locks.pop(session_id, None)


    def load(self, session_id: str) -> Optional[SessionRecord]:
        raise NotImplementedError

    def save(self, record: SessionRecord) -> None:
        raise NotImplementedError

    def update(self, record: SessionRecord) -> bool:
        raise NotImplementedError

    def delete(self, session_id: str) -> bool:
        raise NotImplementedError

    def delete_if_unchanged(self, session_id: str, last_activity: datetime) -> bool:
        raise NotImplementedError

    def rekey(self, old_session_id: str, record: SessionRecord, delete_old: bool = True) -> None:
        raise NotImplementedError

    def purge_idle(self, cutoff: datetime) -> List[str]:
        raise NotImplementedError


    def _validate_session_id(self, session_id: Any, field_name: str = "session_id") -> None:
        VALIDATION.validate_string(session_id, ApplicationCodes.INVALID_TYPE, field_name)


    def _validate_record(self, record: Any) -> None:
        if not isinstance(record, SessionRecord):
            raise SessionError(ApplicationCodes.INVALID_RECORD, HTTPCodes.INTERNAL_SERVER_ERROR, "Session store requires a SessionRecord", "record")
        self._validate_session_id(record.session_id)



####################################################################################################
# IN-MEMORY BACKEND
####################################################################################################

class InMemorySessionStore(SessionStore):

    """
        Initialize an empty in-process store.

        @ensures Records are kept in a dictionary guarded by a re-entrant lock.
    """
    def __init__(self) -> None:
        super().__init__()

        # Re-entrant lock for every read and mutation of the record map
        self._lock = threading.RLock()

        # session_id -> SessionRecord (private copies)
        self._records: Dict[str, SessionRecord] = {}


    """
        Load a copy of the record stored under session_id.

        @param session_id (str): Identifier to look up.
        @return SessionRecord | None: Independent copy, or None when absent.
    """
    def load(self, session_id: str) -> Optional[SessionRecord]:
        try:
            self._validate_session_id(session_id)

            with self._lock:
                record = self._records.get(session_id)
                return record.clone() if record is not None else None

        except SessionError:
            raise
        except Exception:
            raise StoreUnavailable("Failed to load session record", "session_load")


    """
        Upsert a copy of the record under its session_id.

        @param record (SessionRecord): Record to persist.
        @ensures Later mutation of the caller's object does not change the stored state.
    """
    def save(self, record: SessionRecord) -> None:
        try:
            self._validate_record(record)

            with self._lock:
                self._records[record.session_id] = record.clone()

        except SessionError:
            raise
        except Exception:
            raise StoreUnavailable("Failed to save session record", "session_save")


    """
        Overwrite an existing record; never inserts.

        @param record (SessionRecord): Record to persist.
        @return bool: False when no record exists under record.session_id.
        @ensures A retired or purged identifier stays absent.
    """
    def update(self, record: SessionRecord) -> bool:
        try:
            self._validate_record(record)

            with self._lock:
                if record.session_id not in self._records:
                    return False

                self._records[record.session_id] = record.clone()
                return True

        except SessionError:
            raise
        except Exception:
            raise StoreUnavailable("Failed to update session record", "session_update")


    """
        Delete the record stored under session_id.

        @return bool: True if a record was removed.
    """
    def delete(self, session_id: str) -> bool:
        try:
            self._validate_session_id(session_id)

            with self._lock:
                return self._records.pop(session_id, None) is not None

        except SessionError:
            raise
        except Exception:
            raise StoreUnavailable("Failed to delete session record", "session_delete")


    """
        Delete the record only if its last_activity still equals the observed value.

        @param session_id (str): Identifier to delete.
        @param last_activity (datetime): last_activity the caller observed when it loaded the record.
        @return bool: True if this call removed the record.
    """
    def delete_if_unchanged(self, session_id: str, last_activity: datetime) -> bool:
        try:
            self._validate_session_id(session_id)

            with self._lock:
                record = self._records.get(session_id)
                if record is None or record.last_activity != last_activity:
                    return False

                del self._records[session_id]
                return True

        except SessionError:
            raise
        except Exception:
            raise StoreUnavailable("Failed to conditionally delete session record", "session_delete")


    """
        Move a record to a new identifier in one step.

        @param old_session_id (str): Identifier being retired.
        @param record (SessionRecord): Record already carrying the new session_id.
        @param delete_old (bool): Remove the old identifier's record in the same step.
        @ensures With delete_old, no reader can observe both identifiers.
    """
    def rekey(self, old_session_id: str, record: SessionRecord, delete_old: bool = True) -> None:
        try:
            self._validate_session_id(old_session_id, "old_session_id")
            self._validate_record(record)

            with self._lock:
                if delete_old:
                    self._records.pop(old_session_id, None)

                self._records[record.session_id] = record.clone()

        except SessionError:
            raise
        except Exception:
            raise StoreUnavailable("Failed to move session record to a new identifier", "session_rekey")


    """
        Remove every record idle since before cutoff.

        @param cutoff (datetime): Records with last_activity < cutoff are removed.
        @return list[str]: Identifiers removed.
    """
    def purge_idle(self, cutoff: datetime) -> List[str]:
        try:
            with self._lock:
                expired = [sid for sid, record in self._records.items() if record.last_activity < cutoff]

                for session_id in expired:
                    del self._records[session_id]

                return expired

        except SessionError:
            raise
        except Exception:
            raise StoreUnavailable("Failed to purge idle session records", "session_purge")


    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
