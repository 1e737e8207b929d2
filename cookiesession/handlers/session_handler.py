#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: session_handler.py

    Description:
        Drives the server-side session lifecycle for one request: resolving or
        creating the session identifier, loading state from the injected
        SessionStore, enforcing the idle timeout (destroying an abandoned
        record and restarting under a brand-new identifier), refreshing
        last_activity on every touch, regenerating the identifier against
        session fixation, and destroying the session. Every identity change
        queues a cookie instruction built from the CookiePolicy; the transport
        layer drains and applies them. Load/idle-check/delete sequences run
        inside the store's per-identifier critical section.
"""


from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, List, Optional
from cookiesession.handlers.error_handler import SessionError, ApplicationCodes, HTTPCodes
from cookiesession.handlers.cookie_policy import CookieInstruction, CookiePolicy
from cookiesession.handlers.namespace_handler import NamespacedSessionHandle
from cookiesession.database.session_store import SessionRecord, SessionStore
from cookiesession.utilities.audit_log import AuditLog
import cookiesession.constants as CONSTANTS
import cookiesession.handlers.sanitization_validation as VALIDATION


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


####################################################################################################
# SESSION LIFECYCLE
####################################################################################################

class SessionLifecycle:

    """
        Initialize a lifecycle for one request.

        @param store (SessionStore): Persistence backend shared across requests.
        @param policy (CookiePolicy): Validated cookie policy.
        @param audit_log (AuditLog|None): Structured event log; a default one is created when omitted.
        @param clock (callable|None): Returns the current aware UTC datetime; defaults to datetime.now(timezone.utc).
        @require isinstance(store, SessionStore)
        @require isinstance(policy, CookiePolicy)
        @ensures State is "uninitialized" and no cookie instructions are pending.
    """
    def __init__(self, store: SessionStore, policy: CookiePolicy, audit_log: Optional[AuditLog] = None, clock: Optional[Callable[[], datetime]] = None) -> None:

        if not isinstance(store, SessionStore):
            raise SessionError(ApplicationCodes.INVALID_TYPE, HTTPCodes.INTERNAL_SERVER_ERROR, "SessionLifecycle requires a SessionStore instance", "store")
        if not isinstance(policy, CookiePolicy):
            raise SessionError(ApplicationCodes.INVALID_TYPE, HTTPCodes.INTERNAL_SERVER_ERROR, "SessionLifecycle requires a CookiePolicy instance", "policy")
        if clock is not None and not callable(clock):
            raise SessionError(ApplicationCodes.INVALID_TYPE, HTTPCodes.INTERNAL_SERVER_ERROR, "clock must be callable", "clock")

        self._store: SessionStore = store
        self._policy: CookiePolicy = policy
        self._audit_log: AuditLog = audit_log if audit_log is not None else AuditLog()
        self._clock: Callable[[], datetime] = clock or _utc_now

        self._state: str = CONSTANTS._STATE_UNINITIALIZED
        self._record: Optional[SessionRecord] = None
        self._pending_cookies: List[CookieInstruction] = []


    @property
    def state(self) -> str:
        return self._state

    @property
    def policy(self) -> CookiePolicy:
        return self._policy

    @property
    def session_id(self) -> Optional[str]:
        return self._record.session_id if self._record is not None else None

    @property
    def last_activity(self) -> Optional[datetime]:
        return self._record.last_activity if self._record is not None else None



    """
        Resolve the session for this request and return a handle on one namespace.

        @param incoming_session_id (str|None): Raw session cookie value, or None when the client sent none.
        @param namespace (str): Namespace the returned handle is bound to.
        @return NamespacedSessionHandle: Handle on the active record.
        @ensures Unknown or malformed identifiers start a new session; an idle-expired record is deleted,
                 its cookie invalidated, and a new session started; a live record is touched.
                 Calling start on an active lifecycle returns a handle on the current record.
    """
    def start(self, incoming_session_id: Optional[str] = None, namespace: str = CONSTANTS._DEFAULT_NAMESPACE) -> NamespacedSessionHandle:
        try:
            VALIDATION.validate_namespace(namespace)

            # Idempotent within one request
            if self._state == CONSTANTS._STATE_ACTIVE:
                return NamespacedSessionHandle(self, namespace)

            self._record = None
            now = self._now()

            if VALIDATION.is_well_formed_session_id(incoming_session_id):
                self._resume_or_expire(incoming_session_id, now)

            if self._record is None:
                self._create_record(now)

            return NamespacedSessionHandle(self, namespace)

        except SessionError:
            raise
        except Exception:
            raise SessionError(ApplicationCodes.SESSION_START_ERROR, HTTPCodes.INTERNAL_SERVER_ERROR, "Failed to start session", "session_start")



    """
        Return an additional handle on another namespace of the active record.

        @param namespace (str): Namespace name.
        @return NamespacedSessionHandle: Handle sharing this lifecycle.
    """
    def namespace(self, namespace: str) -> NamespacedSessionHandle:
        VALIDATION.validate_namespace(namespace)
        self._require_active()
        return NamespacedSessionHandle(self, namespace)



    """
        Record activity on the session.

        @ensures If the session went idle since the last touch it is replaced by a new one first;
                 last_activity then becomes max(last_activity, now) and the stored record is updated in place.
    """
    def touch(self) -> None:
        try:
            self._require_active()

            now = self._now()
            self._check_idle(now)
            self._touch_record(now)

        except SessionError:
            raise
        except Exception:
            raise SessionError(ApplicationCodes.SESSION_UPDATE_ERROR, HTTPCodes.INTERNAL_SERVER_ERROR, "Failed to touch session", "last_activity")



    """
        Replace the session identifier with a freshly generated one.

        @param delete_old_session (bool): Remove the old identifier's record in the same store operation.
        @return str: The new session identifier.
        @ensures Namespace contents are preserved, the record is touched, and a cookie for the new id is queued.
    """
    def regenerate(self, delete_old_session: bool = True) -> str:
        try:
            if not isinstance(delete_old_session, bool):
                raise SessionError(ApplicationCodes.INVALID_TYPE, HTTPCodes.BAD_REQUEST, "delete_old_session must be a boolean", "delete_old_session")

            self._require_active()

            now = self._now()
            self._check_idle(now)

            old_session_id = self._record.session_id
            new_session_id = self._store.generate_id()

            with self._store.session_lock(old_session_id):

                # Build the moved record, then commit it in one store operation
                moved = self._record.clone()
                moved.session_id = new_session_id
                moved.last_activity = max(moved.last_activity, now)

                self._store.rekey(old_session_id, moved, delete_old=delete_old_session)

            self._record = moved
            self._pending_cookies.append(self._policy.session_cookie(new_session_id, now))

            self._audit_log.event(event="session_regenerated", session=VALIDATION.session_fingerprint(new_session_id), previous_session=VALIDATION.session_fingerprint(old_session_id), deleted_old=delete_old_session)

            return new_session_id

        except SessionError:
            raise
        except Exception:
            raise SessionError(ApplicationCodes.SESSION_REGENERATE_ERROR, HTTPCodes.INTERNAL_SERVER_ERROR, "Failed to regenerate session identifier", "session_id")



    """
        Destroy the session completely.

        @ensures The record is deleted from the store and only then are its namespaces cleared; an invalidation
                 cookie matching the session cookie's scope is queued and the lifecycle is "destroyed".
        @ensures A failed delete raises and leaves the record and the active state untouched.
    """
    def destroy(self) -> None:
        try:
            self._require_active()

            now = self._now()
            session_id = self._record.session_id

            with self._store.session_lock(session_id):
                self._store.delete(session_id)

            # Cleared only once the delete succeeded
            self._record.namespaces.clear()

            self._pending_cookies.append(self._policy.invalidation_cookie(now))

            self._record = None
            self._state = CONSTANTS._STATE_DESTROYED

            self._audit_log.event(event="session_destroyed", session=VALIDATION.session_fingerprint(session_id))

        except SessionError:
            raise
        except Exception:
            raise SessionError(ApplicationCodes.SESSION_DESTROY_ERROR, HTTPCodes.INTERNAL_SERVER_ERROR, "Failed to destroy session", "session_id")



    """
        Return and forget the cookie instructions queued so far.

        @return list[CookieInstruction]: Instructions in emission order.
    """
    def drain_cookie_instructions(self) -> List[CookieInstruction]:
        pending = self._pending_cookies
        self._pending_cookies = []
        return pending



    ################################################################################################
    #                                   NAMESPACE ACCESS (used by handles)
    ################################################################################################

    """
        Give a handle the live sub-map for one operation, then touch.

        @param namespace (str): Namespace the operation targets.
        @ensures Idle expiry is evaluated before the sub-map is handed out; the record is touched and
                 written back only if the operation completes.
    """
    @contextmanager
    def _namespace_operation(self, namespace: str):

        self._require_active()

        now = self._now()
        self._check_idle(now)

        yield self._record.get_or_create_namespace(namespace)

        self._touch_record(now)



    ################################################################################################
    #                                   INTERNAL STATE TRANSITIONS
    ################################################################################################

    def _now(self) -> datetime:
        now = self._clock()
        if not isinstance(now, datetime) or now.tzinfo is None:
            raise SessionError(ApplicationCodes.INVALID_TIMESTAMP, HTTPCodes.INTERNAL_SERVER_ERROR, "clock must return a timezone-aware datetime", "clock")
        return now


    def _require_active(self) -> None:
        if self._state == CONSTANTS._STATE_DESTROYED:
            raise SessionError(ApplicationCodes.SESSION_DESTROYED, HTTPCodes.GONE, "Session has been destroyed; start a new one", "session")
        if self._state != CONSTANTS._STATE_ACTIVE or self._record is None:
            raise SessionError(ApplicationCodes.SESSION_NOT_STARTED, HTTPCodes.CONFLICT, "Session has not been started", "session")


    def _is_idle_expired(self, record: SessionRecord, now: datetime) -> bool:
        # Strictly greater: idle == idle_timeout is still alive
        return now - record.last_activity > self._policy.idle_timeout_delta


    """
        Load an incoming identifier and either adopt it or expire it.

        @ensures self._record is the loaded record (touched) or None when absent or expired.
    """
    def _resume_or_expire(self, session_id: str, now: datetime) -> None:

        with self._store.session_lock(session_id):

            record = self._store.load(session_id)
            if record is None:
                return

            if self._is_idle_expired(record, now):
                self._expire(record, now)
                return

            record.last_activity = max(record.last_activity, now)

            # Purged between load and touch
            if not self._store.update(record):
                return

            self._record = record
            self._state = CONSTANTS._STATE_ACTIVE

        self._audit_log.event(event="session_resumed", session=VALIDATION.session_fingerprint(session_id))


    """
        Replace the active record if it went idle since it was last touched.

        @ensures A record kept alive by a concurrent request is adopted instead of expired.
    """
    def _check_idle(self, now: datetime) -> None:

        if not self._is_idle_expired(self._record, now):
            return

        session_id = self._record.session_id

        with self._store.session_lock(session_id):

            current = self._store.load(session_id)

            if current is not None and not self._is_idle_expired(current, now):
                self._record = current
                return

            self._expire(current if current is not None else self._record, now)

        self._create_record(now)


    """
        Delete an idle record and queue the invalidation of its cookie.

        @ensures Only the record version observed by the caller is deleted.
    """
    def _expire(self, record: SessionRecord, now: datetime) -> None:

        removed = self._store.delete_if_unchanged(record.session_id, record.last_activity)

        self._pending_cookies.append(self._policy.invalidation_cookie(now))
        self._record = None

        idle_seconds = int((now - record.last_activity).total_seconds())
        self._audit_log.event(event="session_expired", session=VALIDATION.session_fingerprint(record.session_id), idle_seconds=idle_seconds, removed=removed)


    """
        Create, persist and adopt a brand-new record.

        @ensures last_activity == created_at == now and a cookie for the new id is queued.
    """
    def _create_record(self, now: datetime) -> None:

        session_id = self._store.generate_id()
        record = SessionRecord(session_id=session_id, namespaces={}, last_activity=now, created_at=now)

        self._store.save(record)

        self._record = record
        self._state = CONSTANTS._STATE_ACTIVE
        self._pending_cookies.append(self._policy.session_cookie(session_id, now))

        self._audit_log.event(event="session_started", session=VALIDATION.session_fingerprint(session_id))


    """
        Refresh last_activity and write the record back without ever re-inserting it.

        @ensures A record retired elsewhere (regenerated, destroyed or purged) stays gone: its cookie is
                 invalidated and this lifecycle restarts under a brand-new identifier.
    """
    def _touch_record(self, now: datetime) -> None:

        # Never move last_activity backwards
        if now > self._record.last_activity:
            self._record.last_activity = now

        if self._store.update(self._record):
            return

        vanished_session_id = self._record.session_id

        self._pending_cookies.append(self._policy.invalidation_cookie(now))
        self._record = None

        self._audit_log.event(event="session_vanished", session=VALIDATION.session_fingerprint(vanished_session_id))

        self._create_record(now)



####################################################################################################
# GARBAGE COLLECTION
####################################################################################################

"""
    Purge every record that has been idle longer than the policy's idle timeout.

    @param store (SessionStore): Backend to purge.
    @param policy (CookiePolicy): Supplies idle_timeout.
    @param clock (callable|None): Returns the current aware UTC datetime.
    @param audit_log (AuditLog|None): Receives one session_cleanup event when anything was removed.
    @return list[str]: Identifiers removed.
"""
def cleanup_expired_sessions(store: SessionStore, policy: CookiePolicy, clock: Optional[Callable[[], datetime]] = None, audit_log: Optional[AuditLog] = None) -> List[str]:
    try:
        if not isinstance(store, SessionStore):
            raise SessionError(ApplicationCodes.INVALID_TYPE, HTTPCodes.INTERNAL_SERVER_ERROR, "cleanup_expired_sessions requires a SessionStore instance", "store")

        now = (clock or _utc_now)()
        removed = store.purge_idle(now - policy.idle_timeout_delta)

        if removed and audit_log is not None:
            audit_log.event(event="session_cleanup", removed=len(removed), sessions=[VALIDATION.session_fingerprint(sid) for sid in removed])

        return removed

    except SessionError:
        raise
    except Exception:
        raise SessionError(ApplicationCodes.SESSION_CLEANUP_ERROR, HTTPCodes.INTERNAL_SERVER_ERROR, "Failed during bulk expiration cleanup", "session_cleanup")
