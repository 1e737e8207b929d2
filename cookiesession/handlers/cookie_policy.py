#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
    File name: cookie_policy.py

    Description:
        Immutable description of the session cookie: lifetime, idle timeout,
        path, domain, Secure, HttpOnly, SameSite and cookie name. Policies are
        built from the defaults in constants.py merged key-by-key with caller
        overrides and validated once at construction; any invalid value raises
        ConfigurationError. The policy also produces the cookie instructions
        (write and invalidate) that the transport layer applies to responses.
"""


import os
import typing
from dataclasses import dataclass
from datetime import datetime, timedelta
from cookiesession.handlers.error_handler import ConfigurationError, ApplicationCodes
import cookiesession.constants as CONSTANTS
import cookiesession.handlers.sanitization_validation as VALIDATION


####################################################################################################
# Cookie Instruction
####################################################################################################

"""
    A single cookie write or invalidation for the transport layer to apply.

    name      : Cookie name
    value     : Session identifier, or "" for an invalidation
    expires   : Absolute expiry (aware UTC datetime), None for a browser-session cookie
    max_age   : Lifetime in seconds matching expires, None for a browser-session cookie or an invalidation
    path      : Cookie Path attribute
    domain    : Cookie Domain attribute ("" means host-only)
    secure    : Cookie Secure attribute
    httponly  : Cookie HttpOnly attribute
    samesite  : "Strict", "Lax" or "None"
"""
@dataclass(frozen=True)
class CookieInstruction:

    name: str
    value: str
    expires: typing.Optional[datetime]
    max_age: typing.Optional[int]
    path: str
    domain: str
    secure: bool
    httponly: bool
    samesite: str

    @property
    def is_invalidation(self) -> bool:
        return self.value == ""



####################################################################################################
# Cookie Policy
####################################################################################################

"""
    Validated cookie configuration shared by every session started under it.

    lifetime      : Cookie lifetime in seconds (0 = browser-session cookie)
    idle_timeout  : Seconds of inactivity after which a session is abandoned
"""
@dataclass(frozen=True)
class CookiePolicy:

    lifetime: int =         CONSTANTS._DEFAULT_LIFETIME_SECONDS
    idle_timeout: int =     CONSTANTS._DEFAULT_IDLE_TIMEOUT_SECONDS
    path: str =             CONSTANTS._DEFAULT_COOKIE_PATH
    domain: str =           CONSTANTS._DEFAULT_COOKIE_DOMAIN
    secure: bool =          False
    httponly: bool =        CONSTANTS._DEFAULT_COOKIE_HTTPONLY
    samesite: str =         CONSTANTS._DEFAULT_COOKIE_SAMESITE
    name: str =             CONSTANTS._DEFAULT_COOKIE_NAME


    """
        Validate every attribute and normalize the SameSite spelling.

        @ensures ConfigurationError is raised for any invalid attribute; SameSite is stored title-cased.
    """
    def __post_init__(self) -> None:

        # Durations must be real integers (bool is an int subclass)
        if not isinstance(self.lifetime, int) or isinstance(self.lifetime, bool):
            raise ConfigurationError(ApplicationCodes.INVALID_LIFETIME, "lifetime must be an integer number of seconds", "lifetime")
        if self.lifetime < 0:
            raise ConfigurationError(ApplicationCodes.INVALID_LIFETIME, "lifetime must not be negative", "lifetime")

        if not isinstance(self.idle_timeout, int) or isinstance(self.idle_timeout, bool):
            raise ConfigurationError(ApplicationCodes.INVALID_IDLE_TIMEOUT, "idle_timeout must be an integer number of seconds", "idle_timeout")
        if self.idle_timeout <= 0:
            raise ConfigurationError(ApplicationCodes.INVALID_IDLE_TIMEOUT, "idle_timeout must be greater than zero", "idle_timeout")

        # Cookie name must be a non-empty RFC 6265 token
        if not isinstance(self.name, str) or not self.name:
            raise ConfigurationError(ApplicationCodes.INVALID_COOKIE_NAME, "name must be a non-empty string", "name")
        if not CONSTANTS._COOKIE_NAME_RX.fullmatch(self.name):
            raise ConfigurationError(ApplicationCodes.INVALID_COOKIE_NAME, f"name '{self.name}' is not a valid cookie name", "name")

        if not isinstance(self.path, str) or not self.path.startswith("/") or ";" in self.path:
            raise ConfigurationError(ApplicationCodes.INVALID_COOKIE_PATH, "path must start with '/' and must not contain ';'", "path")

        if not isinstance(self.domain, str) or ";" in self.domain or any(c.isspace() for c in self.domain):
            raise ConfigurationError(ApplicationCodes.INVALID_COOKIE_DOMAIN, "domain must be a string without ';' or whitespace", "domain")

        if not isinstance(self.secure, bool):
            raise ConfigurationError(ApplicationCodes.INVALID_CONFIGURATION, "secure must be a boolean", "secure")
        if not isinstance(self.httponly, bool):
            raise ConfigurationError(ApplicationCodes.INVALID_CONFIGURATION, "httponly must be a boolean", "httponly")

        if not isinstance(self.samesite, str):
            raise ConfigurationError(ApplicationCodes.INVALID_SAMESITE, "samesite must be a string", "samesite")

        samesite = self.samesite.strip().capitalize()
        if samesite not in CONSTANTS._ALLOWED_SAMESITE_VALUES:
            raise ConfigurationError(ApplicationCodes.INVALID_SAMESITE, f"samesite must be one of Strict, Lax, None (got '{self.samesite}')", "samesite")

        # Browsers drop SameSite=None cookies that are not Secure
        if samesite == CONSTANTS._SAMESITE_NONE and not self.secure:
            raise ConfigurationError(ApplicationCodes.INSECURE_SAMESITE_NONE, "samesite=None requires secure=True", "samesite")

        object.__setattr__(self, "samesite", samesite)


    @property
    def idle_timeout_delta(self) -> timedelta:
        return timedelta(seconds=self.idle_timeout)


    """
        Build the cookie that hands a session identifier to the client.

        @param session_id (str): Identifier to deliver.
        @param now (datetime): Current aware UTC time.
        @return CookieInstruction: Write instruction; browser-session scoped when lifetime is 0.
    """
    def session_cookie(self, session_id: str, now: datetime) -> CookieInstruction:

        if self.lifetime == 0:
            expires = None
            max_age = None
        else:
            expires = now + timedelta(seconds=self.lifetime)
            max_age = self.lifetime

        return CookieInstruction(
            name=self.name,
            value=session_id,
            expires=expires,
            max_age=max_age,
            path=self.path,
            domain=self.domain,
            secure=self.secure,
            httponly=self.httponly,
            samesite=self.samesite,
        )


    """
        Build the cookie that makes the browser forget the session identifier.

        @param now (datetime): Current aware UTC time.
        @return CookieInstruction: Empty value, expiry in the past, same scope attributes as session_cookie.
    """
    def invalidation_cookie(self, now: datetime) -> CookieInstruction:

        return CookieInstruction(
            name=self.name,
            value="",
            expires=now - timedelta(seconds=CONSTANTS._COOKIE_INVALIDATION_OFFSET_SECONDS),
            max_age=None,
            path=self.path,
            domain=self.domain,
            secure=self.secure,
            httponly=self.httponly,
            samesite=self.samesite,
        )



"""
    Build a CookiePolicy from the defaults merged with caller overrides.

    @param overrides (dict|None): Policy fields to replace; caller values win key-by-key.
    @param tls_active (bool): Whether the current request arrived over TLS; the default for secure.
    @require overrides only names fields listed in _COOKIE_POLICY_FIELDS
    @return CookiePolicy: Validated immutable policy.
    @ensures Unknown keys and invalid values raise ConfigurationError.
"""
def build_cookie_policy(overrides: typing.Optional[dict] = None, tls_active: bool = False) -> CookiePolicy:

    if overrides is None:
        overrides = {}

    if not isinstance(overrides, dict):
        raise ConfigurationError(ApplicationCodes.INVALID_CONFIGURATION, "Cookie policy overrides must be a dict", "overrides")

    unknown = set(overrides.keys()) - CONSTANTS._COOKIE_POLICY_FIELDS
    if unknown:
        raise ConfigurationError(ApplicationCodes.INVALID_CONFIGURATION, f"Unknown cookie policy fields: {', '.join(sorted(unknown))}", "overrides")

    settings = {
        "lifetime": CONSTANTS._DEFAULT_LIFETIME_SECONDS,
        "idle_timeout": CONSTANTS._DEFAULT_IDLE_TIMEOUT_SECONDS,
        "path": CONSTANTS._DEFAULT_COOKIE_PATH,
        "domain": CONSTANTS._DEFAULT_COOKIE_DOMAIN,
        "secure": bool(tls_active),
        "httponly": CONSTANTS._DEFAULT_COOKIE_HTTPONLY,
        "samesite": CONSTANTS._DEFAULT_COOKIE_SAMESITE,
        "name": CONSTANTS._DEFAULT_COOKIE_NAME,
    }
    settings.update(overrides)

    return CookiePolicy(**settings)



"""
    Read cookie policy overrides from COOKIESESSION_* environment variables.

    @param environ (Mapping|None): Environment to read; defaults to os.environ.
    @return dict: Overrides suitable for build_cookie_policy (only variables that are set).
    @ensures Malformed integers or flags raise ConfigurationError.
"""
def load_policy_overrides_from_environ(environ: typing.Optional[typing.Mapping[str, str]] = None) -> dict:

    if environ is None:
        environ = os.environ

    overrides: dict = {}

    for variable, policy_field in CONSTANTS._ENV_POLICY_FIELDS.items():

        raw = environ.get(variable)
        if raw is None:
            continue

        if policy_field in ("lifetime", "idle_timeout"):
            overrides[policy_field] = VALIDATION.coerce_to_int(raw, policy_field)
        elif policy_field in ("secure", "httponly"):
            overrides[policy_field] = VALIDATION.coerce_to_bool(raw, policy_field)
        else:
            overrides[policy_field] = raw.strip()

    return overrides
