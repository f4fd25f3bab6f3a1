"""Scrub credentials out of anything that may reach a log line or summary file.

Three things leak in practice during a backup run: request headers echoed in
download errors, the Google session cookies the browser carries, and signed
media URLs whose query string grants access on its own.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

REDACTED = "<REDACTED>"

SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "proxyauthorization",
        "cookie",
        "cookies",
        "setcookie",
        "password",
        "accesstoken",
        "refreshtoken",
        "token",
        "storagestate",
    }
)

_ASSIGNMENT_RE = re.compile(
    r"(?i)\b(authorization|set-cookie|cookie|password|access[-_]?token|refresh[-_]?token|token)"
    r"(\s*[:=]\s*)"
    r"(\"[^\"]*\"|'[^']*'|Bearer\s+[^,\s]+|[^,\s]+)"
)
_BEARER_RE = re.compile(r"(?i)\bBearer\s+[^\s,\"']+")
# Google account cookies: SID, HSID, SSID, APISID, SAPISID, __Secure-1PSID, __Secure-3PSIDTS, ...
_GOOGLE_COOKIE_RE = re.compile(
    r"(?<![A-Za-z0-9])((?:__Secure-|__Host-)?(?:[0-9]P)?(?:[HS]|API|SAPI)?SID[A-Z]*)=([^;\s]+)"
)
_OAUTH_TOKEN_RE = re.compile(r"ya29\.[A-Za-z0-9_-]{20,}")
_JWT_RE = re.compile(r"eyJ[a-zA-Z0-9_-]{10,}\.[a-zA-Z0-9._-]{10,}\.[a-zA-Z0-9._-]{10,}")
_URL_SECRET_PARAM_RE = re.compile(r"(?i)([?&](?:access_token|token|sig|signature|key)=)[^&#\s]+")


def _normalize_key(key: str) -> str:
    return re.sub(r"[^a-z0-9]", "", key.lower())


def is_sensitive_key(key: str) -> bool:
    return _normalize_key(key) in SENSITIVE_KEYS


class SecretStr:
    """Holds a credential; ``str()`` and ``repr()`` both render ``<REDACTED>``.

    Call ``reveal()`` only where the value is handed to a client.
    """

    __slots__ = ("_value",)

    def __init__(self, value: Any) -> None:
        self._value = "" if value is None else str(value)

    def reveal(self) -> str:
        return self._value

    def __bool__(self) -> bool:
        return bool(self._value)

    def __repr__(self) -> str:
        return REDACTED

    __str__ = __repr__

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SecretStr) and self._value == other._value

    def __hash__(self) -> int:
        return hash(("SecretStr", self._value))


def _redact_assignment(match: re.Match[str]) -> str:
    key, separator, value = match.groups()
    if len(value) >= 2 and value[0] in "'\"" and value[-1] == value[0]:
        return f"{key}{separator}{value[0]}{REDACTED}{value[0]}"
    return f"{key}{separator}{REDACTED}"


def redact_string(text: str) -> str:
    text = _ASSIGNMENT_RE.sub(_redact_assignment, text)
    text = _BEARER_RE.sub(f"Bearer {REDACTED}", text)
    text = _GOOGLE_COOKIE_RE.sub(lambda match: f"{match.group(1)}={REDACTED}", text)
    text = _OAUTH_TOKEN_RE.sub(REDACTED, text)
    text = _JWT_RE.sub(REDACTED, text)
    return _URL_SECRET_PARAM_RE.sub(lambda match: match.group(1) + REDACTED, text)


def _is_browser_cookie(value: Mapping[str, Any]) -> bool:
    return "name" in value and "value" in value and "domain" in value


def redact_structure(value: Any) -> Any:
    """Recursively redact strings and sensitive keys in dicts, lists and tuples."""
    if isinstance(value, (SecretStr, int, float, bool)) or value is None:
        return value
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, Mapping):
        if _is_browser_cookie(value):
            return {**{k: redact_structure(v) for k, v in value.items()}, "value": SecretStr(value["value"])}
        return {
            key: SecretStr(item) if is_sensitive_key(str(key)) else redact_structure(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(redact_structure(item) for item in value)
    return value


def redact_headers(headers: Mapping[str, Any]) -> dict[str, Any]:
    """Header mapping safe to log; secret headers become ``SecretStr``."""
    return {
        key: SecretStr(value) if is_sensitive_key(str(key)) else redact_structure(value)
        for key, value in headers.items()
    }
