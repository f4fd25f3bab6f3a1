from __future__ import annotations

import json
import logging

from backup_core.logging_config import (
    JsonFormatter,
    LogContext,
    TextFormatter,
    clear_log_context,
    get_log_context,
    set_log_context,
)
from backup_core.redaction import REDACTED, SecretStr, redact_headers, redact_string, redact_structure


def _record(msg: str, args: tuple = ()) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )


def test_text_formatter_redacts_sensitive_headers() -> None:
    formatter = TextFormatter()
    record = _record(
        "Headers: %s",
        ({"Cookie": "SID=abc123secret", "Authorization": "Bearer tok-999", "User-Agent": "backup"},),
    )
    output = formatter.format(record)
    assert "abc123secret" not in output
    assert "tok-999" not in output
    assert "backup" in output
    assert REDACTED in output


def test_json_formatter_redacts_inline_tokens() -> None:
    formatter = JsonFormatter()
    record = _record("Authorization: Bearer abc123 token=xyz456 password=hunter2")
    payload = json.loads(formatter.format(record))
    message = payload["message"]
    assert "abc123" not in message
    assert "xyz456" not in message
    assert "hunter2" not in message
    assert REDACTED in message


def test_google_session_cookies_are_redacted() -> None:
    text = "cookie header was __Secure-3PSID=g.a000abcdef; and ya29.a0AfH6SMBxxxxxxxxxxxxxxxxxxxx"
    redacted = redact_string(text)
    assert "g.a000abcdef" not in redacted
    assert "ya29.a0AfH6SMB" not in redacted


def test_json_formatter_includes_context() -> None:
    formatter = JsonFormatter()
    set_log_context(collection="Grupo", unit_id="p1", storage_state="/secret/state.json")
    try:
        payload = json.loads(formatter.format(_record("hello")))
    finally:
        clear_log_context()
    assert payload["context"]["collection"] == "Grupo"
    assert payload["context"]["unit_id"] == "p1"
    assert payload["context"]["storage_state"] == REDACTED


def test_text_formatter_appends_context_suffix() -> None:
    formatter = TextFormatter()
    with LogContext(collection="Grupo", unit_id="p1"):
        output = formatter.format(_record("processing"))
    assert output.endswith("[collection=Grupo unit_id=p1]")


def test_log_context_nests_and_restores() -> None:
    clear_log_context()
    with LogContext(collection="Grupo"):
        with LogContext(strategy="direct"):
            assert get_log_context() == {"collection": "Grupo", "strategy": "direct"}
        assert get_log_context() == {"collection": "Grupo"}
    assert get_log_context() == {}


def test_secret_str_and_headers() -> None:
    secret = SecretStr("hunter2")
    assert str(secret) == REDACTED
    assert secret.reveal() == "hunter2"
    headers = redact_headers({"Set-Cookie": "a=b", "Accept": "*/*"})
    assert str(headers["Set-Cookie"]) == REDACTED
    assert headers["Accept"] == "*/*"


def test_google_account_cookie_family() -> None:
    text = "SID=aaa; HSID=bbb; APISID=ccc; SAPISID=ddd; __Secure-1PSIDTS=eee; NID=keep"
    redacted = redact_string(text)
    for value in ("aaa", "bbb", "ccc", "ddd", "eee"):
        assert f"={value}" not in redacted
    assert "NID=keep" in redacted


def test_signed_url_parameters_are_redacted() -> None:
    url = "https://lh3.googleusercontent.com/pw/abc=d?sig=s3cr3t&authuser=0"
    redacted = redact_string(url)
    assert "s3cr3t" not in redacted
    assert "authuser=0" in redacted


def test_browser_cookie_records_keep_metadata() -> None:
    cookie = {"name": "SID", "value": "g.a000xyz", "domain": ".google.com", "path": "/"}
    redacted = redact_structure({"cookies_seen": [cookie]})
    [entry] = redacted["cookies_seen"]
    assert str(entry["value"]) == REDACTED
    assert entry["domain"] == ".google.com"


def test_text_formatter_survives_mismatched_args() -> None:
    output = TextFormatter().format(_record("two %s %s", ("only-one",)))
    assert "only-one" in output
