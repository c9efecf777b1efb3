import json
import logging
import os
from datetime import datetime, timezone
from typing import Any

REDACTED = "[REDACTED]"

# Substrings that mark a key as secret (ledger keys, bearer headers, ...).
_SECRET_MARKERS = ("token", "authorization", "api_key", "apikey", "secret", "password")
# Payment display tokens are not credentials.
_NON_SECRET_TOKEN_KEYS = frozenset({"receiver_token"})

# Extras promoted from ``logger.info(..., extra={...})`` into the JSON envelope.
_STRUCTURED_EXTRACT_FIELDS: tuple[str, ...] = (
    "transfer_id",
    "transfer_hash",
    "phase",
    "synced",
    "failed",
    "is_online",
)

_LIBRARY_LEVEL_ENV: dict[str, str] = {
    "httpx": "HTTPX_LOG_LEVEL",
    "httpcore": "HTTPX_LOG_LEVEL",
    "apscheduler": "APSCHEDULER_LOG_LEVEL",
    "aiosqlite": "AIOSQLITE_LOG_LEVEL",
    "sqlalchemy.engine": "SQLALCHEMY_LOG_LEVEL",
}


class StructuredJsonFormatter(logging.Formatter):
    """Emit each record as a single-line JSON envelope.

    Envelope keys: ``ts`` (UTC, millisecond precision, ``Z`` suffix),
    ``level``, ``logger``, ``message``, the sync extras listed in
    ``_STRUCTURED_EXTRACT_FIELDS`` when present, and ``exc`` for records
    carrying exception info.

    A message that is itself a JSON object (e.g. a logged ledger request body)
    is re-encoded with secret-looking keys masked at every nesting level.

    Installed on stdout handlers when ``OBS_LOG_FORMAT=json``.
    """

    def format(self, record: logging.LogRecord) -> str:
        envelope: dict[str, Any] = {
            "ts": _utc_timestamp(record.created),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": _redacted_message(_safe_message(record)),
        }
        for name in _STRUCTURED_EXTRACT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                envelope[name] = value
        if record.exc_info:
            envelope["exc"] = self.formatException(record.exc_info)
        return json.dumps(envelope, ensure_ascii=False, default=str)


def configure_logging(*, default_level: str | int = "INFO") -> None:
    """Set up root logging for an offlinepay process.

    ``LOG_LEVEL`` overrides *default_level*. HTTP, scheduler and database
    libraries stay at WARNING unless their ``*_LOG_LEVEL`` variable is set.
    """
    logging.basicConfig(level=_coerce_level(os.getenv("LOG_LEVEL", default_level)))
    if _json_logging_enabled():
        _install_json_formatter()

    for logger_name, env_var in _LIBRARY_LEVEL_ENV.items():
        level = _coerce_level(os.getenv(env_var, "WARNING"))
        logging.getLogger(logger_name).setLevel(level)


def _json_logging_enabled() -> bool:
    return os.getenv("OBS_LOG_FORMAT", "").strip().lower() == "json"


def _install_json_formatter() -> None:
    # Idempotent: handlers already using the JSON formatter are left alone.
    formatter = StructuredJsonFormatter()
    for handler in logging.root.handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(
            handler.formatter, StructuredJsonFormatter
        ):
            handler.setFormatter(formatter)


def _utc_timestamp(created: float) -> str:
    stamp = datetime.fromtimestamp(created, tz=timezone.utc)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _safe_message(record: logging.LogRecord) -> str:
    try:
        return record.getMessage()
    except (TypeError, ValueError) as exc:
        # Mismatched %-args must not take the logging call down with them.
        return f"[unformattable:{type(exc).__name__}] {record.msg!r}"


def _redacted_message(message: str) -> str:
    if not message.startswith("{"):
        return message
    try:
        payload = json.loads(message)
    except ValueError:
        return message
    if not isinstance(payload, dict):
        return message
    return json.dumps(_redact(payload), ensure_ascii=False, default=str)


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: REDACTED if _key_is_sensitive(str(key)) else _redact(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_redact(item) for item in value]
    return value


def _coerce_level(value: str | int) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName((value or "").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _key_is_sensitive(key: str) -> bool:
    lowered = key.strip().lower()
    if lowered in _NON_SECRET_TOKEN_KEYS:
        return False
    return any(marker in lowered for marker in _SECRET_MARKERS)


__all__ = ["REDACTED", "StructuredJsonFormatter", "configure_logging"]
