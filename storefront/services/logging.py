import json
import logging
import sys
from datetime import datetime, timezone

_logger = logging.getLogger("storefront")


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a stdout handler to the storefront logger (idempotent)."""
    if not any(getattr(h, "_storefront", False) for h in _logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler._storefront = True  # type: ignore[attr-defined]
        _logger.addHandler(handler)
    _logger.setLevel(getattr(logging, (level or "INFO").upper(), logging.INFO))
    return _logger


def log_event(level: str, event: str, **fields) -> None:
    payload = {
        "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "level": level.lower(),
        "event": event,
    }
    payload.update(fields or {})
    _logger.log(
        getattr(logging, level.upper(), logging.INFO),
        json.dumps(payload, ensure_ascii=False, default=str),
    )
