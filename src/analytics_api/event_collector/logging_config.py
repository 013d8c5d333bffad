"""Logging estructurado en JSON para el Analytics Collector."""

import json
import logging
import sys
from datetime import datetime, timezone

# Atributos estándar de LogRecord; el resto viene de `extra=`
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class JSONFormatter(logging.Formatter):
    """Emitir logs como JSON, una línea por registro."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def resolve_level(level: str) -> int:
    return _LEVELS.get(level.lower(), logging.INFO)


def configure_logging(level: str = "info") -> logging.Logger:
    """
    Configurar logging del paquete. Idempotente: el handler se instala
    una sola vez por proceso, llamadas posteriores solo ajustan el nivel.
    """
    root = logging.getLogger("analytics_api")
    root.setLevel(resolve_level(level))
    if not any(getattr(h, "_analytics_json", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        handler._analytics_json = True
        root.addHandler(handler)
    root.propagate = False
    return root
