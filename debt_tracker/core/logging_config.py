import json
import logging
from datetime import datetime, timezone

# Campos que los servicios pasan por `extra=` y que queremos en cada línea
_CONTEXT_FIELDS = ("action", "user_id", "debt_id", "transaction_id", "amount")


class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "debt_tracker") -> logging.Logger:
    """Configura el logger raíz del paquete con salida JSON a consola."""
    logger = logging.getLogger(logger_name)

    # Evitar handlers duplicados si el lifespan corre más de una vez
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False

    return logger
