import logging
import json
from datetime import datetime
from typing import Any, Dict

from config import settings

class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        # Adicionar campos extras
        if hasattr(record, 'extra_data'):
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)

def setup_logging():
    logger = logging.getLogger("judsync")
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler()
        if settings.LOG_FORMAT == "json":
            handler.setFormatter(JSONFormatter())
        else:
            handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logger.addHandler(handler)

    return logger

logger = setup_logging()

def _emit(level: int, msg: str, extra_data: Dict[str, Any]):
    if not logger.isEnabledFor(level):
        return
    record = logging.LogRecord(
        name="judsync", level=level, pathname="", lineno=0,
        msg=msg, args=(), exc_info=None
    )
    record.extra_data = extra_data
    logger.handle(record)

def log_source_result(source: str, count: int, error: str = None, elapsed_ms: int = 0):
    _emit(
        logging.WARNING if error else logging.INFO,
        f"Fonte {source}: {'erro' if error else f'{count} registros'}",
        {
            "event": "source_result",
            "source": source,
            "count": count,
            "error": error,
            "elapsed_ms": elapsed_ms
        }
    )

def log_write_decision(process_id: str, written: bool, reason: str):
    _emit(logging.DEBUG, "Decisão de escrita", {
        "event": "write_decision",
        "process_id": process_id,
        "written": written,
        "reason": reason
    })

def log_sync_finished(tribunal: str, status: str, written: int, skipped: int, errors: int):
    _emit(
        logging.ERROR if status == "error" else logging.INFO,
        f"Sync {tribunal} finalizado: {status}",
        {
            "event": "sync_finished",
            "tribunal": tribunal,
            "status": status,
            "written": written,
            "skipped": skipped,
            "errors": errors
        }
    )

def log_error(error: Exception, context: Dict[str, Any] = None):
    logger.error(
        f"Erro: {str(error)}",
        extra={
            "extra_data": {
                "event": "error",
                "error_type": type(error).__name__,
                "context": context or {}
            }
        },
        exc_info=True
    )
