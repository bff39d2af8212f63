import json
import logging

# Record attributes passed through ``extra=`` that are worth keeping in the JSON log.
CONTEXT_FIELDS = ("session_id", "user_id", "conversation_id", "external_conversation_id", "task_id")


class JsonFormatter(logging.Formatter):
    """Format log records as one JSON object per line, including routing context."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record, self.datefmt or "%Y-%m-%d %H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "module": record.module,
            "funcName": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        context = {
            field: getattr(record, field)
            for field in CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        }
        if context:
            log_entry["context"] = context

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)
