# pasiva/core/logging_utils.py
import logging
import logging.config
import logging.handlers
import json
import pathlib
import datetime as dt
from typing import Dict, Any, Optional, Set

# Attributes from LogRecord that are often included by default or are special
LOG_RECORD_BUILTIN_ATTRS: Set[str] = {
    "args", "asctime", "created", "exc_info", "exc_text", "filename",
    "funcName", "levelname", "levelno", "lineno", "module", "msecs",
    "message", "msg", "name", "pathname", "process", "processName",
    "relativeCreated", "stack_info", "thread", "threadName", "taskName",
}

class JSONFormatter(logging.Formatter):
    """
    Formats a record as one JSON object per line.
    `fmt_keys` maps output keys to LogRecord attributes, e.g. {"level": "levelname"}.
    Anything passed through `extra=` (room_id, player_id, ...) is appended as-is.
    """
    def __init__(self, *, fmt_keys: Optional[Dict[str, str]] = None, datefmt: Optional[str] = None):
        super().__init__(datefmt=datefmt)
        self.fmt_keys = fmt_keys if fmt_keys is not None else {}

    def format(self, record: logging.LogRecord) -> str:
        message = self._prepare_log_dict(record)
        return json.dumps(message, default=str, ensure_ascii=False)

    def _prepare_log_dict(self, record: logging.LogRecord) -> Dict[str, Any]:
        always_fields = {"message": record.getMessage()}

        if self.datefmt:
            always_fields["timestamp"] = self.formatTime(record, self.datefmt)
        else: # ISO format in UTC
            always_fields["timestamp"] = dt.datetime.fromtimestamp(
                record.created, tz=dt.timezone.utc
            ).isoformat()

        if record.exc_info:
            always_fields["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            always_fields["stack_info"] = self.formatStack(record.stack_info)

        message_dict = {}
        for key, record_attr in self.fmt_keys.items():
            if record_attr in always_fields:
                message_dict[key] = always_fields[record_attr]
            else:
                val = getattr(record, record_attr, None)
                if val is not None:
                    message_dict[key] = val

        mapped_attrs = set(self.fmt_keys.values())
        for key, value in always_fields.items():
            if key not in mapped_attrs and key not in message_dict:
                message_dict[key] = value

        # Extra fields that are not part of standard LogRecord attributes
        for key, val in record.__dict__.items():
            if key not in LOG_RECORD_BUILTIN_ATTRS and key not in message_dict and key not in mapped_attrs:
                message_dict[key] = val

        return message_dict


def configure_logging(config_file: pathlib.Path, log_dir: pathlib.Path) -> Optional[logging.handlers.QueueHandler]:
    """
    Loads the dictConfig JSON file and returns the root QueueHandler (if any),
    so the caller can start/stop its listener. Falls back to basicConfig on failure.
    """
    try:
        with open(config_file) as f_in:
            config = json.load(f_in)

        log_dir.mkdir(parents=True, exist_ok=True)
        for handler_cfg in config.get("handlers", {}).values():
            if "filename" in handler_cfg:
                handler_cfg["filename"] = str(log_dir / pathlib.Path(handler_cfg["filename"]).name)

        logging.config.dictConfig(config)
    except FileNotFoundError:
        print(f"ERROR: Logging configuration file not found at {config_file}. Falling back to basic stdout logging.")
        logging.basicConfig(level=logging.INFO, format='%(levelname)-8s [%(name)s] %(message)s')
        return None
    except json.JSONDecodeError as e:
        print(f"ERROR: Failed to parse logging configuration file {config_file}: {e}. Falling back to basic stdout logging.")
        logging.basicConfig(level=logging.INFO, format='%(levelname)-8s [%(name)s] %(message)s')
        return None
    except (ValueError, TypeError, AttributeError, ImportError, OSError) as e:
        print(f"ERROR: Failed to configure logging from file: {e}. Falling back to basic stdout logging.")
        logging.basicConfig(level=logging.INFO, format='%(levelname)-8s [%(name)s] %(message)s')
        return None

    for handler in logging.getLogger().handlers:
        if isinstance(handler, logging.handlers.QueueHandler):
            return handler

    logging.getLogger("pasiva.core.logging_utils").error(
        "QueueHandler not found in root logger. Off-thread logging will not work as intended."
    )
    return None
