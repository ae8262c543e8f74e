# docschema/logs.py
import os, json, uuid, logging, datetime, traceback
from typing import Any, Dict, Optional, Union

from docschema.errors import ClassifiedError

logger = logging.getLogger(__name__)

ERROR_LOG = os.getenv("DOCSCHEMA_ERROR_LOG")


def _nowz() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")


class JsonLinesFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "time": _nowz(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["traceback"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(level: Union[int, str] = "INFO", json_lines: bool = False) -> logging.Handler:
    """Attach one stream handler to the docschema logger tree and return it."""
    handler = logging.StreamHandler()
    if json_lines:
        handler.setFormatter(JsonLinesFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger("docschema")
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    return handler


def log_exception(exc: BaseException, context: Optional[dict] = None, path: Optional[str] = None) -> str:
    """Write full traceback + context to the error log (if one is configured) and return a unique id."""
    err_id = f"err_{uuid.uuid4().hex[:8]}"
    entry = {
        "id": err_id,
        "time": _nowz(),
        "context": context or {},
        "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        "exc_str": str(exc),
    }
    if isinstance(exc, ClassifiedError):
        entry["error"] = exc.to_dict()
    logger.error("%s: %s", err_id, exc)

    path = path or ERROR_LOG
    if path:
        try:
            with open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        except OSError as e:
            logger.error("failed to write error log %s: %s", path, e)
    return err_id
