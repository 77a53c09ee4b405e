"""
Logging setup for Ezzi.

Console output is plain text; the rotating files under the logs directory
hold one JSON object per line. Bearer tokens and inline image payloads are
masked before anything is written.
"""

import json
import logging
import logging.handlers
import re
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional

LOG_FILE_NAME = 'ezzi.log'
ERROR_LOG_FILE_NAME = 'ezzi-errors.log'

_STANDARD_ATTRS = frozenset((
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'exc_info', 'exc_text',
    'stack_info', 'taskName', 'message',
))

_BEARER_RE = re.compile(r'(Bearer\s+)[A-Za-z0-9._~+/=-]+')
# long unbroken base64 runs are screenshot payloads
_BASE64_RE = re.compile(r'[A-Za-z0-9+/]{200,}={0,2}')


def redact(text: str) -> str:
    """Mask bearer tokens and base64 image data in ``text``."""
    text = _BEARER_RE.sub(r'\1***', text)
    return _BASE64_RE.sub(lambda m: f'<base64 {len(m.group(0))} chars>', text)


class RedactingFilter(logging.Filter):
    """Rewrites the record message so secrets never reach a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, including any ``extra=`` fields."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.threadName,
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def cleanup_old_logs(log_dir: Path, retention_days: int) -> int:
    """
    Delete rotated Ezzi log files older than ``retention_days``.

    Returns:
        Number of files removed
    """
    cutoff = datetime.now() - timedelta(days=retention_days)
    removed = 0
    for pattern in (f'{LOG_FILE_NAME}.*', f'{ERROR_LOG_FILE_NAME}.*'):
        for log_file in log_dir.glob(pattern):
            try:
                if datetime.fromtimestamp(log_file.stat().st_mtime) < cutoff:
                    log_file.unlink()
                    removed += 1
            except OSError as e:
                print(f"Failed to clean up log file {log_file}: {e}", file=sys.stderr)
    return removed


def _rotating_handler(path: Path, level: int, retention_days: int) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        str(path), when='midnight', interval=1, backupCount=retention_days, encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(RedactingFilter())
    return handler


def setup_logging(debug: bool = False, log_dir: Optional[str] = None, retention_days: int = 10) -> Path:
    """
    Configure the root logger.

    Args:
        debug: Log at DEBUG instead of INFO
        log_dir: Directory for log files (defaults to the per-user logs dir)
        retention_days: Days of rotated files to keep

    Returns:
        The directory the log files are written to
    """
    if log_dir:
        log_dir_path = Path(log_dir)
        log_dir_path.mkdir(parents=True, exist_ok=True)
    else:
        from ...utils.config_paths import get_logs_dir
        log_dir_path = get_logs_dir()

    level = logging.DEBUG if debug else logging.INFO
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    console_handler.addFilter(RedactingFilter())
    root_logger.addHandler(console_handler)

    root_logger.addHandler(_rotating_handler(log_dir_path / LOG_FILE_NAME, logging.DEBUG, retention_days))
    root_logger.addHandler(_rotating_handler(log_dir_path / ERROR_LOG_FILE_NAME, logging.ERROR, retention_days))

    for noisy in ("PyQt6", "urllib3", "PIL"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    if not debug:
        from PyQt6.QtCore import QLoggingCategory
        QLoggingCategory.setFilterRules("*.debug=false")

    removed = cleanup_old_logs(log_dir_path, retention_days)
    logger = logging.getLogger("ezzi.logging")
    logger.info(f"Logging initialized - Debug: {debug}, Log dir: {log_dir_path}")
    if removed:
        logger.info(f"Log cleanup: removed {removed} old log file(s)")
    return log_dir_path


def log_performance(operation: str, duration: float, metadata: Optional[Dict[str, Any]] = None):
    """
    Record how long ``operation`` took on the ``ezzi.performance`` logger.

    Args:
        operation: e.g. ``solve_request``
        duration: Seconds
        metadata: Extra fields stored with the record
    """
    logging.getLogger("ezzi.performance").info(
        f"Performance: {operation} took {duration:.3f}s",
        extra={
            "operation": operation,
            "duration_ms": round(duration * 1000, 2),
            "metadata": metadata or {},
        },
    )
