import os
import sys
import time
import queue
import json
import logging
from logging.handlers import RotatingFileHandler

from flask import g, has_request_context

from .config import INSTANCE_DIR

# Thread-safe message queue for real-time logging
msg_queue: queue.Queue = queue.Queue(maxsize=1000)

# Root logger for the package; module loggers (logging.getLogger(__name__))
# propagate here.
logger = logging.getLogger("streamscout_app")
logger.setLevel(logging.INFO)

debug_logger = logging.getLogger("streamscout_app.debug")
debug_logger.setLevel(logging.INFO)
debug_logger.propagate = False


def configure_logging(log_dir: str = INSTANCE_DIR, debug_logging: bool = True) -> None:
    """Attach file, stdout and debug-event handlers. Safe to call repeatedly."""
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, 'streamscout.log')

    if not any(getattr(h, "baseFilename", None) == log_file for h in logger.handlers):
        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        logger.addHandler(file_handler)

    if not any(isinstance(h, logging.StreamHandler) and getattr(h, 'stream', None) is sys.stdout
               for h in logger.handlers):
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(logging.Formatter('%(message)s'))  # Keep stdout clean
        logger.addHandler(stream_handler)

    debug_file = os.path.join(log_dir, 'debug.log')
    if not any(getattr(h, "baseFilename", None) == debug_file for h in debug_logger.handlers):
        debug_handler = RotatingFileHandler(debug_file, maxBytes=10 * 1024 * 1024, backupCount=10)
        debug_handler.setFormatter(logging.Formatter('%(message)s'))
        debug_logger.addHandler(debug_handler)
    debug_logger.disabled = not debug_logging


def _request_prefix() -> str:
    """Return request id prefix if available."""
    if not has_request_context():
        return ""
    request_id = getattr(g, "request_id", None)
    return f"[{request_id}] " if request_id else ""


def log(msg: str) -> None:
    """Log a message to console, file, and message queue."""
    full = f"{_request_prefix()}{msg}"

    logger.info(full)

    # Drop the oldest line rather than block when nobody is draining the queue
    timestamp = time.strftime("[%H:%M:%S]")
    try:
        msg_queue.put_nowait(f"{timestamp} {full}")
    except queue.Full:
        try:
            msg_queue.get_nowait()
        except queue.Empty:
            pass
        msg_queue.put_nowait(f"{timestamp} {full}")


def debug_log_event(event: dict) -> None:
    """Write structured debug events to a local file."""
    if debug_logger.disabled or not debug_logger.handlers:
        return
    try:
        debug_logger.info(json.dumps(event, ensure_ascii=True, separators=(',', ':'), default=str))
    except (TypeError, ValueError) as exc:
        logger.info(f"⚠️ Debug log failure: {exc}")
