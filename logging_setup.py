"""
Logging Setup for the room automation daemon.

All records go through a QueueHandler on the root logger; a dedicated
listener thread writes them to a rotating log file and the console, so
the event loop thread never blocks on log I/O. WebSocket disconnect noise
from the API server is filtered out of both outputs.
"""

import logging
import os
import threading
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from queue import Queue
from typing import Callable, Optional, Tuple

from api.rest import WebSocketErrorFilter

# Centralized logging format with thread, module, function, and line number
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(threadName)s %(module)s:%(funcName)s:%(lineno)d - %(message)s'

# CLI level -> (root level, file handler level, console handler level)
LOG_LEVELS = {
    "DEBUG": (logging.DEBUG, logging.DEBUG, logging.INFO),
    "INFO": (logging.INFO, logging.DEBUG, logging.INFO),
    "NONE": (logging.INFO, logging.CRITICAL, logging.CRITICAL),
}


def _build_handlers(log_file_path: str, file_level: int, console_level: int,
                    max_bytes: int, backup_count: int) -> Tuple[logging.Handler, logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT)
    ws_filter = WebSocketErrorFilter()

    file_handler = RotatingFileHandler(log_file_path, maxBytes=max_bytes, backupCount=backup_count)
    console_handler = logging.StreamHandler()
    for handler, level in ((file_handler, file_level), (console_handler, console_level)):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(ws_filter)
    return file_handler, console_handler


def setup_logging(
    log_level: str,
    log_file_name: str,
    script_dir: str,
    version: str = "",
    script_name: str = "Room Automation",
    max_bytes: int = 4*1024*1024,
    backup_count: int = 5,
    on_listener_start: Optional[Callable[[], None]] = None,
) -> tuple:
    """
    Set up queue-based logging with rotating file and console output.

    Args:
        log_level: Logging level ("DEBUG", "INFO", or "NONE")
        log_file_name: Name of the log file
        script_dir: Directory where log file should be created
        version: Version string to log at startup
        script_name: Name of the script for startup message
        max_bytes: Maximum size of log file before rotation
        backup_count: Number of backup log files to keep
        on_listener_start: Optional hook run inside the listener thread (e.g. lower its priority)

    Returns:
        Tuple of (logger, stop_logging_func)
    """
    root_level, file_level, console_level = LOG_LEVELS.get(log_level, LOG_LEVELS["INFO"])
    file_handler, console_handler = _build_handlers(
        os.path.join(script_dir, log_file_name), file_level, console_level, max_bytes, backup_count)

    log_queue = Queue()

    root_logger = logging.getLogger()
    root_logger.handlers = []  # Clear all handlers
    root_logger.setLevel(root_level)
    root_logger.addHandler(QueueHandler(log_queue))

    # Startup banner goes straight to the handlers, before the listener runs
    logger = logging.getLogger(__name__)
    logger.setLevel(root_level)
    logger.addHandler(console_handler)
    logger.addHandler(file_handler)
    logger.propagate = False

    version_str = f" v{version}" if version else ""
    logger.info(f">----- Starting {script_name}{version_str}. Initializing...")

    stop_event = threading.Event()

    def log_listener_thread():
        listener = QueueListener(log_queue, file_handler, console_handler, respect_handler_level=True)
        listener.start()
        if on_listener_start:
            on_listener_start()
        stop_event.wait()
        listener.stop()

    logging_thread = threading.Thread(target=log_listener_thread, name="LoggingThread", daemon=False)
    logging_thread.start()

    def stop_logging():
        stop_event.set()
        logging_thread.join(timeout=5)

    return logger, stop_logging
