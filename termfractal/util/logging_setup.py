import logging
import logging.handlers
import multiprocessing as mp
import sys
from contextlib import contextmanager
from typing import Iterator, Optional, Tuple

_LOGGER_NAME = "termfractal"
_FORMAT = "%(asctime)s.%(msecs)03dZ %(processName)s %(levelname)s %(name)s - %(message)s"

def get_logger(suffix: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(_LOGGER_NAME if not suffix else f"{_LOGGER_NAME}.{suffix}")

def _reset(logger: logging.Logger, level: int) -> None:
    logger.setLevel(level)
    logger.propagate = False
    for h in list(logger.handlers):
        logger.removeHandler(h)

def configure_root_logging(
    *,
    level: int = logging.INFO,
    console: bool = True,
    log_file: Optional[str] = None,
    rotate_bytes: int = 5 * 1024 * 1024,
    rotate_count: int = 5,
) -> logging.Logger:
    """Install console and rotating-file handlers on the package logger.

    Console output goes to stderr; stdout carries rendered frames.
    """
    logger = get_logger()
    _reset(logger, level)
    fmt = logging.Formatter(fmt=_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")
    handlers = []
    if console:
        handlers.append(logging.StreamHandler(sys.stderr))
    if log_file:
        handlers.append(logging.handlers.RotatingFileHandler(
            log_file, maxBytes=rotate_bytes, backupCount=rotate_count, encoding="utf-8"
        ))
    for h in handlers:
        h.setLevel(level)
        h.setFormatter(fmt)
        logger.addHandler(h)
    return logger

def create_log_queue() -> mp.Queue:
    return mp.Queue(-1)

def start_queue_listener(queue: mp.Queue, listener_logger: logging.Logger) -> logging.handlers.QueueListener:
    listener = logging.handlers.QueueListener(queue, *listener_logger.handlers, respect_handler_level=True)
    listener.start()
    return listener

def logging_initialiser(queue: mp.Queue, level: int) -> None:
    """Process pool initializer: send worker records to the parent's listener."""
    logger = get_logger()
    _reset(logger, level)
    qh = logging.handlers.QueueHandler(queue)
    qh.setLevel(level)
    logger.addHandler(qh)

@contextmanager
def logging_session(*, level: int = logging.INFO, log_file: Optional[str] = None,
                    console: bool = True) -> Iterator[Tuple[logging.Logger, mp.Queue]]:
    """Configure the parent logger and a queue listener for pool workers."""
    logger = configure_root_logging(level=level, console=console, log_file=log_file)
    queue = create_log_queue()
    listener = start_queue_listener(queue, logger)
    try:
        yield logger, queue
    finally:
        listener.stop()
