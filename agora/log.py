"""Logger setup shared by the client modules.

Enable verbose output by setting AGORA_DEBUG=1. Debug traces then also go
to ~/.agora_debug.log so they survive a redirected or captured stderr.
"""
import logging
import os
import sys
from pathlib import Path

DEBUG_LOG_FILE = Path.home() / ".agora_debug.log"
_FORMAT = "[%(name)s] %(levelname)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = logging.DEBUG if os.getenv("AGORA_DEBUG") else logging.WARNING
    logger.setLevel(level)
    fmt = logging.Formatter(_FORMAT)

    stream = logging.StreamHandler(sys.stderr)
    stream.setLevel(level)
    stream.setFormatter(fmt)
    logger.addHandler(stream)

    if os.getenv("AGORA_DEBUG"):
        try:
            fh = logging.FileHandler(DEBUG_LOG_FILE, encoding="utf-8")
            fh.setLevel(level)
            fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
            logger.addHandler(fh)
        except OSError:
            # never fail core logic for logging issues
            pass
    return logger
