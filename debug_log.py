"""
Debug Log
Optional file logging for troubleshooting
"""

import logging
from pathlib import Path

LOG_FORMAT = '[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s'
DEFAULT_LOG_FILE = 'debug.log'

_handler = None


def configure_debug_log(log_path=None, enabled=True):
    """Attach (or detach) the debug file handler on the root logger.

    Args:
        log_path: Optional str/Path - Log file (default: debug.log in the working directory)
        enabled: bool - False removes a previously attached handler

    Returns:
        Path - Active log file, or None when disabled
    """
    global _handler
    root = logging.getLogger()

    if _handler is not None:
        root.removeHandler(_handler)
        _handler.close()
        _handler = None

    if not enabled:
        return None

    path = Path(log_path) if log_path else Path.cwd() / DEFAULT_LOG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    _handler = logging.FileHandler(path, encoding='utf-8')
    _handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(_handler)
    if root.level == logging.NOTSET or root.level > logging.DEBUG:
        root.setLevel(logging.DEBUG)
    return path
