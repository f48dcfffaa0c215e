"""
Logging configuration for GhostLayer services.

One call per process (the launcher, or a test) sets up the root logger for the
control plane; modules only ever do `logging.getLogger(__name__)`.
"""

import logging
import sys
from pathlib import Path
from typing import Iterable, Optional, Union

DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Third-party loggers that drown out sync/lifecycle messages at INFO
NOISY_LOGGERS = ("urllib3", "sqlalchemy.engine", "uvicorn.access")


def parse_level(level: Union[int, str, None], default: int = logging.INFO) -> int:
    """Accept logging.INFO or 'info'/'INFO'; unknown names fall back to `default`"""
    if level is None:
        return default
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else default


def setup_logging(
    component_name: str,
    level: Union[int, str, None] = logging.INFO,
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
    quiet: Iterable[str] = NOISY_LOGGERS,
):
    """
    Configure logging for a GhostLayer component.

    Args:
        component_name: Component identifier (e.g., 'control', 'sync')
        level: Logging level as int or name (DEBUG, INFO, WARNING, ...)
        log_file: Optional file path for log output
        format_string: Custom format string (default provided)
        quiet: Logger names capped at WARNING

    Calling it again replaces the handlers installed by the previous call.
    """
    level = parse_level(level)
    if format_string is None:
        format_string = f'[%(asctime)s] [{component_name.upper()}] %(levelname)s - %(message)s'
    formatter = logging.Formatter(format_string, datefmt=DATE_FORMAT)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    for name in quiet:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger = logging.getLogger(component_name)
    logger.info(f"{component_name.upper()} logging initialized (level={logging.getLevelName(level)})")
    return logger
