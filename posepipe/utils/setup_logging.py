import logging
from typing import Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_level: Union[str, int] = 'INFO') -> None:
    """Configure the root logger for pipeline processes."""
    if isinstance(log_level, str):
        level = getattr(logging, log_level.upper(), None)
        if not isinstance(level, int):
            raise ValueError(f"Invalid log level: {log_level}")
    else:
        level = log_level

    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    logging.getLogger(__name__).debug(f"Logging configured at level {logging.getLevelName(level)}")
