from .setup_logging import setup_logging
from .yaml_config_loader import ConfigLoader

__all__ = [
    'setup_logging',
    'ConfigLoader',
]
