"""scanchat - chat backend with security scanning plugins."""

__version__ = "0.1.0"

from scanchat.config import Config
from scanchat.main import main

__all__ = ["Config", "main", "__version__"]
