from .bootstrap import build_application
from .http import LaunchpadApi, create_app
from .logging import setup_logger
from .settings import AppSettings

__all__ = [
    "AppSettings",
    "LaunchpadApi",
    "build_application",
    "create_app",
    "setup_logger",
]
