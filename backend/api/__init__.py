# api/__init__.py
from api.server import (
    app,
    AppServices,
    get_services,
)

__all__ = [
    "app",
    "AppServices",
    "get_services",
]
