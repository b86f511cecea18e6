from .app import create_app
from .deps import Services

__all__ = ["create_app", "Services"]
