from .server import server_bp
from .settings import settings_bp
from .system import system_bp

__all__ = ["server_bp", "settings_bp", "system_bp"]
