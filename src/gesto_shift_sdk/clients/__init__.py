from .base import BaseClient
from .health import HealthClient
from .shift_client import ShiftClient

__all__ = ["BaseClient", "HealthClient", "ShiftClient"]
