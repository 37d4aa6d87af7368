from __future__ import annotations

from .base import BaseClient

HEALTH_PATH = "/health"


class HealthClient(BaseClient):
    def health(self) -> object:
        return self._request("GET", HEALTH_PATH, single_attempt=True, operation="health")
