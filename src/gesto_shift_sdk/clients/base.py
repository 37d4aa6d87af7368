from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..http_client import HttpClient


@dataclass
class BaseClient:
    http: HttpClient
    default_headers: dict[str, str] = field(default_factory=dict)

    def _request(self, method: str, path: str, **kwargs: Any):
        headers = kwargs.pop("headers", {})
        merged = {**self.default_headers, **headers}
        return self.http.request(method, path, headers=merged, **kwargs)


def expect_list(data: Any, what: str) -> list[Any]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError(f"Expected {what} response to be a JSON array")
    return data
