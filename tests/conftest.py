from __future__ import annotations

import pytest
from factories import BASE_URL, FIXED_NOW

from gesto_shift_sdk.config import ClientConfig
from gesto_shift_sdk.http_client import HttpClient
from gesto_shift_sdk.local_store import LocalStore
from gesto_shift_sdk.scheduling import ManualScheduler


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(
        env_name="test",
        api_base_url=BASE_URL,
        retries=0,
        retry_backoff_seconds=0.0,
    )


@pytest.fixture
def http(config: ClientConfig) -> HttpClient:
    return HttpClient(config)


@pytest.fixture
def store(tmp_path) -> LocalStore:
    return LocalStore(base_dir=tmp_path / "store")


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW
