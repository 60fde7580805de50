from __future__ import annotations

from collections.abc import Iterator

import pytest

from solrpc.core.config import ENV_OVERRIDES, reset_config


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()
