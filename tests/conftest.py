from collections.abc import Callable

import pytest

from messengerbot import MessengerBot
from tests.messenger_fakes import _FakeClient, _make_bot


@pytest.fixture
def fake_client() -> _FakeClient:
    return _FakeClient()


@pytest.fixture
def make_bot(fake_client: _FakeClient) -> Callable[..., MessengerBot]:
    def _factory(**kwargs) -> MessengerBot:
        return _make_bot(fake_client, **kwargs)

    return _factory
