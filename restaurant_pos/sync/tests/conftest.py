from unittest import mock

import pytest

from restaurant_pos.sync.client import RealtimeClient
from restaurant_pos.sync.conf import ClientSettings
from restaurant_pos.sync.connection import ConnectionManager

from .fakes import FakeNetwork
from .fakes import FakeScheduler


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def client_settings():
    return ClientSettings(server_url="http://realtime.testserver", ping_timeout=0.05)


@pytest.fixture
def no_jitter():
    with mock.patch("restaurant_pos.sync.conf.random.uniform", return_value=0.0):
        yield


@pytest.fixture
def manager(network, scheduler, client_settings):
    return ConnectionManager(network, settings=client_settings, scheduler=scheduler)


@pytest.fixture
def realtime_client(network, scheduler, client_settings):
    client = RealtimeClient(
        client_settings,
        transport_factory=network,
        scheduler=scheduler,
    )
    yield client
    client.close()
