import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from unittest.mock import AsyncMock, MagicMock, patch
import logging
import os


# Set test environment variables before imports
os.environ['REDIS_HOST'] = 'localhost'
os.environ['REDIS_PORT'] = '6379'
os.environ['REDIS_DB'] = '0'
os.environ['REDIS_PASSWORD'] = ''  # No password for mock
os.environ['CHAIN_TYPE'] = 'ethereum'
os.environ['CHAIN_NAME'] = 'ETH'
os.environ['MET_TOKEN_ADDRESS'] = '0x' + '11' * 20
os.environ['AUCTIONS_ADDRESS'] = '0x' + '22' * 20
os.environ['AUTONOMOUS_CONVERTER_ADDRESS'] = '0x' + '33' * 20
os.environ['TOKEN_PORTER_ADDRESS'] = '0x' + '44' * 20


@pytest.fixture
def logger():
    """Logger used by units under test."""
    return logging.getLogger("wallet_core.tests")


@pytest_asyncio.fixture
async def bus(logger):
    """
    Event bus closed after the test.

    Parameters
    ----------
    logger : logging.Logger
        Test logger

    Yields
    ------
    EventBus
        Fresh event bus
    """
    from core.events.bus import EventBus

    event_bus = EventBus(logger)
    yield event_bus
    await event_bus.close()


@pytest.fixture
def account_adapter():
    """Chain adapter double with account-chain address normalization."""
    adapter = MagicMock()
    adapter.normalize_address = lambda address: address.lower()
    adapter.get_balance = AsyncMock(return_value=10 ** 18)
    return adapter


@pytest_asyncio.fixture
async def mock_redis():
    """Mock Redis client for testing."""
    mock = AsyncMock()
    mock.ping = AsyncMock(return_value=True)
    mock.get = AsyncMock(return_value=None)
    mock.setex = AsyncMock(return_value=True)
    mock.aclose = AsyncMock()
    return mock


@pytest_asyncio.fixture
async def client(mock_redis):
    """
    Fixture for async test client with mocked Redis.

    Parameters
    ----------
    mock_redis : AsyncMock
        Mocked Redis client

    Yields
    ------
    AsyncClient
        Async HTTP client for testing
    """
    with patch('core.redis.providers.Redis', return_value=mock_redis):
        from main import app

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
