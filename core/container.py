from dishka import make_async_container
from dishka.integrations.fastapi import FastapiProvider

from core.environment.providers import EnvironmentProvider
from core.events.providers import EventBusProvider
from core.redis.providers import RedisProvider, CacheProvider
from core.logging.providers import LoggerProvider
from bridge.providers import BridgeProvider
from explorer.providers import ExplorerProvider
from wallet.providers import WalletProvider

container = make_async_container(
    FastapiProvider(),
    EnvironmentProvider(),
    LoggerProvider(),
    EventBusProvider(),
    WalletProvider(),
    BridgeProvider(),
    ExplorerProvider(),
    RedisProvider(),
    CacheProvider()
)
