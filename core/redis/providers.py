from dishka import Provider, Scope, provide, FromComponent
from typing import Annotated, AsyncIterable
from core.environment.config import Settings
from redis.asyncio import Redis
from redis.exceptions import RedisError
import json
import logging


class RedisProvider(Provider):
    """
    Provider for Redis client.
    """

    scope = Scope.APP
    component = "redis"

    @provide(scope=Scope.APP)
    async def provide_redis_client(
        self,
        settings: Annotated[Settings, FromComponent("environment")]
    ) -> AsyncIterable[Redis]:
        """
        Create Redis client for the application.

        Parameters
        ----------
        settings : Settings
            Application settings

        Yields
        ------
        Redis
            Redis client instance
        """
        redis_client = Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            password=settings.redis_password if settings.redis_password else None,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )

        try:
            await redis_client.ping()
            yield redis_client
        except RedisError as e:
            raise ConnectionError(f"Failed to connect to Redis: {e}")
        finally:
            await redis_client.aclose()


class CacheService:
    """
    JSON cache of immutable chain reads in Redis.

    A cache failure degrades to a miss; reads fall through to the node.

    Parameters
    ----------
    redis_client : Redis
        Redis client instance
    logger : logging.Logger
        Logger instance
    prefix : str
        Namespace prepended to every key
    """

    def __init__(self, redis_client: Redis, logger: logging.Logger, prefix: str = "wallet_core"):
        self.redis = redis_client
        self.logger = logger
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def get(self, key: str) -> dict | list | None:
        """
        Get cached value.

        Parameters
        ----------
        key : str
            Cache key

        Returns
        -------
        dict | list | None
            Cached value or None
        """
        try:
            value = await self.redis.get(self._key(key))
        except RedisError as e:
            self.logger.warning(f"Cache read of {key} failed: {e}")
            return None
        if value:
            return json.loads(value)
        return None

    async def set(self, key: str, value: dict | list, ttl: int = 3600) -> bool:
        """
        Set cached value.

        Parameters
        ----------
        key : str
            Cache key
        value : dict | list
            JSON-serializable value to cache
        ttl : int
            Time to live in seconds

        Returns
        -------
        bool
            Success status
        """
        try:
            await self.redis.setex(
                self._key(key),
                ttl,
                json.dumps(value)
            )
            return True
        except RedisError as e:
            self.logger.warning(f"Cache write of {key} failed: {e}")
            return False


class CacheProvider(Provider):
    """
    Provider for cache service.
    """

    component = "cache"
    scope = Scope.APP

    @provide(scope=Scope.APP)
    def provide_cache_service(
        self,
        redis_client: Annotated[Redis, FromComponent("redis")],
        logger: Annotated[logging.Logger, FromComponent("logger")]
    ) -> CacheService:
        """
        Provide cache service.

        Parameters
        ----------
        redis_client : Redis
            Redis client instance
        logger : logging.Logger
            Logger instance

        Returns
        -------
        CacheService
            Cache service instance
        """
        return CacheService(redis_client, logger)
