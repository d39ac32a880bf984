"""ABOUTME: Redis implementation of the counter store interface
ABOUTME: Wraps redis-py with bounded socket timeouts and maps redis errors to CounterStoreError"""

from redis import Redis
from redis.exceptions import RedisError

from communityguard.service_layer.counter_store import AbstractCounterStore
from communityguard.service_layer.exceptions import CounterStoreError


def create_redis_client(url: str, timeout: float) -> Redis:
    return Redis.from_url(
        url,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
        decode_responses=True,
    )


class RedisCounterStore(AbstractCounterStore):
    def __init__(self, client: Redis) -> None:
        self.client = client

    def incr(self, key: str) -> int:
        try:
            return int(self.client.incr(key))
        except RedisError as e:
            raise CounterStoreError(f"INCR failed: {e}") from e

    def pexpire(self, key: str, milliseconds: int) -> None:
        try:
            self.client.pexpire(key, milliseconds)
        except RedisError as e:
            raise CounterStoreError(f"PEXPIRE failed: {e}") from e

    def pttl(self, key: str) -> int:
        try:
            return int(self.client.pttl(key))
        except RedisError as e:
            raise CounterStoreError(f"PTTL failed: {e}") from e

    def get(self, key: str) -> int | None:
        try:
            value = self.client.get(key)
        except RedisError as e:
            raise CounterStoreError(f"GET failed: {e}") from e
        return int(value) if value is not None else None

    def delete(self, key: str) -> bool:
        try:
            return bool(self.client.delete(key))
        except RedisError as e:
            raise CounterStoreError(f"DEL failed: {e}") from e

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError as e:
            raise CounterStoreError(f"PING failed: {e}") from e
