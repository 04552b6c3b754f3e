"""
AOF Stagger — Fleet Instances

The coordinator only needs two capabilities from a store instance:

    status_query()    → INFO persistence report as `key:value` lines
    trigger_rewrite() → BGREWRITEAOF, fire-and-forget

Anything satisfying the Instance protocol can be scheduled; tests use
in-memory fakes, production uses RedisInstance.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from redis.exceptions import RedisClusterException, RedisError

from fleet.types import QueryError, TriggerError

INFO_SECTION = "persistence"

# RedisClusterException (cluster discovery, slot routing) is not a RedisError.
REDIS_ERRORS = (RedisError, RedisClusterException)


@runtime_checkable
class Instance(Protocol):
    name: str

    def status_query(self) -> str:
        """Return the current report. Raises QueryError."""
        ...

    def trigger_rewrite(self) -> None:
        """Ask the instance to start a rewrite. Raises TriggerError."""
        ...


def render_info(info: dict[str, Any]) -> str:
    """Render a parsed INFO mapping back into the `key:value` report."""
    return "\n".join(f"{key}:{value}" for key, value in info.items())


class RedisInstance:
    """
    Instance backed by a redis-py client.

    For cluster clients `target` pins commands to the node this
    instance was configured with.
    """

    def __init__(self, name: str, client: Any, target: dict[str, Any] | None = None):
        self.name = name
        self.client = client
        self._target = target or {}

    def status_query(self) -> str:
        try:
            info = self.client.info(INFO_SECTION, **self._target)
        except REDIS_ERRORS as e:
            raise QueryError(self.name, e) from e
        return render_info(info)

    def trigger_rewrite(self) -> None:
        try:
            self.client.bgrewriteaof(**self._target)
        except REDIS_ERRORS as e:
            raise TriggerError(self.name, e) from e

    def ping(self) -> None:
        try:
            self.client.ping(**self._target)
        except REDIS_ERRORS as e:
            raise QueryError(self.name, e) from e

    def close(self) -> None:
        self.client.close()

    def __repr__(self) -> str:
        return f"RedisInstance({self.name!r})"
