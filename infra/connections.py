"""
AOF Stagger — Redis Connections

Builds one RedisInstance per configured host, in configured order, and
pings each before the scheduler starts. A host that does not answer
aborts startup.

    db_mod 1 → redis.Redis against host:port
    db_mod 2 → redis.cluster.RedisCluster seeded from host:port, with
               every command pinned to that node
"""

from __future__ import annotations

import logging
from typing import Any

import redis
from redis.backoff import ExponentialBackoff
from redis.cluster import RedisCluster
from redis.retry import Retry

from fleet.instance import REDIS_ERRORS, RedisInstance
from fleet.types import QueryError
from infra.config import CLUSTER_MODE, ConfigError, FleetConfig

logger = logging.getLogger("aof_stagger.connections")

DEFAULT_PORT = 6379


def split_host(host: str) -> tuple[str, int]:
    """'10.0.0.1:6380' → ('10.0.0.1', 6380). Port defaults to 6379."""
    name, sep, port = host.strip().rpartition(":")
    if not sep:
        return host.strip(), DEFAULT_PORT
    try:
        return name, int(port)
    except ValueError:
        raise ConfigError(f"invalid port in host {host!r}") from None


def client_options(cfg: FleetConfig) -> dict[str, Any]:
    """Connection options shared by single-instance and cluster clients."""
    return {
        "password": cfg.password or None,
        "socket_connect_timeout": cfg.timeout,
        "socket_timeout": cfg.scheduler.query_timeout,
        "max_connections": cfg.pool_size,
        "retry": Retry(ExponentialBackoff(), cfg.max_retries),
        "health_check_interval": cfg.idle_check_seconds,
    }


def open_instance(cfg: FleetConfig, host: str) -> RedisInstance:
    name, port = split_host(host)
    options = client_options(cfg)

    if cfg.db_mod == CLUSTER_MODE:
        client = RedisCluster(host=name, port=port, **options)
        try:
            node = client.get_node(host=name, port=port)
        except REDIS_ERRORS:
            client.close()
            raise
        target = {"target_nodes": node if node is not None else RedisCluster.DEFAULT_NODE}
        return RedisInstance(host, client, target=target)

    client = redis.Redis(host=name, port=port, db=cfg.db, **options)
    return RedisInstance(host, client)


def open_instances(cfg: FleetConfig) -> list[RedisInstance]:
    """
    Open and ping every configured host.

    Raises:
        QueryError: a host did not answer PING
        RedisError, RedisClusterException: client setup or cluster discovery
            failed; clients opened so far are closed first
    """
    instances: list[RedisInstance] = []
    for host in cfg.host_list():
        logger.info("open db host %s", host)
        try:
            instance = open_instance(cfg, host)
        except (ConfigError,) + REDIS_ERRORS:
            close_instances(instances)
            raise
        try:
            instance.ping()
        except QueryError:
            close_instances(instances + [instance])
            raise
        instances.append(instance)
    return instances


def close_instances(instances: list[RedisInstance]) -> None:
    for instance in instances:
        try:
            instance.close()
        except REDIS_ERRORS as e:
            logger.warning("close %s failed: %s", instance.name, e)
