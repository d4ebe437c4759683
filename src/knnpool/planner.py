from __future__ import annotations

from .errors import ConfigurationError
from .types import Shard


def chunk_size(total_items: int, num_workers: int) -> int:
    # Integer ceil division; float ceil loses precision on very large sets.
    return -(-total_items // num_workers)


def plan_shards(total_items: int, num_workers: int) -> list[Shard]:
    if total_items < 0:
        raise ConfigurationError("total_items must be non-negative")
    if num_workers < 1:
        raise ConfigurationError("num_workers must be a positive integer")

    chunk = chunk_size(total_items, num_workers)
    shards: list[Shard] = []
    cursor = 0
    for index in range(num_workers):
        count = max(0, min(chunk, total_items - cursor))
        shards.append(Shard(index=index, start=cursor, count=count))
        cursor += count
    return shards


def aggregate(results: list[int]) -> int:
    return int(sum(int(value) for value in results))


__all__ = ["aggregate", "chunk_size", "plan_shards"]
