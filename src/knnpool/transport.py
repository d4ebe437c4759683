"""Point-to-point channels between the orchestrator and its workers.

Each worker owns two one-way pipes: the assignment leg carries a single
``(start, count)`` message to the worker, the result leg carries a single
integer back. Every end is closed by the side that uses it.
"""

from __future__ import annotations

import logging
from multiprocessing.connection import Connection
from typing import Any

from .errors import TransportError, WorkerSpawnError
from .types import Shard

logger = logging.getLogger(__name__)

_CHANNEL_ERRORS = (OSError, EOFError, ValueError)


def _close_quietly(conn: Connection | None) -> None:
    if conn is None:
        return
    try:
        conn.close()
    except OSError as exc:
        logger.debug(f"Ignoring error while closing connection: {exc}")


class WorkerChannel:
    """Orchestrator-side handle for one worker's assignment and result legs."""

    def __init__(self, index: int, context: Any):
        self.index = index
        self._assign_reader: Connection | None = None
        self._assign_writer: Connection | None = None
        self._result_reader: Connection | None = None
        self._result_writer: Connection | None = None
        try:
            self._assign_reader, self._assign_writer = context.Pipe(duplex=False)
            self._result_reader, self._result_writer = context.Pipe(duplex=False)
        except OSError as exc:
            self.close()
            raise WorkerSpawnError(f"Failed to create channel for worker {index}: {exc}") from exc

    def worker_ends(self) -> tuple[Connection, Connection]:
        if self._assign_reader is None or self._result_writer is None:
            raise WorkerSpawnError(f"Worker ends of channel {self.index} were already released")
        return self._assign_reader, self._result_writer

    def release_worker_ends(self) -> None:
        # The worker process holds its own copies once started.
        _close_quietly(self._assign_reader)
        _close_quietly(self._result_writer)
        self._assign_reader = None
        self._result_writer = None

    def send_shard(self, shard: Shard) -> None:
        if self._assign_writer is None:
            raise TransportError(f"Assignment leg of worker {self.index} is closed")
        try:
            self._assign_writer.send((int(shard.start), int(shard.count)))
        except _CHANNEL_ERRORS as exc:
            raise TransportError(f"Failed writing shard to worker {self.index}: {exc}") from exc
        finally:
            _close_quietly(self._assign_writer)
            self._assign_writer = None

    def receive_result(self, shard: Shard, timeout: float | None = None) -> int:
        if self._result_reader is None:
            raise TransportError(f"Result leg of worker {self.index} is closed")
        try:
            if timeout is not None and not self._result_reader.poll(timeout):
                raise TransportError(f"Worker {self.index} did not report a result within {timeout}s")
            value = self._result_reader.recv()
        except _CHANNEL_ERRORS as exc:
            raise TransportError(f"Failed reading result from worker {self.index}: {exc}") from exc
        finally:
            _close_quietly(self._result_reader)
            self._result_reader = None

        if isinstance(value, bool) or not isinstance(value, int):
            raise TransportError(f"Worker {self.index} reported a non-integer result: {value!r}")
        if value < 0 or value > shard.count:
            raise TransportError(
                f"Worker {self.index} reported {value} correct predictions for a shard of {shard.count}"
            )
        return value

    def close(self) -> None:
        for conn in (self._assign_reader, self._assign_writer, self._result_reader, self._result_writer):
            _close_quietly(conn)
        self._assign_reader = None
        self._assign_writer = None
        self._result_reader = None
        self._result_writer = None


def receive_assignment(assignment: Connection) -> tuple[int, int]:
    try:
        message = assignment.recv()
    except _CHANNEL_ERRORS as exc:
        raise TransportError(f"Failed reading shard assignment: {exc}") from exc
    if not isinstance(message, tuple) or len(message) != 2:
        raise TransportError(f"Malformed shard assignment: {message!r}")
    start, count = int(message[0]), int(message[1])
    if start < 0 or count < 0:
        raise TransportError(f"Invalid shard assignment: start={start}, count={count}")
    return start, count


def send_result(results: Connection, correct: int) -> None:
    try:
        results.send(int(correct))
    except _CHANNEL_ERRORS as exc:
        raise TransportError(f"Failed writing result: {exc}") from exc


__all__ = ["WorkerChannel", "receive_assignment", "send_result"]
