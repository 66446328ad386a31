"""Batch accumulation: group a record stream into bounded, keyed batches."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Iterable, Iterator

R = TypeVar("R")

DEFAULT_BATCH_SIZE = 5000


@dataclass(frozen=True)
class Batch(Generic[R]):
    """An ordered group of records sharing one key, synthesized as one query."""

    index: int
    key: Any
    records: tuple[R, ...]

    def __len__(self) -> int:
        return len(self.records)


class BatchAccumulator(Generic[R]):
    """Collect records into per-key buffers and emit full batches in order.

    With no *key* function every record shares one buffer, so N records yield
    ``ceil(N / capacity)`` batches whose concatenation is the input.  With a
    key function, records keep their relative order within each key; partial
    buffers are emitted by ``flush()`` in the order they were opened.
    """

    def __init__(self, capacity: int = DEFAULT_BATCH_SIZE, key: Callable[[R], Hashable] | None = None) -> None:
        if capacity < 1:
            msg = f"Batch capacity must be at least 1, got {capacity}"
            raise ValueError(msg)
        self.capacity = capacity
        self._key = key
        self._buffers: dict[Hashable, list[R]] = {}
        self.records_seen = 0
        self.batches_emitted = 0

    @property
    def pending(self) -> int:
        """Records accepted but not yet emitted in a batch."""
        return sum(len(buf) for buf in self._buffers.values())

    def add(self, record: R) -> list[Batch[R]]:
        """Accept one record; return the batch it completed, if any."""
        self.records_seen += 1
        key = self._key(record) if self._key is not None else None
        buffer = self._buffers.setdefault(key, [])
        buffer.append(record)
        if len(buffer) < self.capacity:
            return []
        del self._buffers[key]
        return [self._emit(key, buffer)]

    def flush(self) -> list[Batch[R]]:
        """Emit every partial buffer and reset."""
        buffers, self._buffers = self._buffers, {}
        return [self._emit(key, buffer) for key, buffer in buffers.items() if buffer]

    def _emit(self, key: Hashable, buffer: list[R]) -> Batch[R]:
        batch = Batch(index=self.batches_emitted, key=key, records=tuple(buffer))
        self.batches_emitted += 1
        return batch


def iter_batches(
    records: Iterable[R],
    capacity: int = DEFAULT_BATCH_SIZE,
    key: Callable[[R], Hashable] | None = None,
) -> Iterator[Batch[R]]:
    """Stream *records* through a ``BatchAccumulator``."""
    accumulator: BatchAccumulator[R] = BatchAccumulator(capacity, key)
    for record in records:
        yield from accumulator.add(record)
    yield from accumulator.flush()
