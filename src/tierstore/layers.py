"""Ordered, filterable collection of storage layers.

Order determines read precedence: during a lookup the first layer holding a
key wins. Filtered views return new collections and preserve relative order.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Generic, TypeVar

from tierstore.layer import Layer

T = TypeVar("T")


@dataclass
class LayerResult(Generic[T]):
    """Outcome of an operation on a single layer."""

    layer: Layer
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def raise_first_error(results: Iterable[LayerResult[T]]) -> None:
    """Re-raise the first failure, in layer order, if any layer failed."""
    for result in results:
        if result.error is not None:
            raise result.error


class Layers:
    """An ordered collection of layers."""

    def __init__(self, layers: Iterable[Layer] = ()) -> None:
        self._layers: list[Layer] = list(layers)

    def __iter__(self) -> Iterator[Layer]:
        return iter(self._layers)

    def __len__(self) -> int:
        return len(self._layers)

    def __bool__(self) -> bool:
        return bool(self._layers)

    def __getitem__(self, index: int) -> Layer:
        return self._layers[index]

    def __repr__(self) -> str:
        return f"Layers({self._layers!r})"

    def append(self, layer: Layer) -> None:
        """Add a layer to the end of the collection."""
        self._layers.append(layer)

    def clear(self) -> None:
        """Remove all layers."""
        self._layers = []

    def _select(self, predicate: Callable[[Layer], bool]) -> Layers:
        return Layers(layer for layer in self._layers if predicate(layer))

    @property
    def delayed(self) -> Layers:
        return self._select(lambda layer: layer.delayed)

    @property
    def immediate(self) -> Layers:
        return self._select(lambda layer: layer.immediate)

    @property
    def readonly(self) -> Layers:
        return self._select(lambda layer: layer.readonly)

    @property
    def writeable(self) -> Layers:
        return self._select(lambda layer: layer.writeable)

    @property
    def cache(self) -> Layers:
        return self._select(lambda layer: layer.is_cache)

    @property
    def non_cache(self) -> Layers:
        return self._select(lambda layer: not layer.is_cache)

    @property
    def any_delayed(self) -> bool:
        return bool(self.delayed)

    @property
    def any_immediate(self) -> bool:
        return bool(self.immediate)

    @property
    def any_readonly(self) -> bool:
        return bool(self.readonly)

    @property
    def any_writeable(self) -> bool:
        return bool(self.writeable)

    @property
    def any_cache(self) -> bool:
        return bool(self.cache)

    async def gather(
        self, operation: Callable[[Layer], Awaitable[T]]
    ) -> list[LayerResult[T]]:
        """Run ``operation`` on every layer concurrently.

        Failures are captured per layer rather than raised, so callers decide
        how to aggregate them. Results are returned in layer order.
        """

        async def run(layer: Layer) -> LayerResult[T]:
            try:
                return LayerResult(layer=layer, value=await operation(layer))
            except Exception as exc:
                return LayerResult(layer=layer, error=exc)

        return list(await asyncio.gather(*(run(layer) for layer in self._layers)))
