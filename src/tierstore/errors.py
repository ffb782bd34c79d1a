"""Error taxonomy for tierstore.

Every error surfaced at the library boundary derives from TierStoreError:
- LayerConfigurationError: invalid layer flag combination or layer file
- NoLayersError: a required layer class is empty
- NotFoundError: no layer holds the requested key
- ReadOnlyError: write attempted on a readonly layer
"""

from __future__ import annotations


class TierStoreError(Exception):
    """Base class for all tierstore errors."""

    pass


class LayerConfigurationError(TierStoreError):
    """Raised when a layer is constructed with an invalid configuration."""

    pass


class NoLayersError(TierStoreError):
    """Raised when no layers, or no immediate writeable layers, are registered."""

    pass


class NotFoundError(TierStoreError):
    """Raised when content cannot be found in any layer."""

    def __init__(self, type: str, key: str) -> None:
        super().__init__(f"Content not found: {type}/{key}")
        self.type = type
        self.key = key


class ReadOnlyError(TierStoreError):
    """Raised when writing to or deleting from a readonly layer."""

    def __init__(self, layer_name: str) -> None:
        super().__init__(f"Layer is read-only: {layer_name}")
        self.layer_name = layer_name
