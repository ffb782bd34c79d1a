"""Layer configuration loading.

Loads the layer stack from a JSON file.

Expected JSON structure:
{
    "layers": [
        {
            "backend": {"type": "local", "root": "/var/lib/tierstore"},
            "path": "cache",
            "cache": 10737418240
        },
        {
            "backend": {"type": "local", "root": "/var/lib/tierstore"},
            "path": "production"
        },
        {
            "backend": {"type": "s3", "bucket": "my-bucket", "region": "eu-west-1"},
            "path": "production",
            "delayed": true
        }
    ]
}
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tierstore.backends.base import Connection
from tierstore.errors import LayerConfigurationError
from tierstore.layer import Layer
from tierstore.layers import Layers

if TYPE_CHECKING:
    from tierstore.config import Settings
    from tierstore.dispatch import JobDispatcher
    from tierstore.storage import Storage

logger = logging.getLogger(__name__)


class LocalBackendConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["local"]
    root: str


class S3BackendConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["s3"]
    bucket: str
    prefix: str = ""
    endpoint_url: str | None = None
    region: str = "us-east-1"
    access_key_id: str | None = None
    secret_access_key: str | None = None


class GcsBackendConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["gcs"]
    bucket: str
    prefix: str = ""
    project: str | None = None
    credentials_path: str | None = None


class AzureBackendConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["azure"]
    container: str
    prefix: str = ""
    connection_string: str | None = None
    account_url: str | None = None
    credential: str | None = None


BackendConfig = Annotated[
    LocalBackendConfig | S3BackendConfig | GcsBackendConfig | AzureBackendConfig,
    Field(discriminator="type"),
]


class LayerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    backend: BackendConfig
    path: str | None = None
    delayed: bool = False
    readonly: bool = False
    public: bool = False
    cache: int | None = Field(default=None, ge=0)


class LayerFileConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    layers: list[LayerConfig]


def build_connection(config: BackendConfig) -> Connection:
    """Create a backend connection from its configuration."""
    if isinstance(config, LocalBackendConfig):
        from tierstore.backends.local import LocalConnection

        return LocalConnection(root=config.root)
    if isinstance(config, S3BackendConfig):
        from tierstore.backends.s3 import S3Connection

        return S3Connection(
            bucket=config.bucket,
            prefix=config.prefix,
            endpoint_url=config.endpoint_url,
            region_name=config.region,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
        )
    if isinstance(config, GcsBackendConfig):
        from tierstore.backends.gcs import GcsConnection

        return GcsConnection(
            bucket=config.bucket,
            prefix=config.prefix,
            project=config.project,
            credentials_path=config.credentials_path,
        )

    from tierstore.backends.azure import AzureConnection

    if not (config.connection_string or config.account_url):
        raise LayerConfigurationError(
            "Azure backends require a connection_string or account_url"
        )
    return AzureConnection(
        container=config.container,
        prefix=config.prefix,
        connection_string=config.connection_string,
        account_url=config.account_url,
        credential=config.credential,
    )


def build_layers(
    config_data: dict[str, Any],
    touch_threshold: timedelta | None = None,
) -> Layers:
    """Build the layer collection from configuration data.

    Connections with identical backend configuration are shared between
    layers.

    Raises:
        LayerConfigurationError: If configuration is invalid
    """
    try:
        file_config = LayerFileConfig.model_validate(config_data)
    except ValidationError as e:
        raise LayerConfigurationError(f"Invalid layer configuration: {e}") from e

    connections: dict[str, Connection] = {}
    layers = Layers()
    for layer_config in file_config.layers:
        backend_id = layer_config.backend.model_dump_json()
        if backend_id not in connections:
            connections[backend_id] = build_connection(layer_config.backend)

        options: dict[str, Any] = {}
        if touch_threshold is not None:
            options["touch_threshold"] = touch_threshold

        layers.append(
            Layer(
                connections[backend_id],
                delayed=layer_config.delayed,
                readonly=layer_config.readonly,
                public=layer_config.public,
                cache=layer_config.cache,
                path=layer_config.path,
                **options,
            )
        )

    logger.info(f"Configured {len(layers)} storage layers")
    return layers


def load_layers(file_path: str | Path, touch_threshold: timedelta | None = None) -> Layers:
    """Load the layer collection from a JSON file.

    Raises:
        FileNotFoundError: If file does not exist
        LayerConfigurationError: If configuration is invalid
    """
    path = Path(file_path)

    if not path.exists():
        raise FileNotFoundError(f"Layer configuration not found: {file_path}")

    logger.info(f"Loading storage layers from {file_path}")

    try:
        with path.open("r") as f:
            config_data = json.load(f)
    except json.JSONDecodeError as e:
        raise LayerConfigurationError(f"Invalid JSON in {file_path}: {e}") from e

    return build_layers(config_data, touch_threshold=touch_threshold)


def build_storage(settings: Settings, dispatcher: JobDispatcher) -> Storage:
    """Create a Storage facade from settings."""
    from tierstore.storage import Storage

    if not settings.layers_config:
        raise LayerConfigurationError("TIERSTORE_LAYERS_CONFIG is not set")

    layers = load_layers(
        settings.layers_config,
        touch_threshold=timedelta(seconds=settings.touch_threshold),
    )
    return Storage(
        layers,
        dispatcher,
        batch_size=settings.reconcile_batch_size,
        eviction_margin=settings.eviction_margin,
    )
