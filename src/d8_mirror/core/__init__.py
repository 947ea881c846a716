"""Registry access: client, configuration and image getters."""

from .getter import (
    GetterService,
    RegistryImageService,
    RemoteBlobSource,
    RepositoryService,
)
from .registry_client import ManifestHead, RegistryClient
from .types import RegistryConfig

__all__ = [
    "GetterService",
    "ManifestHead",
    "RegistryClient",
    "RegistryConfig",
    "RegistryImageService",
    "RemoteBlobSource",
    "RepositoryService",
]
