"""d8-mirror - Async engine mirroring platform images into OCI image layouts."""

__version__ = "0.1.0"

from .core.getter import GetterService, RegistryImageService
from .core.registry_client import RegistryClient
from .core.types import RegistryConfig
from .exceptions import (
    DigestError,
    ImageMetaNotFoundError,
    ImageNotFoundError,
    LayoutError,
    MirrorError,
    PullError,
    RegistryConnectionError,
    RegistryError,
    ServiceError,
)
from .image import Image, ImageLayout, ImageMeta, sort_index_manifests
from .mirror import check_registry_connectivity, pull_installer, pull_security_databases
from .puller import ImageDownloadList, PullConfig, PullerService
from .services import InstallerOptions, InstallerService, SecurityService

__all__ = [
    "GetterService",
    "Image",
    "ImageDownloadList",
    "ImageLayout",
    "ImageMeta",
    "InstallerOptions",
    "InstallerService",
    "PullConfig",
    "PullerService",
    "RegistryClient",
    "RegistryConfig",
    "RegistryImageService",
    "SecurityService",
    "check_registry_connectivity",
    "pull_installer",
    "pull_security_databases",
    "sort_index_manifests",
    "DigestError",
    "ImageMetaNotFoundError",
    "ImageNotFoundError",
    "LayoutError",
    "MirrorError",
    "PullError",
    "RegistryConnectionError",
    "RegistryError",
    "ServiceError",
]
