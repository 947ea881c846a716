"""Mirroring services for individual image groups."""

from .common import ACCESS_CHECK_TIMEOUT, BundlePacker
from .installer import InstallerDownloadList, InstallerOptions, InstallerService
from .security import SECURITY_DATABASES, SecurityDownloadList, SecurityService

__all__ = [
    "ACCESS_CHECK_TIMEOUT",
    "BundlePacker",
    "InstallerDownloadList",
    "InstallerOptions",
    "InstallerService",
    "SECURITY_DATABASES",
    "SecurityDownloadList",
    "SecurityService",
]
