"""Image set resolution and pulling."""

from .download_list import ImageDownloadList
from .puller import PullConfig, PullerService

__all__ = ["ImageDownloadList", "PullConfig", "PullerService"]
