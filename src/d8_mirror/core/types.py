"""Configuration types for registry access."""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit


@dataclass(frozen=True)
class RegistryConfig:
    """Registry connection settings.

    Attributes:
        url: Registry root, e.g. "registry.example.com/deckhouse/ee" or
            "http://localhost:5000/deckhouse"
        timeout: Request timeout in seconds
        insecure: Use plain HTTP when the url has no scheme
        username: Optional registry username
        password: Optional registry password
        platform: Platform picked from multi-platform images ("os/arch[/variant]")
    """

    url: str
    timeout: int = 30
    insecure: bool = False
    username: Optional[str] = None
    password: Optional[str] = None
    platform: str = "linux/amd64"

    @property
    def base_url(self) -> str:
        """Scheme and host the Registry API v2 is served on."""
        parts = self._split()
        return f"{parts.scheme}://{parts.netloc}"

    @property
    def host(self) -> str:
        return self._split().netloc

    @property
    def root_path(self) -> str:
        """Repository path prefix below the registry host."""
        return self._split().path.strip("/")

    def _split(self):
        url = self.url.rstrip("/")
        if "://" not in url:
            url = f"{'http' if self.insecure else 'https'}://{url}"
        return urlsplit(url)
