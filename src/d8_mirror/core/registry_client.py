"""Docker Registry API v2 async client for pulling images."""

import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional, Tuple

import aiohttp

from ..exceptions import (
    BlobError,
    ImageNotFoundError,
    ManifestError,
    RegistryConnectionError,
    RegistryError,
)
from ..image.image import IMAGE_MEDIA_TYPES, INDEX_MEDIA_TYPES
from ..utils.digest import validate_digest
from .types import RegistryConfig

MANIFEST_ACCEPT = ", ".join(IMAGE_MEDIA_TYPES + INDEX_MEDIA_TYPES)

BLOB_CHUNK_SIZE = 1024 * 1024

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


@dataclass(frozen=True)
class ManifestHead:
    """Manifest properties returned by a HEAD request."""

    digest: Optional[str]
    media_type: str
    size: int


def parse_www_authenticate(header: str) -> Tuple[str, Dict[str, str]]:
    """Parse a WWW-Authenticate challenge.

    Args:
        header: Header value, e.g. 'Bearer realm="https://auth/token",service="registry"'

    Returns:
        Scheme and challenge parameters
    """
    scheme, _, params = header.strip().partition(" ")
    return scheme, dict(_CHALLENGE_PARAM.findall(params))


class RegistryClient:
    """Async client scoped to one repository path of a registry.

    The client owns its aiohttp session when used as an async context manager.
    Clients derived with ``with_segment`` share the parent's session.
    """

    def __init__(
        self,
        config: RegistryConfig,
        scope: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """Initialize the registry client.

        Args:
            config: Registry configuration
            scope: Repository path below the registry host, defaults to the
                path of the configured url
            session: Shared aiohttp session
        """
        self.config = config
        self.scope = (config.root_path if scope is None else scope).strip("/")
        self.session = session
        self._owns_session = False
        self._token: Optional[str] = None
        self._use_basic_auth = False

    async def __aenter__(self) -> "RegistryClient":
        """Enter async context manager."""
        if not self.session:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            )
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        await self.close()

    async def close(self) -> None:
        """Close the client session if this client created it."""
        if self._owns_session and self.session and not self.session.closed:
            await self.session.close()

    def with_segment(self, segment: str) -> "RegistryClient":
        """Client for a repository one path segment deeper."""
        scope = f"{self.scope}/{segment.strip('/')}" if self.scope else segment.strip("/")
        return RegistryClient(self.config, scope=scope, session=self.session)

    def get_registry(self) -> str:
        """Full repository path: host plus scope."""
        if not self.scope:
            return self.config.host
        return f"{self.config.host}/{self.scope}"

    async def check_registry_v2(self) -> bool:
        """Check if the registry supports v2 API.

        Returns:
            True if v2 API is supported
        """
        try:
            async with self._request("GET", "/v2/") as resp:
                return resp.status == 200
        except (aiohttp.ClientError, RegistryError):
            return False

    async def head_manifest(self, reference: str) -> ManifestHead:
        """Look up a manifest without downloading it.

        Args:
            reference: Tag or digest

        Returns:
            Digest (if the registry reports it), media type and size

        Raises:
            ImageNotFoundError: If the manifest does not exist
            ManifestError: If the request fails
        """
        try:
            async with self._request(
                "HEAD", self._manifest_path(reference), headers={"Accept": MANIFEST_ACCEPT}
            ) as resp:
                self._raise_for_status(resp, reference)
                digest = resp.headers.get("Docker-Content-Digest")
                return ManifestHead(
                    digest=digest if digest and validate_digest(digest) else None,
                    media_type=resp.headers.get("Content-Type", "").split(";")[0].strip(),
                    size=int(resp.headers.get("Content-Length", 0)),
                )
        except aiohttp.ClientError as e:
            raise ManifestError(f"Failed to check manifest {reference}: {e}") from e

    async def get_manifest(self, reference: str) -> Tuple[bytes, str]:
        """Retrieve a raw manifest.

        Args:
            reference: Tag or digest

        Returns:
            Manifest bytes and media type

        Raises:
            ImageNotFoundError: If the manifest does not exist
            ManifestError: If retrieval fails
        """
        try:
            async with self._request(
                "GET", self._manifest_path(reference), headers={"Accept": MANIFEST_ACCEPT}
            ) as resp:
                self._raise_for_status(resp, reference)
                raw = await resp.read()
                media_type = resp.headers.get("Content-Type", "").split(";")[0].strip()
                return raw, media_type
        except aiohttp.ClientError as e:
            raise ManifestError(f"Failed to get manifest {reference}: {e}") from e

    async def stream_blob(
        self, digest: str, chunk_size: int = BLOB_CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        """Stream a blob.

        Args:
            digest: Blob digest
            chunk_size: Size of chunks to yield

        Yields:
            Chunks of blob data

        Raises:
            BlobError: If download fails
        """
        if not validate_digest(digest):
            raise ValueError(f"Invalid digest format: {digest}")

        try:
            async with self._request("GET", f"/v2/{self.scope}/blobs/{digest}") as resp:
                self._raise_for_status(resp, digest)
                async for chunk in resp.content.iter_chunked(chunk_size):
                    yield chunk
        except aiohttp.ClientError as e:
            raise BlobError(f"Failed to download blob {digest}: {e}") from e
        except ImageNotFoundError as e:
            raise BlobError(f"Blob {digest} not found in {self.get_registry()}") from e

    async def list_tags(self) -> List[str]:
        """List tags of the repository.

        Returns:
            List of tag names

        Raises:
            RegistryError: If listing fails
        """
        try:
            async with self._request("GET", f"/v2/{self.scope}/tags/list") as resp:
                self._raise_for_status(resp, "tags")
                data = await resp.json(content_type=None)
                return data.get("tags") or []
        except aiohttp.ClientError as e:
            raise RegistryError(f"Failed to list tags: {e}") from e

    def _manifest_path(self, reference: str) -> str:
        return f"/v2/{self.scope}/manifests/{reference}"

    def _raise_for_status(self, resp: aiohttp.ClientResponse, reference: str) -> None:
        if resp.status == 404:
            raise ImageNotFoundError(f"{self.get_registry()}:{reference} not found")
        resp.raise_for_status()

    @asynccontextmanager
    async def _request(
        self, method: str, path: str, headers: Optional[Dict[str, str]] = None
    ) -> AsyncIterator[aiohttp.ClientResponse]:
        if not self.session:
            raise RegistryConnectionError("Client session is not open")

        url = f"{self.config.base_url}{path}"
        resp = await self.session.request(method, url, **self._auth_kwargs(headers))
        if resp.status == 401 and "WWW-Authenticate" in resp.headers:
            challenge = resp.headers["WWW-Authenticate"]
            resp.release()
            await self._authenticate(challenge)
            resp = await self.session.request(method, url, **self._auth_kwargs(headers))

        try:
            yield resp
        finally:
            resp.release()

    def _auth_kwargs(self, headers: Optional[Dict[str, str]]) -> dict:
        headers = dict(headers or {})
        kwargs: dict = {"headers": headers}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        elif self._use_basic_auth:
            kwargs["auth"] = self._basic_auth()
        return kwargs

    def _basic_auth(self) -> Optional[aiohttp.BasicAuth]:
        if self.config.username is None:
            return None
        return aiohttp.BasicAuth(self.config.username, self.config.password or "")

    async def _authenticate(self, challenge: str) -> None:
        """Answer a registry authentication challenge."""
        scheme, params = parse_www_authenticate(challenge)

        if scheme.lower() == "basic":
            if self.config.username is None:
                raise RegistryConnectionError(
                    f"Registry {self.config.host} requires credentials"
                )
            self._use_basic_auth = True
            return

        realm = params.get("realm")
        if scheme.lower() != "bearer" or not realm:
            raise RegistryConnectionError(f"Unsupported auth challenge: {challenge}")

        query = {k: v for k, v in params.items() if k in ("service", "scope")}
        try:
            async with self.session.get(
                realm, params=query, auth=self._basic_auth()
            ) as resp:
                resp.raise_for_status()
                data = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise RegistryConnectionError(f"Failed to get registry token: {e}") from e

        token = data.get("token") or data.get("access_token")
        if not token:
            raise RegistryConnectionError("Registry token response has no token")
        self._token = token
