"""
Artifact Fetcher
================

Downloads remote artifacts (videos, images) into a workspace.

Only HTTP 200 counts as success, and the written file is re-checked on disk:
upstream services occasionally answer 200 with an empty body.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

import aiofiles
import httpx

from ..core.exceptions import DownloadFailed, EmptyArtifact
from ..core.security import PathValidator, redact_api_key, sanitize_filename, validate_url

logger = logging.getLogger(__name__)


class ArtifactFetcher:
    """Streams a URL to a file and verifies the result is non-empty."""

    def __init__(
        self,
        timeout: float = 120.0,
        max_bytes: int = 500 * 1024 * 1024,
        chunk_size: int = 64 * 1024,
        max_redirects: int = 5,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            timeout: Per-request timeout in seconds
            max_bytes: Largest accepted download
            chunk_size: Streaming chunk size
            max_redirects: Redirect hops followed before giving up
            client: Optional pre-built HTTP client (closed by its owner)
        """
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.chunk_size = chunk_size
        self.max_redirects = max_redirects
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def fetch(
        self,
        url: str,
        destination_dir: Union[str, Path],
        filename: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> Path:
        """
        Download ``url`` into ``destination_dir/filename``.

        Args:
            url: Remote artifact URL
            destination_dir: Directory to write into (must exist)
            filename: Target file name inside the directory
            headers: Extra request headers (e.g. an API key)

        Returns:
            Path to the downloaded file

        Raises:
            DownloadFailed: non-200 status, transport error, or oversize body
            EmptyArtifact: the written file is zero bytes
        """
        output_path = PathValidator(destination_dir).validate(sanitize_filename(filename))
        logger.info(f"Downloading {filename}...")

        client = self._get_client()
        written = 0
        try:
            response = await self._open(client, url, headers)
            try:
                if response.status_code != 200:
                    raise DownloadFailed(
                        f"Download of {filename} failed with status {response.status_code}",
                        url=url,
                        status_code=response.status_code,
                    )

                async with aiofiles.open(output_path, "wb") as f:
                    async for chunk in response.aiter_bytes(self.chunk_size):
                        written += len(chunk)
                        if written > self.max_bytes:
                            raise DownloadFailed(
                                f"Download of {filename} exceeds {self.max_bytes} bytes",
                                url=url,
                            )
                        await f.write(chunk)
            finally:
                await response.aclose()

        except httpx.HTTPError as e:
            output_path.unlink(missing_ok=True)
            raise DownloadFailed(f"Download of {filename} failed: {redact_api_key(str(e))}", url=url)
        except DownloadFailed:
            output_path.unlink(missing_ok=True)
            raise

        # Verify the file exists and has content
        size = output_path.stat().st_size if output_path.exists() else 0
        if size == 0:
            output_path.unlink(missing_ok=True)
            raise EmptyArtifact(f"Downloaded {filename} is empty", url=url)

        logger.info(f"Downloaded {filename} ({size} bytes) to {output_path}")
        return output_path

    async def _open(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: Optional[Dict[str, str]],
    ) -> httpx.Response:
        """
        Send the GET and follow redirects one hop at a time.

        Every redirect target must pass ``validate_url`` before it is
        requested, so a public URL cannot bounce the download to a private
        or loopback address.

        Raises:
            SecurityError: a redirect points at a non-public address
            DownloadFailed: more than ``max_redirects`` hops
        """
        request = client.build_request("GET", url, headers=headers)
        for _ in range(self.max_redirects + 1):
            response = await client.send(request, stream=True, follow_redirects=False)
            if response.next_request is None:
                return response
            await response.aclose()
            request = response.next_request
            logger.debug(f"Following redirect to {request.url}")
            validate_url(str(request.url))

        raise DownloadFailed(f"Too many redirects (> {self.max_redirects})", url=url)

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
