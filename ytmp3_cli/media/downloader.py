"""
Handles the low-level HTTP work of the pipeline: fetching audio streams into
memory with adaptive chunk sizing, and lightweight HEAD probes.
"""

import asyncio
import logging
from typing import Dict, Optional

import aiohttp

from ytmp3_cli.core.cancellation import CancelToken
from ytmp3_cli.exceptions import (
    EmptyOutputError,
    NetworkFailureError,
    SourceNotFoundError,
)
from ytmp3_cli.utils.formatting import format_size

log = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
SUSPICIOUS_SIZE_BYTES = 100 * 1024

_connection_pool: aiohttp.ClientSession | None = None
_pool_lock = asyncio.Lock()


async def get_connection_pool(max_workers: int = 3) -> aiohttp.ClientSession:
    """
    Gets or creates a shared aiohttp ClientSession for stream fetches and probes.

    Only one connection pool is created for the lifetime of the application run.

    Args:
        max_workers: Maximum concurrent pipelines (should match config.max_workers).
    """
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            return _connection_pool

        connector = aiohttp.TCPConnector(
            limit=max_workers * 4,
            limit_per_host=max_workers * 2,
            ttl_dns_cache=600,
            keepalive_timeout=30,
            enable_cleanup_closed=True,
        )
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=90)
        _connection_pool = aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            headers={"User-Agent": USER_AGENT, "Accept": "*/*"},
        )
        log.debug(f"Created HTTP pool with limit_per_host={max_workers * 2}")

    return _connection_pool


async def close_connection_pool() -> None:
    """Closes the shared global connection pool."""
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            await _connection_pool.close()
            _connection_pool = None
            log.debug("Shared HTTP connection pool closed.")


class Downloader:
    """Fetches whole audio streams into memory with adaptive chunk sizing."""

    MIN_CHUNK_SIZE = 131072  # 128 KB
    MAX_CHUNK_SIZE = 1048576  # 1 MB

    def __init__(self, timeout: float = 60.0, max_workers: int = 3):
        self.timeout = timeout
        self.max_workers = max_workers

    @classmethod
    def _chunk_size_for(cls, speed_bps: float) -> int:
        if speed_bps > 10 * 1024 * 1024:  # > 10 MB/s
            return cls.MAX_CHUNK_SIZE
        if speed_bps > 1 * 1024 * 1024:  # > 1 MB/s
            return 524288  # 512 KB
        return cls.MIN_CHUNK_SIZE

    async def fetch_bytes(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        cancel: Optional[CancelToken] = None,
        warn_below: int = SUSPICIOUS_SIZE_BYTES,
    ) -> bytes:
        """
        Downloads `url` fully into memory.

        A single attempt only; retries belong to the caller's retry policy.
        A set cancel token interrupts a stalled read. Bodies smaller than
        `warn_below` bytes are logged as suspicious.
        """
        session = await get_connection_pool(self.max_workers)
        timeout = aiohttp.ClientTimeout(total=self.timeout, sock_connect=15)
        buffer = bytearray()
        loop = asyncio.get_running_loop()
        try:
            async with session.get(
                url, headers=headers, timeout=timeout, allow_redirects=True
            ) as response:
                if response.status in (404, 410):
                    raise SourceNotFoundError(
                        f"Stream URL returned HTTP {response.status}"
                    )
                if response.status >= 400:
                    raise NetworkFailureError(
                        f"Stream URL returned HTTP {response.status} {response.reason}"
                    )

                started = loop.time()
                chunk_size = self.MIN_CHUNK_SIZE
                while True:
                    if cancel:
                        cancel.raise_if_cancelled()
                        chunk = await cancel.race(response.content.read(chunk_size))
                    else:
                        chunk = await response.content.read(chunk_size)
                    if not chunk:
                        break
                    buffer.extend(chunk)
                    elapsed = loop.time() - started
                    if elapsed > 2.0:
                        chunk_size = self._chunk_size_for(len(buffer) / elapsed)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkFailureError(
                f"Network error fetching stream: {e or type(e).__name__}"
            ) from e

        if not buffer:
            raise EmptyOutputError("Stream download returned zero bytes")
        if len(buffer) < warn_below:
            log.warning(
                f"[yellow]Fetched stream is suspiciously small ({format_size(len(buffer))}).[/yellow]"
            )
        return bytes(buffer)

    async def probe(self, url: str, timeout: float = 10.0) -> bool:
        """Sends a HEAD request and reports whether the URL answered 200."""
        session = await get_connection_pool(self.max_workers)
        try:
            async with session.head(
                url,
                allow_redirects=False,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                log.debug(f"Probe {url} -> HTTP {response.status}")
                return response.status == 200
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.debug(f"Probe {url} failed: {e or type(e).__name__}")
            return False
