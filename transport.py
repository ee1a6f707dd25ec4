"""
aiohttp transport.

Owns one pooled `ClientSession` for the whole run and turns every call into
a raw transport result. Nothing here knows about outcomes or statistics.
"""

import asyncio
from typing import Dict, Optional

import aiohttp

from outcomes import Aborted, HttpResponse, RawResult, TransportFailure
from payloads import RequestPayload

DEFAULT_HEADERS = {"User-Agent": "UploadStressTest/1.0"}


class AiohttpTransport:
    """
    POSTs payloads to a single endpoint over a shared connection pool.

    Use as an async context manager:

        async with AiohttpTransport(url, timeout=60, connection_limit=10) as transport:
            raw = await transport.send(payload)
    """

    def __init__(
        self,
        url: str,
        method: str = "POST",
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        verify_ssl: bool = True,
        connection_limit: int = 100,
    ):
        self.url = url
        self.method = method.upper()
        self.headers = {**DEFAULT_HEADERS, **(headers or {})}
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.verify_ssl = verify_ssl
        self.connection_limit = connection_limit
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "AiohttpTransport":
        connector = aiohttp.TCPConnector(
            limit=self.connection_limit,
            limit_per_host=self.connection_limit,
            keepalive_timeout=30,
            enable_cleanup_closed=True,
        )
        self._session = aiohttp.ClientSession(timeout=self.timeout, connector=connector)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def send(self, payload: RequestPayload) -> RawResult:
        """Send one request; the body is fully read before returning."""
        if self._session is None:
            raise RuntimeError("Transport is not open; use 'async with AiohttpTransport(...)'")

        try:
            async with self._session.request(
                self.method,
                self.url,
                headers={**self.headers, **payload.headers},
                params=payload.params or None,
                data=payload.data,
                json=payload.json,
                ssl=self.verify_ssl,
            ) as response:
                body = await response.read()
                return HttpResponse(status=response.status, size=len(body))
        except asyncio.TimeoutError:
            return Aborted()
        except aiohttp.InvalidURL:
            # nothing was sent; the executor reports it as a setup error
            raise
        except aiohttp.ClientConnectorError as e:
            return TransportFailure(kind="connection", message=f"ConnectionError: {type(e).__name__}")
        except aiohttp.ClientError as e:
            return TransportFailure(kind="client", message=type(e).__name__)
