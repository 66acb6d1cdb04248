import asyncio
import logging
import ssl
from enum import Enum
from typing import Optional

import aiohttp

from config import REQUEST_TIMEOUT_SECONDS
from metrics import Failure, Result, Success
from request import RequestTemplate

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    CONNECT_FAILED = "ConnectFailed"
    TIMEOUT = "Timeout"
    TLS_ERROR = "TlsError"
    IO = "Io"
    OTHER = "Other"


def classify_exception(exc: BaseException) -> ErrorKind:
    # Order matters: aiohttp's SSL and timeout errors are also OSErrors
    if isinstance(exc, (asyncio.TimeoutError, aiohttp.ServerTimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(exc, (aiohttp.ClientSSLError, ssl.SSLError, ssl.CertificateError)):
        return ErrorKind.TLS_ERROR
    if isinstance(exc, (aiohttp.ClientConnectorError, ConnectionRefusedError)):
        return ErrorKind.CONNECT_FAILED
    if isinstance(exc, (aiohttp.ClientPayloadError, aiohttp.ServerDisconnectedError,
                        aiohttp.ClientOSError, OSError)):
        return ErrorKind.IO
    return ErrorKind.OTHER


def describe_exception(exc: BaseException) -> str:
    text = str(exc).strip()
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


class HttpClient:
    """
    One aiohttp session shared by every execution unit of a run.

    The connector is unbounded; the scheduler is what limits how many
    requests are in flight.
    """

    def __init__(self, insecure_tls: bool = False, timeout_s: float = REQUEST_TIMEOUT_SECONDS):
        self.insecure_tls = insecure_tls
        self.timeout_s = timeout_s
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "HttpClient":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def open(self):
        if self._session and not self._session.closed:
            return
        connector = aiohttp.TCPConnector(limit=0, ssl=False if self.insecure_tls else None)
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout_s),
            connector=connector,
        )
        if self.insecure_tls:
            logger.warning("TLS certificate verification is disabled.")

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def execute(self, template: RequestTemplate) -> Result:
        if self._session is None or self._session.closed:
            raise RuntimeError("HttpClient is not open; use 'async with HttpClient(...)'")
        try:
            async with self._session.request(
                template.method,
                template.url,
                headers=list(template.headers),
                data=template.body,
            ) as response:
                body = await response.read()
                return Success(status_code=response.status, response_size=len(body))
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            kind = classify_exception(e)
            logger.debug(f"{template.method} {template.url} failed ({kind.value}): {e!r}")
            return Failure(kind=kind, message=describe_exception(e))
