#!/usr/bin/env python3
"""Bearer token acquisition for the streaming endpoint.

Tokens are short-lived and their expiry is not advertised, so the provider
only caches the last token and fetches a new one when asked to refresh
(initially, and after the server rejects the cached one).
"""

import asyncio
from collections.abc import Callable

import aiohttp

from ...core.config import setup_logging
from .exceptions import DEFAULT_ERROR_DOMAIN, TokenAcquisitionError

logger = setup_logging(__name__)

SessionFactory = Callable[..., aiohttp.ClientSession]


class TokenProvider:
    """Fetches and caches a bearer token from the token endpoint.

    The request is ``GET <token_url>?url=<service_url>`` authenticated with
    HTTP basic auth; the response body is the token. At most one refresh runs
    at a time, concurrent callers await the same request.
    """

    def __init__(
        self,
        token_url: str,
        username: str,
        password: str,
        service_url: str | None = None,
        timeout: float = 10.0,
        error_domain: str = DEFAULT_ERROR_DOMAIN,
        session_factory: SessionFactory = aiohttp.ClientSession,
    ):
        self.token_url = token_url
        self.service_url = service_url
        self.timeout = timeout
        self.error_domain = error_domain
        self._auth = aiohttp.BasicAuth(username, password)
        self._session_factory = session_factory
        self._token: str | None = None
        self._refresh_task: asyncio.Task | None = None
        self.refresh_count = 0

    def current_token(self) -> str | None:
        return self._token

    def invalidate(self) -> None:
        if self._token is not None:
            logger.info("Discarding cached token")
        self._token = None

    async def refresh(self) -> str:
        """Fetch a new token, sharing an in-flight request if there is one.

        Raises:
            TokenAcquisitionError: The endpoint was unreachable, timed out or
                answered with a non-2xx status or an empty body.

        """
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.get_running_loop().create_task(self._fetch())
        return await asyncio.shield(self._refresh_task)

    async def _fetch(self) -> str:
        params = {"url": self.service_url} if self.service_url else None
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        logger.debug(f"Requesting token from {self.token_url}")
        try:
            async with self._session_factory(auth=self._auth, timeout=timeout) as session:
                async with session.get(self.token_url, params=params) as response:
                    body = await response.text()
                    if response.status < 200 or response.status >= 300:
                        raise TokenAcquisitionError(
                            f"failed to obtain token: HTTP {response.status}: {body.strip()[:200]}",
                            code=response.status,
                            domain=self.error_domain,
                        )
        except aiohttp.ClientError as e:
            raise TokenAcquisitionError(f"failed to obtain token: {e}", domain=self.error_domain) from e
        except TimeoutError as e:
            raise TokenAcquisitionError(
                f"failed to obtain token: timed out after {self.timeout}s", domain=self.error_domain
            ) from e

        token = body.strip()
        if not token:
            raise TokenAcquisitionError("failed to obtain token: empty response", domain=self.error_domain)

        self._token = token
        self.refresh_count += 1
        logger.info("Obtained new token")
        return token
