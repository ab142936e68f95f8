"""HTTP health probe used to gate the pipeline on a deployed service."""

import asyncio

import httpx

from automaker.config import settings
from automaker.utils.logging import get_logger

# Upper bound for a single probe request
REQUEST_TIMEOUT_S = 5.0


class HealthProbe:
    """Polls a URL until it answers or a deadline passes.

    Any response below 500 counts as reachable: frameworks commonly answer
    404 or 403 while the application is still warming up, whereas a 5xx or
    a refused connection means the service is not ready yet.
    """

    def __init__(
        self,
        interval_ms: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.interval_ms = (
            settings.health_check_interval_ms if interval_ms is None else interval_ms
        )
        self._transport = transport
        self.logger = get_logger("health")

    async def await_url(
        self, url: str, timeout_ms: int, interval_ms: int | None = None
    ) -> bool:
        """Wait until ``url`` is reachable.

        Returns:
            True once a response with status < 500 arrives, False if
            ``timeout_ms`` elapses first. Connection errors are retried.
        """
        interval_s = (self.interval_ms if interval_ms is None else interval_ms) / 1000
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        attempts = 0

        async with httpx.AsyncClient(transport=self._transport) as client:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break

                attempts += 1
                try:
                    response = await client.get(
                        url, timeout=min(REQUEST_TIMEOUT_S, remaining)
                    )
                    if response.status_code < 500:
                        self.logger.info(
                            "health.reachable",
                            url=url,
                            status_code=response.status_code,
                            attempts=attempts,
                        )
                        return True
                    self.logger.debug(
                        "health.not_ready", url=url, status_code=response.status_code
                    )
                except (httpx.HTTPError, httpx.InvalidURL) as e:
                    self.logger.debug("health.unreachable", url=url, error=str(e))

                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                await asyncio.sleep(min(interval_s, remaining))

        self.logger.warning(
            "health.timed_out", url=url, timeout_ms=timeout_ms, attempts=attempts
        )
        return False
