"""Persistence proxy HTTP client.

Delivers transcript and status records to the downstream proxy endpoint.
Every call is best-effort: failures are logged and swallowed, nothing is
retried, and nothing is raised to the caller.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from ..constants import PERSISTENCE_TIMEOUT, PROXY_URL
from ..livetypes import PersistenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PersistenceConfig:
    """Configuration for the persistence proxy.

    Immutable - create a new instance to change values.
    """

    url: str
    secret: str
    timeout: float = PERSISTENCE_TIMEOUT

    @property
    def headers(self) -> dict[str, str]:
        """Get the shared-secret headers."""
        return {
            "Content-Type": "application/json",
            "x-api-key": self.secret,
        }

    @classmethod
    def from_env(cls) -> "PersistenceConfig":
        """Create config from environment variables."""
        return cls(
            url=os.getenv("PROXY_URL", PROXY_URL),
            secret=os.getenv("PROXY_SECRET", ""),
        )

    def is_configured(self) -> bool:
        """Check if all required fields are set."""
        return bool(self.url and self.secret)


class PersistenceClient:
    """Client for the downstream persistence proxy.

    Usage:
        client = PersistenceClient(PersistenceConfig.from_env())
        await client.send("session-1", {"live_transcript": "hello"})
        await client.close()
    """

    def __init__(
        self,
        config: PersistenceConfig,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the client.

        Args:
            config: Proxy endpoint and shared secret
            http_session: Optional externally owned aiohttp session
        """
        self.config = config
        self._http = http_session
        self._owns_http = http_session is None

    def _get_http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout)
            )
            self._owns_http = True
        return self._http

    async def send(self, session_id: Optional[str], fields: dict[str, Any]) -> bool:
        """Deliver one record to the proxy.

        Args:
            session_id: Session the record belongs to
            fields: Record fields merged next to session_id

        Returns:
            True if the proxy accepted the record, False otherwise
        """
        if not session_id:
            logger.error(
                "Persistence send called without session_id, dropping record",
                extra={"fields": list(fields)},
            )
            return False

        logger.info(
            f"[Session {session_id}] Sending to proxy: {list(fields)}",
            extra={"session_id": session_id},
        )

        try:
            result = await self._post({"session_id": session_id, **fields})
        except PersistenceError as e:
            logger.error(
                f"[Session {session_id}] Proxy error: {e}",
                extra={"session_id": session_id, "status": e.status},
            )
            return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(
                f"[Session {session_id}] Failed to send to proxy: {e!r}",
                extra={"session_id": session_id},
            )
            return False
        except Exception as e:
            logger.exception(
                f"[Session {session_id}] Unexpected error sending to proxy",
                exc_info=e,
                extra={"session_id": session_id},
            )
            return False

        logger.info(
            f"[Session {session_id}] Proxy update successful: {result.get('success')}",
            extra={"session_id": session_id},
        )
        return True

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        """POST a record and return the decoded response body.

        Raises:
            PersistenceError: On a non-success response
        """
        http = self._get_http()
        async with http.post(
            self.config.url,
            json=body,
            headers=self.config.headers,
        ) as response:
            if response.status >= 400:
                try:
                    detail = await response.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError):
                    detail = {"error": "Unknown error"}
                raise PersistenceError(
                    f"{response.status} {detail}", status=response.status
                )

            try:
                result = await response.json(content_type=None)
            except (aiohttp.ContentTypeError, ValueError):
                return {}
            return result if isinstance(result, dict) else {}

    async def close(self) -> None:
        """Close the underlying HTTP session if this client owns it."""
        if self._http is not None and self._owns_http and not self._http.closed:
            await self._http.close()
        self._http = None
