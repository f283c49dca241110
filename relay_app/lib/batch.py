"""Batch (pre-recorded) transcription through the AssemblyAI REST API.

Independent of the live relay: submits an audio URL, polls until the
transcript is ready and stores it as the session's recording transcript.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

import aiohttp

from .constants import BATCH_MAX_WAIT, BATCH_POLL_INTERVAL
from .livetypes import RecordingStatus, TranscriptionProviderException
from .protocols.assemblyai import AssemblyAIConfig
from .transcription.session import PersistenceSink

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("completed", "error")


class BatchTranscriber:
    """Submit-and-poll transcription of a recorded file."""

    def __init__(
        self,
        config: AssemblyAIConfig,
        persistence: PersistenceSink,
        poll_interval: float = BATCH_POLL_INTERVAL,
        max_wait: float = BATCH_MAX_WAIT,
        http_session: Optional[aiohttp.ClientSession] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.persistence = persistence
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self._http = http_session
        self._sleep = sleep

    async def transcribe(self, audio_url: str, session_id: str) -> dict[str, Any]:
        """Transcribe a recording and persist the result.

        Args:
            audio_url: Publicly reachable audio URL
            session_id: Session the recording belongs to

        Returns:
            The completed transcript object from the provider

        Raises:
            TranscriptionProviderException: If the provider rejects the job,
                reports an error, or does not finish in time
        """
        if not self.config.is_configured():
            raise TranscriptionProviderException(
                "AssemblyAI not configured. Set ASSEMBLYAI_API_KEY.", retcode=503
            )

        logger.info(
            f"Starting batch transcription for session: {session_id}",
            extra={"session_id": session_id},
        )

        owns_http = self._http is None
        http = self._http or aiohttp.ClientSession()
        try:
            job = await self._request(
                http,
                "POST",
                "/v2/transcript",
                json={"audio_url": audio_url, "auto_highlights": True},
            )
            transcript = await self._wait_for_completion(http, job)
        finally:
            if owns_http:
                await http.close()

        logger.info(
            "Transcription completed, sending to proxy",
            extra={"session_id": session_id, "transcript_id": transcript.get("id")},
        )
        await self.persistence.send(
            session_id,
            {
                "recording_transcript": transcript.get("text") or "",
                "recording_status": RecordingStatus.COMPLETED.value,
            },
        )
        return transcript

    async def _wait_for_completion(
        self, http: aiohttp.ClientSession, job: dict[str, Any]
    ) -> dict[str, Any]:
        transcript_id = job.get("id")
        if not transcript_id:
            raise TranscriptionProviderException(
                "AssemblyAI did not return a transcript id", retcode=502
            )

        waited = 0.0
        transcript = job
        while transcript.get("status") not in TERMINAL_STATUSES:
            if waited >= self.max_wait:
                raise TranscriptionProviderException(
                    f"Transcript {transcript_id} not ready after {self.max_wait:.0f}s",
                    retcode=504,
                )
            await self._sleep(self.poll_interval)
            waited += self.poll_interval
            transcript = await self._request(http, "GET", f"/v2/transcript/{transcript_id}")
            logger.debug(
                f"Transcript {transcript_id} status: {transcript.get('status')}",
                extra={"transcript_id": transcript_id},
            )

        if transcript.get("status") == "error":
            raise TranscriptionProviderException(
                f"Transcription failed: {transcript.get('error', 'unknown error')}",
                retcode=502,
            )
        return transcript

    async def _request(
        self,
        http: aiohttp.ClientSession,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        url = self.config.api_url.rstrip("/") + path
        try:
            async with http.request(
                method, url, json=json, headers=self.config.headers
            ) as response:
                body = await response.json(content_type=None)
                if response.status >= 400:
                    message = body.get("error") if isinstance(body, dict) else None
                    raise TranscriptionProviderException(
                        f"AssemblyAI request failed ({response.status}): {message or body}",
                        retcode=502,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise TranscriptionProviderException(
                f"AssemblyAI request failed: {e}", retcode=502
            ) from e

        if not isinstance(body, dict):
            raise TranscriptionProviderException(
                "Unexpected AssemblyAI response", retcode=502
            )
        return body
