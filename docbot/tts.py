"""
Text-to-Speech Module

ElevenLabs client used to voice narration scripts.
"""

import base64
import logging
import os
from typing import Optional

import httpx

from docbot.config.settings import get_settings, TTSConfig
from docbot.errors import ProviderError

logger = logging.getLogger(__name__)


def to_data_url(audio: bytes, mime_type: str = "audio/mpeg") -> str:
    """Encode audio bytes as a ``data:`` URL playable by a browser."""
    return f"data:{mime_type};base64,{base64.b64encode(audio).decode('ascii')}"


class ElevenLabsClient:
    """
    Minimal ElevenLabs text-to-speech client.

    Example:
        tts = ElevenLabsClient()
        audio = tts.synthesize("Hello there!", voice_id="21m00Tcm4TlvDq8ikWAM")
        url = to_data_url(audio)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Optional[TTSConfig] = None,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: ElevenLabs API key (or from environment)
            config: Optional TTSConfig instance
            client: Pre-built httpx client (for pooling or tests)
        """
        self.config = config or get_settings().tts
        self._api_key = api_key or self.config.elevenlabs_api_key or os.getenv("ELEVENLABS_API_KEY")
        self._client = client

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            if not self._api_key:
                raise ValueError(
                    "ElevenLabs API key not found. Set ELEVENLABS_API_KEY environment variable."
                )
            self._client = httpx.Client(
                timeout=self.config.timeout,
            )
            logger.info("ElevenLabs client initialized")
        return self._client

    def synthesize(self, text: str, voice_id: Optional[str] = None) -> bytes:
        """
        Convert text to MPEG audio.

        Args:
            text: Text to speak
            voice_id: ElevenLabs voice (default from config)

        Returns:
            Raw audio bytes

        Raises:
            ValueError: If text is empty
            ProviderError: If the request fails
        """
        if not text or not text.strip():
            raise ValueError("Cannot synthesize empty text")

        voice_id = voice_id or self.config.default_voice_id
        client = self._get_client()

        payload = {
            "text": text,
            "model_id": self.config.model_id,
            "voice_settings": {
                "stability": self.config.stability,
                "similarity_boost": self.config.similarity_boost,
            },
        }

        try:
            response = client.post(
                f"{self.config.base_url.rstrip('/')}/text-to-speech/{voice_id}",
                json=payload,
                headers={
                    "Accept": "audio/mpeg",
                    "xi-api-key": self._api_key or "",
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"ElevenLabs returned HTTP {e.response.status_code} for voice {voice_id}")
            raise ProviderError("tts", f"HTTP {e.response.status_code}: {e.response.text[:200]}") from e
        except httpx.HTTPError as e:
            logger.error(f"ElevenLabs request failed: {e}")
            raise ProviderError("tts", str(e) or e.__class__.__name__) from e

        logger.info(f"Synthesized {len(text)} chars into {len(response.content)} bytes of audio")
        return response.content

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
