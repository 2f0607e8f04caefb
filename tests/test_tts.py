"""
Tests for the ElevenLabs text-to-speech client.

Run with: pytest tests/test_tts.py -v
"""

import base64
import json

import httpx
import pytest

from docbot.config.settings import TTSConfig
from docbot.errors import ProviderError
from docbot.tts import ElevenLabsClient, to_data_url


def make_client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestToDataUrl:

    def test_mpeg_data_url(self):
        url = to_data_url(b"ID3audio")

        assert url.startswith("data:audio/mpeg;base64,")
        assert base64.b64decode(url.split(",", 1)[1]) == b"ID3audio"


class TestElevenLabsClient:

    def test_synthesize_request(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=b"mp3-bytes")

        tts = ElevenLabsClient(api_key="xi-test", config=TTSConfig(), client=make_client(handler))

        audio = tts.synthesize("Welcome to Acme.", voice_id="voice-123")

        assert audio == b"mp3-bytes"
        assert seen["url"] == "https://api.elevenlabs.io/v1/text-to-speech/voice-123"
        assert seen["headers"]["xi-api-key"] == "xi-test"
        assert seen["body"] == {
            "text": "Welcome to Acme.",
            "model_id": "eleven_turbo_v2",
            "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
        }

    def test_default_voice(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(200, content=b"x")

        config = TTSConfig(default_voice_id="default-voice")
        ElevenLabsClient(api_key="k", config=config, client=make_client(handler)).synthesize("hi")

        assert seen["url"].endswith("/text-to-speech/default-voice")

    def test_http_error(self):
        tts = ElevenLabsClient(
            api_key="k",
            config=TTSConfig(),
            client=make_client(lambda request: httpx.Response(401, text="invalid api key")),
        )

        with pytest.raises(ProviderError) as exc_info:
            tts.synthesize("hello")

        assert exc_info.value.provider == "tts"
        assert "401" in exc_info.value.detail

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        tts = ElevenLabsClient(api_key="k", config=TTSConfig(), client=make_client(handler))

        with pytest.raises(ProviderError):
            tts.synthesize("hello")

    def test_empty_text(self):
        tts = ElevenLabsClient(api_key="k", config=TTSConfig())
        with pytest.raises(ValueError):
            tts.synthesize("  ")

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
        tts = ElevenLabsClient(config=TTSConfig(elevenlabs_api_key=None))

        with pytest.raises(ValueError):
            tts.synthesize("hello")
