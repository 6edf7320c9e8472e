"""Voice transcription through the OpenAI audio API (optional collaborator)."""

import logging

import requests

from gw_common.exceptions import (
    ConfigurationError,
    TransientUpstreamError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

OPENAI_TRANSCRIPTION_URL = "https://api.openai.com/v1/audio/transcriptions"


class WhisperTranscriber:
    def __init__(
        self,
        api_key: str | None,
        session: requests.Session | None = None,
        model: str = "whisper-1",
        timeout: float = 60.0,
    ):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.model = model
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def transcribe(self, audio: bytes, filename: str) -> str:
        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY must be set for transcription")
        try:
            response = self.session.post(
                OPENAI_TRANSCRIPTION_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                files={"file": (filename, audio)},
                data={"model": self.model},
                timeout=self.timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientUpstreamError("openai", str(e)) from e
        if not 200 <= response.status_code < 300:
            raise UpstreamError("openai", response.status_code, response.text)
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError("openai", response.status_code, response.text) from e
        return data.get("text", "").strip()
