import asyncio

import openai
from loguru import logger
from openai import AsyncOpenAI

from ledgerbot.models.schemas import MediaResult, UserContext

EXTENSIONS = {
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/wav": "wav",
    "audio/webm": "webm",
}


class AudioTranscriber:
    """Turns voice notes into text through an OpenAI-compatible transcription API."""

    def __init__(
        self,
        api_key: str,
        model: str = "whisper-1",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        language: str = "pt",
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.language = language
        self.client = AsyncOpenAI(base_url=base_url, api_key=api_key) if api_key else None

    async def process(
        self, data: bytes, context: UserContext, mime_type: str = "audio/ogg"
    ) -> MediaResult:
        if self.client is None:
            return MediaResult(ok=False, error="Transcrição de áudio não está configurada.")
        if not data:
            return MediaResult(ok=False, error="O áudio recebido está vazio.")

        filename = f"voice.{EXTENSIONS.get(mime_type, 'ogg')}"
        try:
            transcription = await asyncio.wait_for(
                self.client.audio.transcriptions.create(
                    model=self.model,
                    file=(filename, data, mime_type),
                    language=self.language,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Transcription for user #{} timed out", context.user_id)
            return MediaResult(ok=False, error="A transcrição demorou demais.")
        except openai.OpenAIError as e:
            logger.warning("Transcription for user #{} failed: {}", context.user_id, e)
            return MediaResult(ok=False, error="Não consegui transcrever o áudio.")

        text = (transcription.text or "").strip()
        if not text:
            return MediaResult(ok=False, error="Não entendi nada no áudio.")
        logger.info("Transcribed {} bytes for user #{}: {}", len(data), context.user_id, text)
        return MediaResult(ok=True, text=text)
