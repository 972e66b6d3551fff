import asyncio
import base64
import json

import openai
from loguru import logger
from openai import AsyncOpenAI
from pydantic import ValidationError

from ledgerbot.llm.parser import strip_code_fences
from ledgerbot.llm.prompts import VISION_PROMPT
from ledgerbot.models.schemas import IntentRecord, IntentType, MediaResult, UserContext


class ImageRecognizer:
    """Identifies the product in a photo and turns it into a sale hint."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout: float = 20.0,
    ):
        self.model = model
        self.timeout = timeout
        self.client = AsyncOpenAI(base_url=base_url, api_key=api_key) if api_key else None

    def build_messages(self, data: bytes, mime_type: str) -> list[dict]:
        encoded = base64.b64encode(data).decode("ascii")
        return [
            {"role": "system", "content": VISION_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Qual produto aparece nesta foto?"},
                    {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
                ],
            },
        ]

    async def process(
        self, data: bytes, context: UserContext, mime_type: str = "image/jpeg"
    ) -> MediaResult:
        if self.client is None:
            return MediaResult(ok=False, error="Reconhecimento de imagens não está configurado.")
        if not data:
            return MediaResult(ok=False, error="A imagem recebida está vazia.")

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=self.build_messages(data, mime_type),
                    temperature=0.1,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Image recognition for user #{} timed out", context.user_id)
            return MediaResult(ok=False, error="A análise da imagem demorou demais.")
        except openai.OpenAIError as e:
            logger.warning("Image recognition for user #{} failed: {}", context.user_id, e)
            return MediaResult(ok=False, error="Não consegui analisar a imagem.")

        raw = response.choices[0].message.content if response.choices else None
        logger.debug("Vision raw response: {}", raw)
        return self.parse(raw)

    def parse(self, raw: str | None) -> MediaResult:
        try:
            data = json.loads(strip_code_fences(raw or ""))
        except json.JSONDecodeError:
            return MediaResult(ok=False, error="Não identifiquei nenhum produto na imagem.")

        name = data.get("product_name") if isinstance(data, dict) else None
        if not name:
            return MediaResult(ok=False, error="Não identifiquei nenhum produto na imagem.")

        price = data.get("estimated_price")
        try:
            intent = IntentRecord(
                type=IntentType.SALE,
                confidence=min(max(float(data.get("confidence") or 0.5), 0.0), 1.0),
                amount=float(price) if isinstance(price, (int, float)) and price > 0 else None,
                category="vendas",
                description=data.get("description") or name,
                scope="business",
                product_name=name,
                source="media",
            )
            return MediaResult(ok=True, text=name, intent=intent)
        except (ValueError, TypeError, ValidationError) as e:
            logger.warning("Unusable vision response {!r}: {}", raw, e)
            return MediaResult(ok=False, error="Não consegui interpretar a análise da imagem.")
