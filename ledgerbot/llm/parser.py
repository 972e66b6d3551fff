import asyncio
import json
import re

import openai
from loguru import logger
from openai import AsyncOpenAI
from pydantic import ValidationError

from ledgerbot.errors import ClassificationServiceError, ClassificationTimeout
from ledgerbot.llm.prompts import SYSTEM_PROMPT
from ledgerbot.models.schemas import IntentRecord, LedgerEntry, Turn

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def strip_code_fences(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("```"):
        lines = raw.split("\n")
        lines = [l for l in lines if not l.startswith("```")]
        raw = "\n".join(lines)
    return raw


def parse_intent_json(raw: str | None) -> IntentRecord:
    """Validate an NLU reply into an IntentRecord.

    Tolerates code fences and chatter around the JSON object; anything that
    still fails to parse raises ClassificationServiceError.
    """
    if not raw:
        raise ClassificationServiceError("Empty response from NLU service")
    text = strip_code_fences(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        match = _JSON_OBJECT_RE.search(text)
        if match is None:
            raise ClassificationServiceError("NLU response is not JSON")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise ClassificationServiceError(f"NLU response is not valid JSON: {e}")

    if not isinstance(data, dict):
        raise ClassificationServiceError("NLU response is not a JSON object")

    # Models sometimes send null for fields that have defaults
    data = {k: v for k, v in data.items() if v is not None or k == "amount"}
    data["source"] = "remote"
    try:
        return IntentRecord.model_validate(data)
    except ValidationError as e:
        raise ClassificationServiceError(f"NLU response does not match the schema: {e}")


def _is_quota_error(error: Exception) -> bool:
    if isinstance(error, openai.RateLimitError):
        return True
    if isinstance(error, openai.APIStatusError) and error.status_code == 429:
        return True
    return "quota" in str(error).lower()


class RemoteClassifier:
    """Remote NLU path: chat completions through OpenRouter."""

    def __init__(
        self,
        api_keys: list[str],
        model: str,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout: float = 10.0,
    ):
        self.api_keys = [key for key in api_keys if key]
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.key_index = 0
        self._clients: dict[int, AsyncOpenAI] = {}

    @property
    def configured(self) -> bool:
        return bool(self.api_keys)

    @property
    def client(self) -> AsyncOpenAI:
        if self.key_index not in self._clients:
            self._clients[self.key_index] = AsyncOpenAI(
                base_url=self.base_url,
                api_key=self.api_keys[self.key_index],
            )
        return self._clients[self.key_index]

    def rotate_key(self) -> bool:
        """Switch to the next API key; False when there is no alternate."""
        if len(self.api_keys) <= 1:
            return False
        self.key_index = (self.key_index + 1) % len(self.api_keys)
        logger.info("Rotated NLU credential to key {}/{}", self.key_index + 1, len(self.api_keys))
        return True

    def build_messages(
        self,
        text: str,
        entries: list[LedgerEntry] | None = None,
        turns: list[Turn] | None = None,
    ) -> list[dict]:
        messages = [{"role": "system", "content": SYSTEM_PROMPT}]

        if entries:
            context_text = "Recent ledger entries of this user:\n"
            for entry in entries:
                context_text += (
                    f"- {entry.occurred_on.isoformat()}: {entry.kind} R$ {entry.amount:.2f} "
                    f"({entry.category})"
                )
                if entry.description:
                    context_text += f" — {entry.description}"
                context_text += "\n"
            messages.append({"role": "system", "content": context_text})

        for turn in turns or []:
            role = "user" if turn.sender == "user" else "assistant"
            messages.append({"role": role, "content": turn.text})

        messages.append({"role": "user", "content": text})
        return messages

    async def classify(
        self,
        text: str,
        entries: list[LedgerEntry] | None = None,
        turns: list[Turn] | None = None,
    ) -> IntentRecord:
        if not self.configured:
            raise ClassificationServiceError("No NLU API key configured")

        messages = self.build_messages(text, entries, turns)
        try:
            # wait_for cancels the request on timeout, so a late reply is dropped
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=0.1,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise ClassificationTimeout(f"NLU call exceeded {self.timeout:.0f}s")
        except openai.OpenAIError as e:
            raise ClassificationServiceError(str(e), rate_limited=_is_quota_error(e))

        raw = response.choices[0].message.content if response.choices else None
        logger.debug("NLU raw response: {}", raw)
        return parse_intent_json(raw)
