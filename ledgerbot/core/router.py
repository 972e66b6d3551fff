import asyncio
from collections import Counter
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

from loguru import logger

from ledgerbot.core.context import ContextTracker
from ledgerbot.core.dedup import DeduplicationGate
from ledgerbot.core.dispatcher import HandlerDispatcher
from ledgerbot.core.sessions import SessionStateMachine
from ledgerbot.db.repository import LedgerRepository
from ledgerbot.formatting import GENERIC_FAILURE, LOGIN_FIRST
from ledgerbot.llm.classifier import IntentClassifier
from ledgerbot.media.audio import AudioTranscriber
from ledgerbot.media.image import ImageRecognizer
from ledgerbot.models.schemas import (
    AuthStatus,
    InboundMessage,
    IntentRecord,
    MediaResult,
    Turn,
    UserContext,
)

REDACTED = "••••••"


class ConversationLocks:
    """One asyncio.Lock per conversation, dropped once nobody holds or awaits it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: Counter[str] = Counter()

    @asynccontextmanager
    async def hold(self, conversation_id: str):
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._holders[conversation_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._holders[conversation_id] -= 1
            if not self._holders[conversation_id]:
                del self._holders[conversation_id]
                del self._locks[conversation_id]

    def __len__(self) -> int:
        return len(self._locks)


class Router:
    """Entry point for every inbound message, whatever the channel.

    Messages of one conversation are processed strictly one at a time in
    arrival order; different conversations proceed concurrently. Returns the
    reply, or None for a duplicate delivery; when a ``send`` callback is
    given the reply is also delivered through it.
    """

    def __init__(
        self,
        dedup: DeduplicationGate,
        sessions: SessionStateMachine,
        tracker: ContextTracker,
        classifier: IntentClassifier,
        dispatcher: HandlerDispatcher,
        ledger: LedgerRepository,
        transcriber: AudioTranscriber | None = None,
        recognizer: ImageRecognizer | None = None,
        send: Callable[[str, str], Awaitable[None]] | None = None,
    ):
        self.dedup = dedup
        self.sessions = sessions
        self.tracker = tracker
        self.classifier = classifier
        self.dispatcher = dispatcher
        self.ledger = ledger
        self.transcriber = transcriber
        self.recognizer = recognizer
        self.send = send
        self.locks = ConversationLocks()

    async def handle(self, message: InboundMessage) -> str | None:
        if not self.dedup.admit(message.message_id):
            logger.info("Dropping duplicate message {}", message.message_id)
            return None

        async with self.locks.hold(message.conversation_id):
            try:
                reply = await self._process(message)
            except Exception:
                logger.exception("Failed to handle message {}", message.message_id)
                reply = GENERIC_FAILURE
            if self.send is not None:
                await self.send(message.conversation_id, reply)
            return reply

    async def _process(self, message: InboundMessage) -> str:
        conversation_id = message.conversation_id
        text = message.text.strip()
        hint: IntentRecord | None = None

        if message.media is not None:
            status = self.sessions.authenticate(conversation_id)
            if not status.authenticated:
                return LOGIN_FIRST
            result = await self._normalise_media(message, self._context(status.user_id, conversation_id))
            if not result.ok:
                return f"⚠️ {result.error} Tente novamente."
            text, hint = result.text, result.intent

        secret = self.sessions.is_collecting_password(conversation_id)
        logger.info(
            "Message {} in conversation {}: {!r}",
            message.message_id,
            conversation_id,
            REDACTED if secret else text,
        )
        self.tracker.append(conversation_id, Turn(text=REDACTED if secret else text, sender="user"))

        status = self.sessions.authenticate(conversation_id)
        if not status.authenticated:
            reply = self.sessions.advance(conversation_id, text)
            if self.sessions.authenticate(conversation_id).authenticated:
                # History starts after login; the dialogue holds the email address
                self.tracker.clear(conversation_id)
                return reply
            return self._reply(conversation_id, reply)

        if hint is not None:
            record = hint
        else:
            record = await self.classifier.classify(text, self._context(status.user_id, conversation_id))
        logger.info(
            "Classified {!r} as {} ({:.2f}, {})",
            text,
            record.type.value,
            record.confidence,
            record.source,
        )
        self.tracker.attach_classification(conversation_id, record)

        reply = await self.dispatcher.dispatch(status.user_id, record, text if hint is None else None)
        return self._reply(conversation_id, reply)

    async def _normalise_media(self, message: InboundMessage, context: UserContext) -> MediaResult:
        media = message.media
        collaborator = self.transcriber if media.kind == "audio" else self.recognizer
        if collaborator is None:
            logger.warning("No collaborator configured for {} messages", media.kind)
            label = "áudios" if media.kind == "audio" else "imagens"
            return MediaResult(ok=False, error=f"Ainda não consigo processar {label}.")
        logger.info("Processing {} ({} bytes) for user #{}", media.kind, len(media.data), context.user_id)
        return await collaborator.process(media.data, context, media.mime_type)

    def _context(self, user_id: int, conversation_id: str) -> UserContext:
        return UserContext(
            user_id=user_id,
            recent_entries=self.ledger.recent_entries(user_id),
            turns=self.tracker.recent(conversation_id),
        )

    def _reply(self, conversation_id: str, reply: str) -> str:
        self.tracker.append(conversation_id, Turn(text=reply, sender="agent"))
        return reply

    def status(self) -> dict:
        return {
            "in_flight": len(self.dedup),
            "nlu_remote_available": self.classifier.remote_available,
            "nlu_degraded": self.classifier.health.degraded,
            "nlu_failures": self.classifier.health.failures,
            "conversations": self.tracker.conversations(),
            "active_sessions": self.sessions.active_sessions(),
        }

    async def auth_status(self, conversation_id: str) -> AuthStatus:
        async with self.locks.hold(conversation_id):
            return self.sessions.authenticate(conversation_id)

    async def logout(self, conversation_id: str) -> bool:
        async with self.locks.hold(conversation_id):
            self.tracker.clear(conversation_id)
            return self.sessions.logout(conversation_id)
