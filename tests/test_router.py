"""End-to-end tests: inbound message in, reply out."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from ledgerbot.core.context import ContinuationDetector
from ledgerbot.formatting import CLARIFICATION_PROMPT, GENERIC_FAILURE, LOGIN_FIRST, WELCOME_PROMPT
from ledgerbot.llm.classifier import IntentClassifier, ServiceHealth
from ledgerbot.llm.offline import OfflineAnalyzer
from ledgerbot.models.schemas import InboundMessage, IntentRecord, IntentType, Media, MediaResult


class Chat:
    """Feeds numbered messages for one conversation into the router."""

    def __init__(self, router, conversation_id: str = "555"):
        self.router = router
        self.conversation_id = conversation_id
        self.counter = 0

    def message(self, text: str = "", media: Media | None = None) -> InboundMessage:
        self.counter += 1
        return InboundMessage(
            message_id=f"{self.conversation_id}:{self.counter}",
            conversation_id=self.conversation_id,
            text=text,
            media=media,
        )

    async def send(self, text: str = "", media: Media | None = None) -> str | None:
        return await self.router.handle(self.message(text, media))

    async def login(self, email: str = "ana@example.com"):
        await self.send("oi")
        await self.send(email)
        return await self.send("segredo123")


class TestLoginFlow:
    @pytest.mark.asyncio
    async def test_first_message_gets_welcome(self, router):
        assert await Chat(router).send("oi") == WELCOME_PROMPT

    @pytest.mark.asyncio
    async def test_login_then_expense(self, router, ledger):
        chat = Chat(router)
        welcome = await chat.login()
        assert "Bem-vindo" in welcome

        reply = await chat.send("Gastei 50 no supermercado")

        assert "Despesa registrada" in reply
        user = ledger.find_user_by_address("555")
        entry = ledger.last_entry(user.id)
        assert entry.amount == 50
        assert entry.category == "supermercado"

    @pytest.mark.asyncio
    async def test_password_is_not_kept_in_history(self, router):
        chat = Chat(router)
        await chat.login()
        texts = [t.text for t in router.tracker.recent("555")]
        assert "segredo123" not in texts

    @pytest.mark.asyncio
    async def test_login_dialogue_is_dropped_from_history(self, router):
        chat = Chat(router)
        await chat.login("ana@example.com")
        assert router.tracker.recent("555") == []

        await chat.send("Gastei 50 no supermercado")
        texts = [t.text for t in router.tracker.recent("555")]
        assert len(texts) == 2
        assert not any("ana@example.com" in t for t in texts)


class TestDuplicates:
    @pytest.mark.asyncio
    async def test_redelivery_produces_no_reply(self, router):
        chat = Chat(router)
        message = chat.message("oi")
        assert await router.handle(message) == WELCOME_PROMPT
        assert await router.handle(message) is None

    @pytest.mark.asyncio
    async def test_concurrent_redelivery_is_processed_once(self, router):
        message = Chat(router).message("oi")
        replies = await asyncio.gather(*(router.handle(message) for _ in range(5)))
        assert replies.count(None) == 4


class TestConversationFlow:
    @pytest.mark.asyncio
    async def test_query_follow_up_lists_entries(self, router):
        chat = Chat(router)
        await chat.login()
        await chat.send("Gastei 50 no supermercado")
        await chat.send("Gastei 20 no uber")

        summary = await chat.send("Quanto gastei este mês?")
        assert "R$ 70,00" in summary

        details = await chat.send("mostre cada uma")
        assert "1." in details and "2." in details

    @pytest.mark.asyncio
    async def test_category_correction_after_expense(self, router, ledger):
        chat = Chat(router)
        await chat.login()
        await chat.send("Gastei 30 no uber")
        reply = await chat.send("foi alimentação")

        assert "corrigido" in reply
        user = ledger.find_user_by_address("555")
        assert ledger.last_entry(user.id).category == "alimentacao"

    @pytest.mark.asyncio
    async def test_conversations_are_independent(self, router):
        a, b = Chat(router, "1"), Chat(router, "2")
        await a.login("a@example.com")
        assert await b.send("Gastei 10 no uber") == WELCOME_PROMPT

    @pytest.mark.asyncio
    async def test_low_confidence_remote_result_asks_for_clarification(self, router, ledger, clock, remote_factory):
        remote = remote_factory(
            IntentRecord(type=IntentType.VARIABLE_EXPENSE, confidence=0.3, amount=40, source="remote")
        )
        router.classifier = IntentClassifier(
            remote=remote,
            offline=OfflineAnalyzer(),
            continuation=ContinuationDetector(),
            health=ServiceHealth(cooldown=60.0, clock=clock),
        )
        chat = Chat(router)
        await chat.login()

        reply = await chat.send("comprei umas coisas 40")

        assert reply == CLARIFICATION_PROMPT
        user = ledger.find_user_by_address("555")
        assert ledger.list_entries(user.id) == []

    @pytest.mark.asyncio
    async def test_unexpected_failure_gives_generic_reply(self, router):
        chat = Chat(router)
        await chat.login()
        router.classifier.classify = AsyncMock(side_effect=RuntimeError("boom"))
        assert await chat.send("Gastei 10") == GENERIC_FAILURE

    @pytest.mark.asyncio
    async def test_status(self, router):
        chat = Chat(router)
        await chat.login()
        await chat.send("Gastei 10 no uber")
        status = router.status()
        assert status["active_sessions"] == 1
        assert status["conversations"] == 1
        assert status["nlu_remote_available"] is False


class TestMedia:
    @pytest.mark.asyncio
    async def test_media_requires_login(self, router):
        media = Media(kind="audio", data=b"ogg")
        assert await Chat(router).send(media=media) == LOGIN_FIRST

    @pytest.mark.asyncio
    async def test_voice_note_is_transcribed_and_classified(self, router, ledger):
        router.transcriber = MagicMock()
        router.transcriber.process = AsyncMock(
            return_value=MediaResult(ok=True, text="Recebi 5000 de salário")
        )
        chat = Chat(router)
        await chat.login()

        reply = await chat.send(media=Media(kind="audio", data=b"ogg", mime_type="audio/ogg"))

        assert "Receita registrada" in reply
        user = ledger.find_user_by_address("555")
        assert ledger.last_entry(user.id).category == "salario"

    @pytest.mark.asyncio
    async def test_photo_starts_sale_and_yes_records_it(self, router, ledger):
        hint = IntentRecord(type=IntentType.SALE, confidence=0.8, product_name="Bolo", amount=30, source="media")
        router.recognizer = MagicMock()
        router.recognizer.process = AsyncMock(return_value=MediaResult(ok=True, text="Bolo", intent=hint))
        chat = Chat(router)
        await chat.login()

        prompt = await chat.send(media=Media(kind="image", data=b"jpg", mime_type="image/jpeg"))
        assert "Bolo" in prompt

        reply = await chat.send("sim")
        assert "Venda registrada" in reply
        user = ledger.find_user_by_address("555")
        assert ledger.last_entry(user.id).kind == "sale"

    @pytest.mark.asyncio
    async def test_media_failure_is_retryable(self, router):
        router.transcriber = MagicMock()
        router.transcriber.process = AsyncMock(return_value=MediaResult(ok=False, error="Não consegui transcrever o áudio."))
        chat = Chat(router)
        await chat.login()

        reply = await chat.send(media=Media(kind="audio", data=b"ogg"))
        assert "Tente novamente" in reply

    @pytest.mark.asyncio
    async def test_missing_collaborator(self, router):
        chat = Chat(router)
        await chat.login()
        reply = await chat.send(media=Media(kind="image", data=b"jpg"))
        assert "imagens" in reply


class TestSendCallback:
    @pytest.mark.asyncio
    async def test_reply_is_pushed_once_per_admitted_message(self, router):
        router.send = AsyncMock()
        message = Chat(router, "777").message("oi")

        await router.handle(message)
        await router.handle(message)

        router.send.assert_awaited_once_with("777", WELCOME_PROMPT)


class TestConversationLocks:
    @pytest.mark.asyncio
    async def test_lock_is_dropped_after_message(self, router):
        await Chat(router).send("oi")
        assert len(router.locks) == 0

    @pytest.mark.asyncio
    async def test_logout_waits_for_message_in_progress(self, router):
        chat = Chat(router)
        await chat.login()

        async with router.locks.hold("555"):
            logout = asyncio.create_task(router.logout("555"))
            await asyncio.sleep(0)
            assert not logout.done()
            assert router.sessions.authenticate("555").authenticated is True

        assert await logout is True
        assert router.sessions.authenticate("555").authenticated is False
        assert len(router.locks) == 0

    @pytest.mark.asyncio
    async def test_auth_status_waits_for_message_in_progress(self, router):
        async with router.locks.hold("555"):
            status = asyncio.create_task(router.auth_status("555"))
            await asyncio.sleep(0)
            assert not status.done()
            router.sessions.advance("555", "oi")
            router.sessions.advance("555", "ana@example.com")
            router.sessions.advance("555", "segredo123")

        assert (await status).authenticated is True
