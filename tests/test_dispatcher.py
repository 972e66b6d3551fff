"""Tests for stage ordering and failure handling in the dispatcher."""

from unittest.mock import AsyncMock

import pytest

from ledgerbot.core.dispatcher import HandlerDispatcher
from ledgerbot.formatting import CLARIFICATION_PROMPT, GENERIC_FAILURE
from ledgerbot.models.schemas import IntentRecord, IntentType


def _record(type_: IntentType, confidence: float = 0.9, **kw) -> IntentRecord:
    return IntentRecord(type=type_, confidence=confidence, **kw)


class TestRouting:
    def test_routing_table_must_cover_every_type(self, dispatcher):
        routes = dict(dispatcher.routes)
        routes.pop(IntentType.SALE)
        with pytest.raises(ValueError, match="sale"):
            HandlerDispatcher(dispatcher.corrections, dispatcher.sales, routes)

    @pytest.mark.asyncio
    async def test_expense_reaches_expense_handler(self, dispatcher, ledger, user):
        record = _record(IntentType.VARIABLE_EXPENSE, amount=50, category="supermercado")
        reply = await dispatcher.dispatch(user.id, record, "Gastei 50 no supermercado")
        assert "Despesa registrada" in reply
        assert ledger.last_entry(user.id).amount == 50

    @pytest.mark.asyncio
    async def test_low_confidence_never_reaches_a_handler(self, dispatcher, ledger, user):
        record = _record(IntentType.INCOME, confidence=0.49, amount=300)
        reply = await dispatcher.dispatch(user.id, record, "talvez 300")
        assert reply == CLARIFICATION_PROMPT
        assert ledger.list_entries(user.id) == []

    @pytest.mark.asyncio
    async def test_other_with_amount_is_recorded_as_expense(self, dispatcher, ledger, user):
        record = _record(IntentType.OTHER, confidence=0.7, amount=25)
        await dispatcher.dispatch(user.id, record, "25 pila")
        assert ledger.last_entry(user.id).kind == "expense"

    @pytest.mark.asyncio
    async def test_other_without_amount_asks_to_rephrase(self, dispatcher, user):
        reply = await dispatcher.dispatch(user.id, _record(IntentType.OTHER, 0.7), "bom dia")
        assert reply == CLARIFICATION_PROMPT


class TestStageOrder:
    @pytest.mark.asyncio
    async def test_correction_beats_income(self, dispatcher, ledger, user):
        await dispatcher.dispatch(
            user.id,
            _record(IntentType.VARIABLE_EXPENSE, amount=200, category="outros"),
            "Gastei 200",
        )
        entry = ledger.last_entry(user.id)

        income = _record(IntentType.INCOME, amount=300, category="outros")
        reply = await dispatcher.dispatch(user.id, income, "Na verdade recebi 300")

        assert "corrigido" in reply
        assert [e.kind for e in ledger.list_entries(user.id)] == ["expense"]
        assert ledger.get_entry(entry.id).amount == 300

    @pytest.mark.asyncio
    async def test_pending_sale_confirmation_beats_type(self, dispatcher, ledger, user):
        hint = _record(IntentType.SALE, 0.8, product_name="Brigadeiro", amount=5, source="media")
        await dispatcher.dispatch(user.id, hint)

        # "sim" on its own classifies as OTHER
        reply = await dispatcher.dispatch(user.id, _record(IntentType.OTHER, 0.7), "sim")

        assert "Venda registrada" in reply
        assert ledger.last_entry(user.id).kind == "sale"

    @pytest.mark.asyncio
    async def test_detectors_read_raw_text_not_description(self, dispatcher, ledger, user):
        ledger.record_expense(user.id, _record(IntentType.VARIABLE_EXPENSE, amount=40))
        # Remote NLU paraphrased the description; the user's words still say "apaga o último"
        record = _record(IntentType.CORRECTION, description="usuário quer remover registro")
        reply = await dispatcher.dispatch(user.id, record, "apaga o último")
        assert "removido" in reply


class TestFailures:
    @pytest.mark.asyncio
    async def test_handler_exception_gives_non_empty_reply(self, dispatcher, user):
        handler = dispatcher.routes[IntentType.VARIABLE_EXPENSE]
        handler.process = AsyncMock(side_effect=RuntimeError("disk full"))

        record = _record(IntentType.VARIABLE_EXPENSE, amount=50)
        reply = await dispatcher.dispatch(user.id, record, "Gastei 50")

        assert reply
        assert "Não consegui registrar a despesa" in reply
        assert "R$ 50,00" in reply

    @pytest.mark.asyncio
    async def test_query_failure_gives_generic_reply(self, dispatcher, user):
        dispatcher.routes[IntentType.QUERY].process = AsyncMock(side_effect=KeyError("x"))
        reply = await dispatcher.dispatch(user.id, _record(IntentType.QUERY), "Quanto gastei?")
        assert reply == GENERIC_FAILURE

    @pytest.mark.asyncio
    async def test_detector_failure_is_contained(self, dispatcher, user):
        dispatcher.corrections.try_process = AsyncMock(side_effect=ValueError("boom"))
        reply = await dispatcher.dispatch(user.id, _record(IntentType.QUERY), "Quanto gastei?")
        assert reply == GENERIC_FAILURE
