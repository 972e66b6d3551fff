"""Tests for the keyword classifier used when the remote NLU is unavailable."""

from datetime import date

import pytest

from ledgerbot.llm.offline import (
    OfflineAnalyzer,
    dominant_category,
    extract_amount,
    extract_date_hint,
    is_business_framing,
)
from ledgerbot.models.schemas import IntentType, LedgerEntry


def _entry(category: str, amount: float = 10.0, kind: str = "expense") -> LedgerEntry:
    return LedgerEntry(user_id=1, kind=kind, amount=amount, category=category, occurred_on=date.today())


@pytest.fixture
def analyzer():
    return OfflineAnalyzer()


class TestAmounts:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Gastei 50 no mercado", 50.0),
            ("paguei 49,90 na farmácia", 49.9),
            ("aluguel de 1.500,00", 1500.0),
            ("investi 5k", 5000.0),
            ("recebi 2 mil de bônus", 2000.0),
            ("comprei dia 12/05 por 30", 30.0),
        ],
    )
    def test_extracts_first_amount(self, text, expected):
        assert extract_amount(text) == pytest.approx(expected)

    def test_no_number(self):
        assert extract_amount("gastei no mercado") is None


class TestDateHints:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("gastei 10 ontem", "ontem"),
            ("recebi 300 semana passada", "semana passada"),
            ("paguei 20 em 03/04", "03/04"),
            ("gastei 5", "hoje"),
        ],
    )
    def test_date_hint(self, text, expected):
        assert extract_date_hint(text) == expected


class TestRules:
    def test_supermarket_expense(self, analyzer):
        record = analyzer.analyze("Gastei 50 no supermercado")
        assert record.type == IntentType.VARIABLE_EXPENSE
        assert record.amount == 50
        assert record.category == "supermercado"
        assert record.scope == "personal"
        assert record.source == "offline"

    def test_salary_income(self, analyzer):
        record = analyzer.analyze("Recebi 5000 de salário")
        assert record.type == IntentType.INCOME
        assert record.amount == 5000
        assert record.category == "salario"
        assert record.confidence == pytest.approx(0.9)

    def test_query_wins_over_everything(self, analyzer):
        record = analyzer.analyze("Quanto gastei no supermercado?")
        assert record.type == IntentType.QUERY
        assert record.intention == "consultar_gastos"
        assert record.confidence == pytest.approx(0.95)

    def test_balance_query(self, analyzer):
        assert analyzer.analyze("qual meu saldo").intention == "consultar_saldo"

    def test_rent_is_fixed_expense(self, analyzer):
        record = analyzer.analyze("Paguei 1200 de aluguel")
        assert record.type == IntentType.FIXED_EXPENSE
        assert record.category == "moradia"

    def test_business_rent(self, analyzer):
        record = analyzer.analyze("Paguei 2000 de aluguel da loja")
        assert record.scope == "business"
        assert record.type == IntentType.FIXED_EXPENSE
        assert record.category == "aluguel"

    def test_investment(self, analyzer):
        record = analyzer.analyze("Apliquei 300 no tesouro")
        assert record.type == IntentType.INVESTMENT
        assert record.category == "tesouro"

    def test_generic_expense(self, analyzer):
        record = analyzer.analyze("Comprei um presente por 80")
        assert record.type == IntentType.VARIABLE_EXPENSE
        assert record.category == "outros"
        assert record.confidence == pytest.approx(0.8)

    def test_unknown_text_is_other(self, analyzer):
        record = analyzer.analyze("bom dia")
        assert record.type == IntentType.OTHER
        assert record.confidence == pytest.approx(0.7)

    def test_personal_cues_beat_single_business_cue(self):
        assert is_business_framing("vendi meu celular para minha prima") is False
        assert is_business_framing("paguei o fornecedor da loja") is True


class TestEnrichment:
    def test_dominant_category_needs_half(self):
        assert dominant_category([_entry("transporte")] * 3 + [_entry("lazer")] * 2) == "transporte"
        assert dominant_category([_entry("a"), _entry("b"), _entry("c")]) is None
        assert dominant_category([]) is None

    def test_outros_is_replaced_by_history(self, analyzer):
        history = [_entry("transporte")] * 3
        record = analyzer.analyze_with_context("Gastei 30", history)

        assert record.category == "transporte"
        assert record.confidence == pytest.approx(0.9)
        assert "transporte" in record.rationale

    def test_explicit_category_is_kept(self, analyzer):
        history = [_entry("transporte")] * 3
        record = analyzer.analyze_with_context("Gastei 30 no cinema", history)
        assert record.category == "lazer"
        assert record.confidence == pytest.approx(0.7)

    def test_income_history_does_not_categorise_expenses(self, analyzer):
        history = [_entry("salario", 5000, kind="income")] * 4
        record = analyzer.analyze_with_context("gastei 30", history)

        assert record.type == IntentType.VARIABLE_EXPENSE
        assert record.category == "outros"
        assert record.confidence == pytest.approx(0.8)

    def test_only_matching_kinds_count_towards_dominance(self, analyzer):
        history = [_entry("transporte"), _entry("transporte")] + [_entry("salario", 5000, kind="income")] * 3
        record = analyzer.analyze_with_context("gastei 30", history)
        assert record.category == "transporte"

    def test_queries_are_not_enriched(self, analyzer):
        record = analyzer.analyze_with_context("Quanto gastei?", [_entry("transporte")] * 3)
        assert record.category == "consulta"

    def test_high_expense_tip(self, analyzer):
        record = analyzer.analyze_with_context("Gastei 350 no restaurante", [])
        assert "Gasto alto" in record.tip
