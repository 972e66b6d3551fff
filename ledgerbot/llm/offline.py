"""Deterministic keyword classifier used when the remote NLU is unavailable.

Rules are evaluated top to bottom; the first match wins and the last rule
always matches.
"""

import re
from collections import Counter
from typing import Callable, NamedTuple

from ledgerbot.models.schemas import IntentRecord, IntentType, LedgerEntry

QUERY_KEYWORDS = (
    "quanto", "quanta", "quais", "relatório", "relatorio", "consulta", "gastos",
    "receitas", "saldo", "extrato", "resumo", "balanço", "balanco", "total",
    "gastei este mês", "gastei hoje", "mostre", "mostra", "detalhe", "detalha",
    "cada", "lista", "veja", "exiba", "me fale", "conte", "explique", "me diga",
    "apresente", "discrimine", "especifique",
)

INCOME_KEYWORDS = (
    "recebi", "ganhei", "salário", "salario", "renda", "bonus", "bônus",
    "freelance", "freela", "vendi", "venda", "lucro", "rendimento", "entrada",
    "recebimento", "pagamento recebido", "comissão", "comissao",
)

FIXED_EXPENSE_KEYWORDS = (
    "aluguel", "financiamento", "prestação", "prestacao", "seguro",
    "condomínio", "condominio",
)

VARIABLE_EXPENSE_CATEGORIES = (
    ("supermercado", ("supermercado", "mercado", "feira", "açougue", "acougue")),
    ("alimentacao", ("comida", "restaurante", "lanche", "almoço", "almoco", "jantar", "padaria", "ifood")),
    ("transporte", ("uber", "taxi", "táxi", "gasolina", "combustível", "combustivel", "ônibus", "onibus", "metrô", "metro", "transporte", "estacionamento")),
    ("lazer", ("cinema", "lazer", "diversão", "diversao", "teatro", "show", "festa")),
    ("saude", ("farmácia", "farmacia", "remédio", "remedio", "médico", "medico", "hospital", "dentista")),
    ("roupas", ("roupa", "sapato", "vestuário", "vestuario")),
)

BUSINESS_EXPENSE_KEYWORDS = ("marketing", "publicidade", "fornecedor")

INVESTMENT_CATEGORIES = (
    ("acoes", ("ações", "acoes")),
    ("fundos", ("fundo",)),
    ("tesouro", ("tesouro",)),
    ("poupanca", ("poupança", "poupanca")),
    ("cdb", ("cdb",)),
)
INVESTMENT_KEYWORDS = (
    "investi", "investimento", "apliquei", "aplicação", "aplicacao",
    "poupança", "poupanca", "ações", "acoes", "fundo", "tesouro", "cdb",
)

GENERIC_EXPENSE_KEYWORDS = ("gastei", "comprei", "paguei", "gasto", "despesa", "saiu", "custou")

BUSINESS_KEYWORDS = (
    "vendi", "venda", "produto", "cliente", "comprador", "fornecedor",
    "supplier", "empresa", "negócio", "negocio", "marketing", "publicidade",
    "propaganda", "anúncio", "anuncio", "loja", "escritório", "escritorio",
    "comercial", "empresarial", "lucro", "cnpj", "nota fiscal", "faturamento",
    "comissão", "comissao",
)

PERSONAL_KEYWORDS = (
    "casa", "família", "familia", "pessoal", "meu", "minha", "supermercado",
    "mercado", "feira", "padaria", "restaurante", "lanche", "jantar", "almoço",
    "almoco", "uber", "taxi", "ônibus", "onibus", "metrô", "metro", "médico",
    "medico", "farmácia", "farmacia", "remédio", "remedio", "dentista",
    "hospital", "cinema", "teatro", "show", "festa", "roupa", "sapato",
    "cabelo", "salão", "salao", "barbeiro",
)

BRANCH_CONFIDENCE = {
    "query": 0.95,
    "income": 0.9,
    "expense": 0.7,
    "investment": 0.7,
    "generic_expense": 0.8,
    "other": 0.7,
}
ENRICHMENT_BOOST = 0.1
# Ledger kinds whose categories can stand in for an uncategorised record
ENRICHMENT_KINDS = {
    IntentType.INCOME: ("income", "sale"),
    IntentType.FIXED_EXPENSE: ("expense",),
    IntentType.VARIABLE_EXPENSE: ("expense",),
    IntentType.INVESTMENT: ("investment",),
}
HIGH_EXPENSE_TIP_THRESHOLD = 100

_AMOUNT_RE = re.compile(
    r"(?<![\d/])(\d{1,3}(?:\.\d{3})+(?:,\d{1,2})?|\d+(?:[.,]\d{1,2})?)(?:\s*(k|mil)\b)?",
    re.IGNORECASE,
)
_DATE_RE = re.compile(r"\b\d{1,2}[/-]\d{1,2}(?:[/-]\d{2,4})?\b")


def _has_any(text: str, keywords: tuple[str, ...]) -> bool:
    return any(re.search(rf"\b{re.escape(kw)}s?\b", text) for kw in keywords)


def _first_category(text: str, table) -> str | None:
    for category, keywords in table:
        if _has_any(text, keywords):
            return category
    return None


def extract_amount(text: str) -> float | None:
    """First numeric literal in the text; '1.500,00', '49,90' and '5k' are understood."""
    candidate = _DATE_RE.sub(" ", text)
    match = _AMOUNT_RE.search(candidate)
    if not match:
        return None
    literal, multiplier = match.groups()
    if "," in literal:
        literal = literal.replace(".", "").replace(",", ".")
    elif re.fullmatch(r"\d{1,3}(?:\.\d{3})+", literal):
        literal = literal.replace(".", "")
    value = float(literal)
    if multiplier:
        value *= 1000
    return value


def extract_date_hint(text: str) -> str:
    lowered = text.lower()
    if "ontem" in lowered:
        return "ontem"
    if "semana passada" in lowered:
        return "semana passada"
    if re.search(r"\b(este|esse|neste|nesse) mês\b", lowered):
        return "este mês"
    match = _DATE_RE.search(lowered)
    if match:
        return match.group(0)
    return "hoje"


class Rule(NamedTuple):
    name: str
    matches: Callable[[str], bool]
    apply: Callable[[str, IntentRecord, bool], None]


def _apply_query(text: str, record: IntentRecord, business: bool) -> None:
    record.type = IntentType.QUERY
    record.category = "consulta"
    if _has_any(text, ("saldo", "balanço", "balanco")):
        record.intention = "consultar_saldo"
    elif _has_any(text, ("receitas", "recebi", "ganhei")):
        record.intention = "consultar_receitas"
    else:
        record.intention = "consultar_gastos"
    record.tip = "Vou buscar seus dados financeiros para você!"


def _apply_income(text: str, record: IntentRecord, business: bool) -> None:
    record.type = IntentType.INCOME
    record.intention = "registrar_receita"
    if business or _has_any(text, ("vendi", "venda")):
        record.scope = "business"
        record.category = "vendas"
    elif _has_any(text, ("salário", "salario")):
        record.category = "salario"
    elif _has_any(text, ("freelance", "freela")):
        record.category = "freelance"
    elif _has_any(text, ("bonus", "bônus")):
        record.category = "bonus"
    elif _has_any(text, ("rendimento", "dividendo")):
        record.category = "rendimentos"


def _is_expense(text: str) -> bool:
    return (
        _has_any(text, FIXED_EXPENSE_KEYWORDS)
        or _has_any(text, BUSINESS_EXPENSE_KEYWORDS)
        or _first_category(text, VARIABLE_EXPENSE_CATEGORIES) is not None
    )


def _apply_expense(text: str, record: IntentRecord, business: bool) -> None:
    record.intention = "registrar_despesa"
    if business:
        record.scope = "business"
        if _has_any(text, ("aluguel",)) and _has_any(text, ("loja", "escritório", "escritorio", "comercial")):
            record.type = IntentType.FIXED_EXPENSE
            record.category = "aluguel"
        elif _has_any(text, ("marketing", "publicidade")):
            record.type = IntentType.VARIABLE_EXPENSE
            record.category = "marketing"
        elif _has_any(text, ("fornecedor",)):
            record.type = IntentType.VARIABLE_EXPENSE
            record.category = "fornecedores"
        else:
            record.type = IntentType.VARIABLE_EXPENSE
        return

    if _has_any(text, FIXED_EXPENSE_KEYWORDS):
        record.type = IntentType.FIXED_EXPENSE
        record.category = "seguro" if _has_any(text, ("seguro",)) else "moradia"
        return
    record.type = IntentType.VARIABLE_EXPENSE
    record.category = _first_category(text, VARIABLE_EXPENSE_CATEGORIES) or "outros"


def _apply_investment(text: str, record: IntentRecord, business: bool) -> None:
    record.type = IntentType.INVESTMENT
    record.intention = "registrar_investimento"
    record.category = _first_category(text, INVESTMENT_CATEGORIES) or "aplicacao"


def _apply_generic_expense(text: str, record: IntentRecord, business: bool) -> None:
    record.type = IntentType.VARIABLE_EXPENSE
    record.intention = "registrar_despesa"
    if business:
        record.scope = "business"


def _apply_other(text: str, record: IntentRecord, business: bool) -> None:
    record.type = IntentType.OTHER


RULES = (
    Rule("query", lambda t: _has_any(t, QUERY_KEYWORDS), _apply_query),
    Rule("income", lambda t: _has_any(t, INCOME_KEYWORDS), _apply_income),
    Rule("expense", _is_expense, _apply_expense),
    Rule("investment", lambda t: _has_any(t, INVESTMENT_KEYWORDS), _apply_investment),
    Rule("generic_expense", lambda t: _has_any(t, GENERIC_EXPENSE_KEYWORDS), _apply_generic_expense),
    Rule("other", lambda t: True, _apply_other),
)


def _hits(text: str, keywords: tuple[str, ...]) -> int:
    return sum(1 for kw in keywords if re.search(rf"\b{re.escape(kw)}s?\b", text))


def is_business_framing(text: str) -> bool:
    """Business framing needs more business than personal cues; ties stay personal."""
    return _hits(text, BUSINESS_KEYWORDS) > _hits(text, PERSONAL_KEYWORDS)


def dominant_category(entries: list[LedgerEntry]) -> str | None:
    """Category held by at least half of the entries, ignoring 'outros'."""
    if not entries:
        return None
    counts = Counter(e.category for e in entries if e.category and e.category != "outros")
    if not counts:
        return None
    category, count = counts.most_common(1)[0]
    if count * 2 < len(entries):
        return None
    return category


class OfflineAnalyzer:
    def __init__(self, rules: tuple[Rule, ...] = RULES):
        self.rules = rules

    def analyze(self, text: str) -> IntentRecord:
        lowered = text.lower()
        record = IntentRecord(
            description=text.strip(),
            amount=extract_amount(text),
            date_hint=extract_date_hint(text),
            rationale="Análise baseada em palavras-chave",
            tip="Continue registrando suas transações para melhor controle financeiro",
            source="offline",
        )
        business = is_business_framing(lowered)
        for rule in self.rules:
            if rule.matches(lowered):
                rule.apply(lowered, record, business)
                record.confidence = BRANCH_CONFIDENCE[rule.name]
                break

        if not record.category:
            record.category = "outros"
        return record

    def analyze_with_context(self, text: str, recent_entries: list[LedgerEntry]) -> IntentRecord:
        record = self.analyze(text)
        return self.enrich(record, recent_entries)

    def enrich(self, record: IntentRecord, recent_entries: list[LedgerEntry]) -> IntentRecord:
        kinds = ENRICHMENT_KINDS.get(record.type)
        if kinds and record.category == "outros":
            dominant = dominant_category([e for e in recent_entries[:5] if e.kind in kinds])
            if dominant:
                record.category = dominant
                record.confidence = min(1.0, round(record.confidence + ENRICHMENT_BOOST, 2))
                record.rationale = f"{record.rationale} (baseado no histórico recente: {dominant})"

        if record.type == IntentType.VARIABLE_EXPENSE and (record.amount or 0) > HIGH_EXPENSE_TIP_THRESHOLD:
            record.tip = "Gasto alto detectado! Considere revisar seu orçamento para esta categoria."
        elif record.type == IntentType.INCOME:
            record.tip = "Ótimo! Lembre-se de separar uma parte para investimentos."
        return record
