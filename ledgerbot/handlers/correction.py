import re
import time
from typing import Callable

from loguru import logger

from ledgerbot.formatting import KIND_LABELS, format_brl, format_category
from ledgerbot.handlers.base import NOT_APPLICABLE, BaseHandler, ExpiringMap
from ledgerbot.models.schemas import IntentRecord, IntentType, LedgerEntry

EXPLICIT_KEYWORDS = (
    "na verdade", "errado", "errei", "corrigir", "corrija", "correção",
    "correcao", "alterar", "altere", "mudar", "mude", "não era", "nao era",
    "não é", "nao é",
)

UNDO_PATTERNS = (
    r"\bdesfaz(er)?\b",
    r"\b(apag|cancel|remov|exclu)\w*\s+(o\s+)?(último|ultimo)\b",
)

# Only read as a correction while a just-recorded entry is awaiting one
SOFT_KEYWORDS = ("foi", "era", "categoria")

CATEGORY_MAPPINGS = {
    "casa": "moradia",
    "moradia": "moradia",
    "aluguel": "moradia",
    "comida": "alimentacao",
    "alimentação": "alimentacao",
    "alimentacao": "alimentacao",
    "restaurante": "alimentacao",
    "lanche": "alimentacao",
    "mercado": "supermercado",
    "supermercado": "supermercado",
    "feira": "supermercado",
    "transporte": "transporte",
    "uber": "transporte",
    "taxi": "transporte",
    "gasolina": "transporte",
    "combustível": "transporte",
    "combustivel": "transporte",
    "lazer": "lazer",
    "diversão": "lazer",
    "diversao": "lazer",
    "cinema": "lazer",
    "roupa": "roupas",
    "roupas": "roupas",
    "saúde": "saude",
    "saude": "saude",
    "farmácia": "saude",
    "farmacia": "saude",
    "remédio": "saude",
    "remedio": "saude",
    "médico": "saude",
    "medico": "saude",
    "educação": "educacao",
    "educacao": "educacao",
    "curso": "educacao",
    "livro": "educacao",
    "tecnologia": "tecnologia",
    "celular": "tecnologia",
    "computador": "tecnologia",
    "salário": "salario",
    "salario": "salario",
    "freelance": "freelance",
    "vendas": "vendas",
    "venda": "vendas",
    "fornecedor": "fornecedores",
    "fornecedores": "fornecedores",
    "marketing": "marketing",
    "outros": "outros",
}

_CATEGORY_PATTERNS = (
    re.compile(r"\bfoi\s+(?:com\s+|de\s+|no\s+|na\s+|em\s+)?([a-zà-ú]+)"),
    re.compile(r"\bera\s+(?:de\s+|do\s+|da\s+)?([a-zà-ú]+)"),
    re.compile(r"\bcategoria\s+(?:de\s+|é\s+)?([a-zà-ú]+)"),
    re.compile(r"^([a-zà-ú]+)$"),
)


def map_category(word: str) -> str | None:
    return CATEGORY_MAPPINGS.get(word.lower().strip())


def extract_category(text: str) -> str | None:
    normalized = text.lower().strip().rstrip(".!")
    for pattern in _CATEGORY_PATTERNS:
        match = pattern.search(normalized)
        if match:
            category = map_category(match.group(1))
            if category:
                return category
    for word, category in CATEGORY_MAPPINGS.items():
        if re.search(rf"\b{re.escape(word)}\b", normalized):
            return category
    return None


class CorrectionHandler(BaseHandler):
    """Amends or removes the user's latest ledger entry."""

    name = "correction"

    def __init__(self, ledger, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic):
        super().__init__(ledger)
        self.pending = ExpiringMap(ttl, clock)

    def arm(self, user_id: int, entry: LedgerEntry) -> None:
        """Open a correction window for an entry that was just written."""
        self.pending.set(user_id, entry.id)

    def _target(self, user_id: int) -> LedgerEntry | None:
        entry_id = self.pending.get(user_id)
        if entry_id is not None:
            entry = self.ledger.get_entry(entry_id)
            if entry is not None:
                return entry
        return self.ledger.last_entry(user_id)

    def is_undo(self, text: str) -> bool:
        return any(re.search(p, text) for p in UNDO_PATTERNS)

    def detect(self, user_id: int, record: IntentRecord) -> bool:
        text = (record.description or "").lower().strip()
        if not text:
            return False

        explicit = self.is_undo(text) or any(
            re.search(rf"\b{re.escape(kw)}\b", text) for kw in EXPLICIT_KEYWORDS
        )
        if explicit:
            return self._target(user_id) is not None

        # A message carrying an amount is a new transaction unless phrased explicitly
        if record.amount or record.type == IntentType.QUERY or self.pending.get(user_id) is None:
            return False
        if any(re.search(rf"\b{kw}\b", text) for kw in SOFT_KEYWORDS):
            return True
        return len(text.split()) == 1 and map_category(text) is not None

    async def try_process(self, user_id: int, record: IntentRecord) -> str | None:
        if not self.detect(user_id, record):
            return NOT_APPLICABLE
        return await self.process(user_id, record)

    async def process(self, user_id: int, record: IntentRecord) -> str:
        target = self._target(user_id)
        if target is None:
            return "🤷 Não encontrei nenhum registro recente para corrigir."

        text = (record.description or "").lower()
        if self.is_undo(text):
            self.ledger.delete_entry(target.id)
            self.pending.pop(user_id)
            logger.info("Deleted entry #{} for user #{}", target.id, user_id)
            return (
                f"🗑️ *Registro removido*\n\n"
                f"{KIND_LABELS[target.kind]} de {format_brl(target.amount)} "
                f"({format_category(target.category)})"
            )

        updates = {}
        changes = []
        category = extract_category(text)
        if category and category != target.category:
            updates["category"] = category
            changes.append(
                f"📂 Categoria: {format_category(target.category)} → {format_category(category)}"
            )
        if record.amount and record.amount > 0 and record.amount != target.amount:
            updates["amount"] = record.amount
            changes.append(f"💰 Valor: {format_brl(target.amount)} → {format_brl(record.amount)}")

        if not updates:
            return (
                "🤔 Não entendi a correção.\n\n"
                "💡 Tente ser mais específico, por exemplo:\n"
                '• "Foi alimentação"\n'
                '• "Na verdade foi 80"\n'
                '• "Apaga o último"'
            )

        self.ledger.update_entry(target.id, **updates)
        self.pending.pop(user_id)
        logger.info("Corrected entry #{} for user #{}: {}", target.id, user_id, updates)
        return "✏️ *Registro corrigido*\n\n" + "\n".join(changes)
