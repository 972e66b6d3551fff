from collections import Counter
from datetime import date, timedelta

from ledgerbot.core.context import DETAILED_QUERY_INTENTION
from ledgerbot.formatting import format_brl, format_category, format_entry_line
from ledgerbot.handlers.base import BaseHandler
from ledgerbot.models.schemas import IntentRecord, LedgerEntry

MAX_DETAIL_LINES = 20


def query_window(record: IntentRecord, today: date | None = None) -> tuple[date, date, str]:
    """Date range a query refers to, with a label for the reply."""
    today = today or date.today()
    hint = (record.date_hint or "").lower()
    if hint == "ontem":
        day = today - timedelta(days=1)
        return day, day, "ontem"
    if hint == "semana passada":
        return today - timedelta(days=7), today, "nos últimos 7 dias"
    if "hoje" in (record.description or "").lower():
        return today, today, "hoje"
    return today.replace(day=1), today, "este mês"


class QueryHandler(BaseHandler):
    name = "query"

    async def process(self, user_id: int, record: IntentRecord) -> str:
        start, end, label = query_window(record)
        entries = [e for e in self.ledger.list_entries(user_id, since=start) if e.occurred_on <= end]

        if not entries:
            return f"📭 Nenhum registro encontrado {label}."
        if record.intention == DETAILED_QUERY_INTENTION:
            return self._details(entries, label)
        return self._summary(entries, label, record.intention)

    def _details(self, entries: list[LedgerEntry], label: str) -> str:
        lines = [f"📋 *Seus registros {label}:*", ""]
        for i, entry in enumerate(entries[-MAX_DETAIL_LINES:], 1):
            lines.append(format_entry_line(i, entry))
        if len(entries) > MAX_DETAIL_LINES:
            lines.append(f"_… e mais {len(entries) - MAX_DETAIL_LINES} registros anteriores_")
        return "\n".join(lines)

    def _summary(self, entries: list[LedgerEntry], label: str, intention: str) -> str:
        spent = sum(e.amount for e in entries if e.kind == "expense")
        received = sum(e.amount for e in entries if e.kind in ("income", "sale"))
        invested = sum(e.amount for e in entries if e.kind == "investment")

        lines = [f"📊 *Resumo {label}*", ""]
        if intention == "consultar_receitas":
            lines.append(f"💰 Total recebido: {format_brl(received)}")
        elif intention == "consultar_gastos":
            lines.append(f"💸 Total gasto: {format_brl(spent)}")
        else:
            lines += [
                f"💰 Receitas: {format_brl(received)}",
                f"💸 Despesas: {format_brl(spent)}",
                f"📈 Investimentos: {format_brl(invested)}",
                f"🧮 Saldo: {format_brl(received - spent - invested)}",
            ]

        by_category = Counter()
        for e in entries:
            if e.kind == "expense":
                by_category[e.category] += e.amount
        if by_category and intention != "consultar_receitas":
            lines += ["", "🏷️ *Maiores categorias:*"]
            for i, (category, total) in enumerate(by_category.most_common(3), 1):
                lines.append(f"{i}. {format_category(category)}: {format_brl(total)}")

        lines += ["", '💡 Quer ver cada registro? Responda "mostre cada um".']
        return "\n".join(lines)
