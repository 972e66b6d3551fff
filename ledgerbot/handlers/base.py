import time
from typing import Callable

from ledgerbot.db.repository import LedgerRepository
from ledgerbot.formatting import format_brl, format_category
from ledgerbot.models.schemas import IntentRecord, LedgerEntry

# Returned by detector stages that do not apply to a message
NOT_APPLICABLE = None


class BaseHandler:
    """A handler persists one kind of operation and renders its confirmation."""

    name = "base"

    def __init__(self, ledger: LedgerRepository):
        self.ledger = ledger

    async def process(self, user_id: int, record: IntentRecord) -> str:
        raise NotImplementedError

    def missing_amount_prompt(self, record: IntentRecord, what: str) -> str | None:
        if record.amount is None or record.amount <= 0:
            return (
                f"💬 Entendi que é {what}, mas não encontrei o valor.\n\n"
                f'💡 Tente algo como: "{record.description or what} 50"'
            )
        return None

    def confirmation(self, title: str, entry: LedgerEntry, record: IntentRecord) -> str:
        lines = [
            f"✅ *{title}*",
            "",
            f"💰 Valor: {format_brl(entry.amount)}",
            f"📂 Categoria: {format_category(entry.category)}",
            f"📅 Data: {entry.occurred_on:%d/%m/%Y}",
        ]
        if entry.description:
            lines.append(f"📝 {entry.description}")
        if record.tip:
            lines += ["", f"💡 {record.tip}"]
        return "\n".join(lines)


class ExpiringMap:
    """Per-user pending state whose entries lapse after ``ttl`` seconds."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._items: dict[int, tuple[float, object]] = {}

    def set(self, key: int, value) -> None:
        self._items[key] = (self._clock(), value)

    def get(self, key: int):
        item = self._items.get(key)
        if item is None:
            return None
        stored_at, value = item
        if self._clock() - stored_at > self.ttl:
            del self._items[key]
            return None
        return value

    def pop(self, key: int):
        value = self.get(key)
        self._items.pop(key, None)
        return value

    def __len__(self) -> int:
        return len(self._items)
