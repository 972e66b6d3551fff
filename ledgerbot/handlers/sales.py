import re
import time
from typing import Callable, NamedTuple

from loguru import logger

from ledgerbot.formatting import format_brl
from ledgerbot.handlers.base import NOT_APPLICABLE, BaseHandler, ExpiringMap
from ledgerbot.models.schemas import IntentRecord, IntentType

AFFIRMATIVES = ("sim", "s", "ok", "confirmar", "confirmo", "pode", "isso", "yes")
NEGATIVES = ("não", "nao", "n", "no", "cancelar", "cancela", "cancel")

_PRICE_RE = re.compile(r"^(?:r\$\s*)?(\d{1,3}(?:\.\d{3})*(?:,\d{1,2})?|\d+(?:[.,]\d{1,2})?)$")


class PendingSale(NamedTuple):
    product_name: str
    suggested_price: float | None


def parse_price(text: str) -> float | None:
    match = _PRICE_RE.match(text.strip().lower())
    if match is None:
        return None
    raw = match.group(1)
    if "," in raw:
        raw = raw.replace(".", "").replace(",", ".")
    elif re.fullmatch(r"\d{1,3}(?:\.\d{3})+", raw):
        raw = raw.replace(".", "")
    return float(raw)


class SalesHandler(BaseHandler):
    """Records sales, confirming image-recognised products before writing."""

    name = "sales"

    def __init__(self, ledger, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic):
        super().__init__(ledger)
        self.pending = ExpiringMap(ttl, clock)

    def start_sale(self, user_id: int, record: IntentRecord) -> str:
        name = record.product_name or record.description or "produto"
        product = self.ledger.find_product(user_id, name)
        price = product.selling_price if product and product.selling_price else record.amount
        if product:
            name = product.name
        self.pending.set(user_id, PendingSale(name, price))
        logger.info("Pending sale of {!r} at {} for user #{}", name, price, user_id)

        if price:
            return (
                f"🛍️ Identifiquei: *{name}*\n"
                f"💰 Preço sugerido: {format_brl(price)}\n\n"
                'Confirma a venda? Responda "sim", "não" ou envie outro valor.'
            )
        return (
            f"🛍️ Identifiquei: *{name}*\n\n"
            "💰 Por quanto foi vendido? Envie o valor ou \"não\" para cancelar."
        )

    def is_confirmation(self, user_id: int, text: str) -> bool:
        if self.pending.get(user_id) is None:
            return False
        normalized = text.lower().strip().rstrip(".!")
        return (
            normalized in AFFIRMATIVES
            or normalized in NEGATIVES
            or parse_price(normalized) is not None
        )

    def handle_confirmation(self, user_id: int, text: str) -> str:
        normalized = text.lower().strip().rstrip(".!")
        if normalized in NEGATIVES:
            sale = self.pending.pop(user_id)
            logger.info("Sale of {!r} cancelled by user #{}", sale.product_name, user_id)
            return "🚫 Venda cancelada."

        sale: PendingSale = self.pending.get(user_id)
        price = parse_price(normalized) or sale.suggested_price
        if not price:
            return "💰 Preciso do valor da venda. Envie apenas o número, por exemplo: 35,90"

        self.pending.pop(user_id)
        record = IntentRecord(
            type=IntentType.SALE,
            amount=price,
            category="vendas",
            description=f"Venda: {sale.product_name}",
            scope="business",
            product_name=sale.product_name,
        )
        entry = self.ledger.record_sale(user_id, record)
        logger.info("Sale #{} of {} for user #{}", entry.id, entry.amount, user_id)
        return self.confirmation("Venda registrada!", entry, record)

    async def try_process(self, user_id: int, record: IntentRecord) -> str | None:
        text = record.description or ""
        if not self.is_confirmation(user_id, text):
            return NOT_APPLICABLE
        return self.handle_confirmation(user_id, text)

    async def process(self, user_id: int, record: IntentRecord) -> str:
        # Image hints are confirmed first; a typed sale with a value is written directly
        if record.source == "media" or not record.amount:
            return self.start_sale(user_id, record)

        record = record.model_copy(update={"category": "vendas", "scope": "business"})
        entry = self.ledger.record_sale(user_id, record)
        logger.info("Sale #{} of {} for user #{}", entry.id, entry.amount, user_id)
        return self.confirmation("Venda registrada!", entry, record)
