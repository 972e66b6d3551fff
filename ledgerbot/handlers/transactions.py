from loguru import logger

from ledgerbot.handlers.base import BaseHandler
from ledgerbot.handlers.correction import CorrectionHandler
from ledgerbot.models.schemas import IntentRecord, IntentType


class ExpenseHandler(BaseHandler):
    name = "expense"

    def __init__(self, ledger, corrections: CorrectionHandler):
        super().__init__(ledger)
        self.corrections = corrections

    async def process(self, user_id: int, record: IntentRecord) -> str:
        prompt = self.missing_amount_prompt(record, "uma despesa")
        if prompt:
            return prompt

        entry = self.ledger.record_expense(user_id, record)
        self.corrections.arm(user_id, entry)
        logger.info("Expense #{} of {} ({}) for user #{}", entry.id, entry.amount, entry.category, user_id)

        title = "Despesa fixa registrada!" if record.type == IntentType.FIXED_EXPENSE else "Despesa registrada!"
        if record.scope == "business":
            title = "Despesa do negócio registrada!"
        return (
            self.confirmation(title, entry, record)
            + '\n\n✏️ Categoria errada? Responda, por exemplo, "foi alimentação".'
        )


class IncomeHandler(BaseHandler):
    name = "income"

    def __init__(self, ledger, corrections: CorrectionHandler):
        super().__init__(ledger)
        self.corrections = corrections

    async def process(self, user_id: int, record: IntentRecord) -> str:
        prompt = self.missing_amount_prompt(record, "uma receita")
        if prompt:
            return prompt

        entry = self.ledger.record_income(user_id, record)
        self.corrections.arm(user_id, entry)
        logger.info("Income #{} of {} ({}) for user #{}", entry.id, entry.amount, entry.category, user_id)
        title = "Receita do negócio registrada!" if record.scope == "business" else "Receita registrada!"
        return self.confirmation(title, entry, record)


class InvestmentHandler(BaseHandler):
    name = "investment"

    async def process(self, user_id: int, record: IntentRecord) -> str:
        prompt = self.missing_amount_prompt(record, "um investimento")
        if prompt:
            return prompt

        entry = self.ledger.record_investment(user_id, record)
        logger.info("Investment #{} of {} ({}) for user #{}", entry.id, entry.amount, entry.category, user_id)
        return self.confirmation("Investimento registrado!", entry, record)
