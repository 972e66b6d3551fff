from loguru import logger

from ledgerbot.errors import HandlerFailure, LowConfidenceIntent
from ledgerbot.formatting import CLARIFICATION_PROMPT, GENERIC_FAILURE, format_error_message
from ledgerbot.handlers.base import NOT_APPLICABLE, BaseHandler
from ledgerbot.handlers.correction import CorrectionHandler
from ledgerbot.handlers.sales import SalesHandler
from ledgerbot.models.schemas import IntentRecord, IntentType

ERROR_ACTIONS = {
    IntentType.INCOME: "a receita",
    IntentType.FIXED_EXPENSE: "a despesa",
    IntentType.VARIABLE_EXPENSE: "a despesa",
    IntentType.INVESTMENT: "o investimento",
    IntentType.SALE: "a venda",
}


class HandlerDispatcher:
    """Routes a classified message to exactly one handler.

    Stages run in a fixed order and the first that applies answers:

    1. correction detector (amend/undo phrasing, whatever the type)
    2. pending sale confirmation
    3. routing by ``record.type``

    Every path returns a non-empty reply.
    """

    def __init__(
        self,
        corrections: CorrectionHandler,
        sales: SalesHandler,
        routes: dict[IntentType, BaseHandler | None],
        low_confidence_threshold: float = 0.5,
    ):
        missing = set(IntentType) - set(routes)
        if missing:
            raise ValueError(f"No route for intent types: {sorted(t.value for t in missing)}")
        self.corrections = corrections
        self.sales = sales
        self.routes = routes
        self.low_confidence_threshold = low_confidence_threshold

    async def dispatch(self, user_id: int, record: IntentRecord, text: str | None = None) -> str:
        # Detectors read the user's own words, not a paraphrased description
        probe = record if text is None else record.model_copy(update={"description": text})
        try:
            for stage in (self.corrections, self.sales):
                reply = await stage.try_process(user_id, probe)
                if reply is not NOT_APPLICABLE:
                    logger.info("Message for user #{} handled by {}", user_id, stage.name)
                    return reply
            return await self._route(user_id, record)
        except LowConfidenceIntent as e:
            logger.info("Asking user #{} to rephrase: {}", user_id, e)
            return CLARIFICATION_PROMPT
        except Exception as e:
            handler = self.routes.get(record.type)
            failure = HandlerFailure(handler.name if handler else "fallback", e)
            logger.opt(exception=e).error("{} (record: {})", failure, record.model_dump(mode="json"))
            action = ERROR_ACTIONS.get(record.type)
            return format_error_message(action, record.amount) if action else GENERIC_FAILURE

    async def _route(self, user_id: int, record: IntentRecord) -> str:
        if record.confidence < self.low_confidence_threshold:
            raise LowConfidenceIntent(record.confidence)

        handler = self.routes[record.type]
        if handler is None:
            return await self._fallback(user_id, record)
        logger.info("Routing {} for user #{} to {}", record.type.value, user_id, handler.name)
        return await handler.process(user_id, record)

    async def _fallback(self, user_id: int, record: IntentRecord) -> str:
        if record.amount:
            retry = record.model_copy(update={"type": IntentType.VARIABLE_EXPENSE})
            handler = self.routes[IntentType.VARIABLE_EXPENSE]
            logger.info("Unclassified message with amount {}; recording as expense", record.amount)
            return await handler.process(user_id, retry)
        return CLARIFICATION_PROMPT
