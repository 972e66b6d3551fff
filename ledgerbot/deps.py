from functools import lru_cache

from ledgerbot.config import Settings, get_settings
from ledgerbot.core.context import ContextTracker, ContinuationDetector
from ledgerbot.core.dedup import DeduplicationGate
from ledgerbot.core.dispatcher import HandlerDispatcher
from ledgerbot.core.router import Router
from ledgerbot.core.sessions import SessionStateMachine
from ledgerbot.db.repository import LedgerRepository
from ledgerbot.handlers.correction import CorrectionHandler
from ledgerbot.handlers.query import QueryHandler
from ledgerbot.handlers.sales import SalesHandler
from ledgerbot.handlers.transactions import ExpenseHandler, IncomeHandler, InvestmentHandler
from ledgerbot.llm.classifier import IntentClassifier, ServiceHealth
from ledgerbot.llm.offline import OfflineAnalyzer
from ledgerbot.llm.parser import RemoteClassifier
from ledgerbot.media.audio import AudioTranscriber
from ledgerbot.media.image import ImageRecognizer
from ledgerbot.models.schemas import IntentType


def build_dispatcher(ledger: LedgerRepository, settings: Settings) -> HandlerDispatcher:
    corrections = CorrectionHandler(ledger, ttl=settings.pending_context_ttl_seconds)
    sales = SalesHandler(ledger, ttl=settings.pending_context_ttl_seconds)
    expenses = ExpenseHandler(ledger, corrections)
    routes = {
        IntentType.INCOME: IncomeHandler(ledger, corrections),
        IntentType.FIXED_EXPENSE: expenses,
        IntentType.VARIABLE_EXPENSE: expenses,
        IntentType.INVESTMENT: InvestmentHandler(ledger),
        IntentType.QUERY: QueryHandler(ledger),
        IntentType.CORRECTION: corrections,
        IntentType.SALE: sales,
        IntentType.OTHER: None,
    }
    return HandlerDispatcher(corrections, sales, routes, settings.low_confidence_threshold)


def build_router(settings: Settings, ledger: LedgerRepository | None = None) -> Router:
    """Wire the whole message pipeline from settings."""
    ledger = ledger or LedgerRepository(settings.db_path)
    remote = RemoteClassifier(
        api_keys=[settings.openrouter_api_key, *settings.openrouter_fallback_api_keys],
        model=settings.llm_model,
        base_url=settings.openrouter_base_url,
        timeout=settings.nlu_timeout_seconds,
    )
    classifier = IntentClassifier(
        remote=remote,
        offline=OfflineAnalyzer(),
        continuation=ContinuationDetector(max_words=settings.continuation_max_words),
        health=ServiceHealth(cooldown=settings.nlu_cooldown_seconds),
        low_confidence_threshold=settings.low_confidence_threshold,
    )
    return Router(
        dedup=DeduplicationGate(window=settings.dedup_window_seconds),
        sessions=SessionStateMachine(ledger, max_entries=settings.max_conversations),
        tracker=ContextTracker(
            capacity=settings.context_capacity,
            max_conversations=settings.max_conversations,
        ),
        classifier=classifier,
        dispatcher=build_dispatcher(ledger, settings),
        ledger=ledger,
        transcriber=AudioTranscriber(
            api_key=settings.transcription_api_key,
            model=settings.transcription_model,
            base_url=settings.transcription_base_url,
        ),
        recognizer=ImageRecognizer(
            api_key=settings.openrouter_api_key,
            model=settings.vision_model,
            base_url=settings.openrouter_base_url,
        ),
    )


@lru_cache
def get_router() -> Router:
    return build_router(get_settings())
