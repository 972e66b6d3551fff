import time
from typing import Callable

from loguru import logger

from ledgerbot.core.context import ContinuationDetector
from ledgerbot.errors import ClassificationServiceError, ClassificationTimeout
from ledgerbot.llm.offline import OfflineAnalyzer
from ledgerbot.llm.parser import RemoteClassifier
from ledgerbot.models.schemas import IntentRecord, UserContext


class ServiceHealth:
    """Tracks whether the remote NLU is in a cool-down window."""

    def __init__(self, cooldown: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.cooldown = cooldown
        self._clock = clock
        self._degraded_until: float | None = None
        self.failures = 0

    @property
    def degraded(self) -> bool:
        if self._degraded_until is None:
            return False
        if self._clock() >= self._degraded_until:
            self._degraded_until = None
            return False
        return True

    def mark_degraded(self) -> None:
        self._degraded_until = self._clock() + self.cooldown

    def record_failure(self) -> None:
        self.failures += 1

    def record_success(self) -> None:
        self.failures = 0


class IntentClassifier:
    """Remote NLU with a deterministic offline fallback.

    The continuation detector runs before either path so follow-ups to a
    query never cost a remote call.
    """

    def __init__(
        self,
        remote: RemoteClassifier | None,
        offline: OfflineAnalyzer,
        continuation: ContinuationDetector,
        health: ServiceHealth,
        low_confidence_threshold: float = 0.5,
    ):
        self.remote = remote
        self.offline = offline
        self.continuation = continuation
        self.health = health
        self.low_confidence_threshold = low_confidence_threshold

    @property
    def remote_available(self) -> bool:
        return self.remote is not None and self.remote.configured and not self.health.degraded

    async def classify(self, text: str, context: UserContext) -> IntentRecord:
        # The current message is the last turn; look only at what came before it
        previous = context.turns[:-1] if context.turns else []
        contextual = self.continuation.detect(text, previous)
        if contextual is not None:
            logger.info("Follow-up {!r} resolved as detailed query", text)
            return contextual

        if self.remote_available:
            try:
                record = await self.remote.classify(text, context.recent_entries, previous)
            except ClassificationServiceError as e:
                self._on_remote_failure(e)
            else:
                self.health.record_success()
                if record.confidence < self.low_confidence_threshold:
                    logger.info("Remote confidence {:.2f} is low for {!r}", record.confidence, text)
                return record

        return self._offline(text, context)

    def _offline(self, text: str, context: UserContext) -> IntentRecord:
        return self.offline.analyze_with_context(text, context.recent_entries)

    def _on_remote_failure(self, error: ClassificationServiceError) -> None:
        self.health.record_failure()
        kind = "timeout" if isinstance(error, ClassificationTimeout) else "error"
        if error.rate_limited and self.remote.rotate_key():
            logger.warning("NLU quota hit ({}); using offline analysis for this message", error)
            return
        self.health.mark_degraded()
        logger.warning(
            "NLU {} ({}); offline analysis for the next {:.0f}s",
            kind,
            error,
            self.health.cooldown,
        )
