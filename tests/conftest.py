"""
Shared fixtures for ledgerbot tests.

Everything runs against a throwaway TinyDB file and offline NLU; remote
collaborators are replaced with mocks, so no network or API key is needed.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from ledgerbot.config import Settings
from ledgerbot.core.context import ContextTracker, ContinuationDetector
from ledgerbot.core.dedup import DeduplicationGate
from ledgerbot.core.router import Router
from ledgerbot.core.sessions import SessionStateMachine
from ledgerbot.db.repository import LedgerRepository
from ledgerbot.deps import build_dispatcher
from ledgerbot.llm.classifier import IntentClassifier, ServiceHealth
from ledgerbot.llm.offline import OfflineAnalyzer
from ledgerbot.models.schemas import IntentRecord


# ── Clock ──────────────────────────────────────────────────


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ── Storage ────────────────────────────────────────────────


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def ledger(tmp_path):
    repo = LedgerRepository(str(tmp_path / "ledger.json"))
    yield repo
    repo.db.close()


@pytest.fixture
def user(ledger):
    return ledger.get_or_create_user("maria@example.com")


# ── Remote NLU ─────────────────────────────────────────────


def make_remote(record: IntentRecord | None = None, error: Exception | None = None, rotates: bool = False):
    """Stand-in for RemoteClassifier with a canned answer or failure."""
    remote = MagicMock()
    remote.configured = True
    remote.classify = AsyncMock(return_value=record, side_effect=error)
    remote.rotate_key = MagicMock(return_value=rotates)
    return remote


@pytest.fixture
def remote_factory():
    return make_remote


@pytest.fixture
def offline_classifier(clock):
    """IntentClassifier with no remote path configured."""
    return IntentClassifier(
        remote=None,
        offline=OfflineAnalyzer(),
        continuation=ContinuationDetector(),
        health=ServiceHealth(cooldown=60.0, clock=clock),
    )


# ── Pipeline ───────────────────────────────────────────────


@pytest.fixture
def dispatcher(ledger, settings):
    return build_dispatcher(ledger, settings)


@pytest.fixture
def router(ledger, dispatcher, offline_classifier, clock):
    return Router(
        dedup=DeduplicationGate(window=5.0, clock=clock),
        sessions=SessionStateMachine(ledger),
        tracker=ContextTracker(capacity=5),
        classifier=offline_classifier,
        dispatcher=dispatcher,
        ledger=ledger,
    )
