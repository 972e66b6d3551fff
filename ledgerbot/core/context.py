import re
from collections import OrderedDict, deque

from ledgerbot.models.schemas import IntentRecord, IntentType, Turn

ANAPHORIC_CUES = (
    "cada uma",
    "cada um",
    "esses",
    "essas",
    "estes",
    "estas",
    "deles",
    "delas",
    "disso",
    "isso",
    "eles",
    "elas",
    "quais foram",
)

DETAIL_CUES = (
    "detalhe",
    "detalha",
    "detalhar",
    "lista",
    "listar",
    "liste",
    "mostre",
    "mostra",
    "mostrar",
    "exiba",
    "discrimine",
    "especifique",
)

DETAILED_QUERY_INTENTION = "consultar_detalhes"


def _contains_cue(text: str, cues: tuple[str, ...]) -> bool:
    return any(re.search(rf"\b{re.escape(cue)}\b", text) for cue in cues)


class ContextTracker:
    """Bounded per-conversation history of recent turns.

    At most ``max_conversations`` histories are kept; the least recently
    active one is dropped first.
    """

    def __init__(self, capacity: int = 5, max_conversations: int = 10_000):
        self.capacity = capacity
        self.max_conversations = max_conversations
        self._turns: OrderedDict[str, deque[Turn]] = OrderedDict()

    def append(self, conversation_id: str, turn: Turn) -> None:
        history = self._turns.setdefault(conversation_id, deque(maxlen=self.capacity))
        history.append(turn)
        self._turns.move_to_end(conversation_id)
        while len(self._turns) > self.max_conversations:
            self._turns.popitem(last=False)

    def recent(self, conversation_id: str, k: int | None = None) -> list[Turn]:
        """Oldest first; at most ``k`` turns."""
        turns = list(self._turns.get(conversation_id, ()))
        if k is not None:
            turns = turns[-k:] if k > 0 else []
        return turns

    def attach_classification(self, conversation_id: str, record: IntentRecord) -> None:
        for turn in reversed(self._turns.get(conversation_id, ())):
            if turn.sender == "user":
                turn.classification = record
                return

    def clear(self, conversation_id: str) -> None:
        self._turns.pop(conversation_id, None)

    def conversations(self) -> int:
        return len(self._turns)


class ContinuationDetector:
    """Recognises short follow-ups that refer back to a previous query.

    The cue sets are approximate; they are constructor arguments so callers
    can tune the trigger set.
    """

    def __init__(
        self,
        anaphoric_cues: tuple[str, ...] = ANAPHORIC_CUES,
        detail_cues: tuple[str, ...] = DETAIL_CUES,
        max_words: int = 6,
        lookback: int = 3,
    ):
        self.anaphoric_cues = anaphoric_cues
        self.detail_cues = detail_cues
        self.max_words = max_words
        self.lookback = lookback

    def detect(self, text: str, previous: list[Turn]) -> IntentRecord | None:
        """Return a detailed-query record, or None when not contextual.

        ``previous`` holds the turns before the current message, oldest first.
        """
        normalized = text.lower().strip()
        if not normalized or len(normalized.split()) > self.max_words:
            return None
        if not (
            _contains_cue(normalized, self.anaphoric_cues)
            or _contains_cue(normalized, self.detail_cues)
        ):
            return None

        prior = self._prior_query(previous)
        if prior is None:
            return None

        return IntentRecord(
            type=IntentType.QUERY,
            confidence=0.9,
            category=prior.category,
            description=text,
            date_hint=prior.date_hint,
            intention=DETAILED_QUERY_INTENTION,
            rationale=f"Continuação da consulta anterior ({prior.intention})",
            source="context",
        )

    def _prior_query(self, previous: list[Turn]) -> IntentRecord | None:
        user_turns = [t for t in previous if t.sender == "user"]
        if user_turns:
            last = user_turns[-1].classification
            if last is not None and last.type == IntentType.QUERY:
                return last
        for turn in reversed(previous[-self.lookback :]):
            if turn.classification is not None and turn.classification.type == IntentType.QUERY:
                return turn.classification
        return None
