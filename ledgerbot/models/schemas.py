from datetime import date, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class IntentType(str, Enum):
    INCOME = "income"
    FIXED_EXPENSE = "fixed-expense"
    VARIABLE_EXPENSE = "variable-expense"
    INVESTMENT = "investment"
    QUERY = "query"
    CORRECTION = "correction"
    SALE = "sale"
    OTHER = "other"


EXPENSE_TYPES = (IntentType.FIXED_EXPENSE, IntentType.VARIABLE_EXPENSE)
TRANSACTION_TYPES = (
    IntentType.INCOME,
    IntentType.FIXED_EXPENSE,
    IntentType.VARIABLE_EXPENSE,
    IntentType.INVESTMENT,
)


class IntentRecord(BaseModel):
    """Structured classification of one user message."""

    type: IntentType = IntentType.OTHER
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    amount: float | None = None
    category: str = "outros"
    description: str = ""
    date_hint: str = "hoje"
    intention: str = "registrar"
    rationale: str | None = None
    tip: str | None = None
    scope: Literal["business", "personal"] = "personal"
    product_name: str | None = None
    source: Literal["remote", "offline", "context", "media"] = "offline"


class Turn(BaseModel):
    text: str
    sender: Literal["user", "agent"]
    timestamp: datetime = Field(default_factory=datetime.now)
    classification: IntentRecord | None = None


class User(BaseModel):
    id: int | None = None
    display_name: str
    email: str
    address: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)


class Session(BaseModel):
    conversation_id: str
    user_id: int
    established_at: datetime = Field(default_factory=datetime.now)


class LoginStep(str, Enum):
    WELCOME = "welcome"
    EMAIL = "email"
    PASSWORD = "password"
    AUTHENTICATED = "authenticated"


class LoginProcess(BaseModel):
    conversation_id: str
    step: LoginStep = LoginStep.EMAIL
    pending_email: str | None = None


class AuthStatus(BaseModel):
    authenticated: bool
    user_id: int | None = None
    step: LoginStep


class LedgerEntry(BaseModel):
    id: int | None = None
    user_id: int
    kind: Literal["income", "expense", "investment", "sale"]
    amount: float
    category: str = "outros"
    description: str = ""
    scope: Literal["business", "personal"] = "personal"
    occurred_on: date = Field(default_factory=date.today)
    created_at: datetime = Field(default_factory=datetime.now)


class Product(BaseModel):
    id: int | None = None
    user_id: int
    name: str
    selling_price: float | None = None


class Media(BaseModel):
    kind: Literal["audio", "image"]
    data: bytes
    mime_type: str = "application/octet-stream"


class InboundMessage(BaseModel):
    message_id: str
    conversation_id: str
    text: str = ""
    media: Media | None = None


class MediaResult(BaseModel):
    ok: bool
    text: str = ""
    intent: IntentRecord | None = None
    error: str | None = None


class UserContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    recent_entries: list[LedgerEntry] = []
    turns: list[Turn] = []


class MessageRequest(BaseModel):
    message_id: str
    conversation_id: str
    text: str


class MessageResponse(BaseModel):
    reply: str | None = None
    duplicate: bool = False


class CreateProductRequest(BaseModel):
    name: str
    selling_price: float | None = None
