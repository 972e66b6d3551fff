import re
from datetime import date, timedelta

from tinydb import Query, TinyDB

from ledgerbot.errors import AuthResolutionConflict
from ledgerbot.models.schemas import IntentRecord, LedgerEntry, Product, User

_DATE_RE = re.compile(r"(\d{1,2})[/-](\d{1,2})(?:[/-](\d{2,4}))?")


def resolve_date_hint(hint: str | None, today: date | None = None) -> date:
    """Turn a classifier date hint ('hoje', 'ontem', '12/05') into a date."""
    today = today or date.today()
    if not hint:
        return today
    hint = hint.lower().strip()
    if hint == "ontem":
        return today - timedelta(days=1)
    if hint == "semana passada":
        return today - timedelta(days=7)
    match = _DATE_RE.search(hint)
    if match:
        day, month, year = match.groups()
        if year is None:
            year = today.year
        elif len(year) == 2:
            year = 2000 + int(year)
        try:
            return date(int(year), int(month), int(day))
        except ValueError:
            return today
    try:
        return date.fromisoformat(hint[:10])
    except ValueError:
        return today


class LedgerRepository:
    """Identity and ledger persistence backed by TinyDB."""

    def __init__(self, db_path: str = "ledgerbot.json"):
        self.db = TinyDB(db_path)
        self.users = self.db.table("users")
        self.entries = self.db.table("entries")
        self.products = self.db.table("products")

    # ── Identity ──────────────────────────────────────────

    def get_user(self, user_id: int) -> User | None:
        doc = self.users.get(doc_id=user_id)
        if doc is None:
            return None
        return User(id=doc.doc_id, **doc)

    def find_user_by_address(self, address: str) -> User | None:
        U = Query()
        doc = self.users.get(U.address == address)
        if doc is None:
            return None
        return User(id=doc.doc_id, **doc)

    def find_user_by_email(self, email: str) -> User | None:
        U = Query()
        doc = self.users.get(U.email.test(lambda val: val.lower() == email.lower()))
        if doc is None:
            return None
        return User(id=doc.doc_id, **doc)

    def get_or_create_user(self, email: str, display_name: str | None = None) -> User:
        existing = self.find_user_by_email(email)
        if existing is not None:
            return existing
        user = User(display_name=display_name or email.split("@")[0], email=email)
        data = user.model_dump(mode="json")
        data.pop("id", None)
        user.id = self.users.insert(data)
        return user

    def bind_address(self, user_id: int, address: str) -> User:
        """Bind an external address to a user; an address maps to one user only."""
        bound = self.find_user_by_address(address)
        if bound is not None and bound.id != user_id:
            raise AuthResolutionConflict(address, bound.id)
        self.users.update({"address": address}, doc_ids=[user_id])
        return self.get_user(user_id)

    def rebind_address(self, user_id: int, address: str) -> User:
        """Move an address to ``user_id``, releasing it from whoever held it."""
        self.unbind_address(address)
        self.users.update({"address": address}, doc_ids=[user_id])
        return self.get_user(user_id)

    def unbind_address(self, address: str) -> None:
        U = Query()
        self.users.update({"address": None}, U.address == address)

    # ── Ledger entries ────────────────────────────────────

    def _to_entry(self, doc) -> LedgerEntry:
        return LedgerEntry(id=doc.doc_id, **doc)

    def add_entry(self, entry: LedgerEntry) -> LedgerEntry:
        if entry.amount <= 0:
            raise ValueError("Ledger entries need a positive amount")
        data = entry.model_dump(mode="json")
        data.pop("id", None)
        entry.id = self.entries.insert(data)
        return entry

    def _record(self, kind: str, user_id: int, record: IntentRecord) -> LedgerEntry:
        return self.add_entry(
            LedgerEntry(
                user_id=user_id,
                kind=kind,
                amount=record.amount or 0,
                category=record.category or "outros",
                description=record.description,
                scope=record.scope,
                occurred_on=resolve_date_hint(record.date_hint),
            )
        )

    def record_income(self, user_id: int, record: IntentRecord) -> LedgerEntry:
        return self._record("income", user_id, record)

    def record_expense(self, user_id: int, record: IntentRecord) -> LedgerEntry:
        return self._record("expense", user_id, record)

    def record_investment(self, user_id: int, record: IntentRecord) -> LedgerEntry:
        return self._record("investment", user_id, record)

    def record_sale(self, user_id: int, record: IntentRecord) -> LedgerEntry:
        return self._record("sale", user_id, record)

    def get_entry(self, entry_id: int) -> LedgerEntry | None:
        doc = self.entries.get(doc_id=entry_id)
        if doc is None:
            return None
        return self._to_entry(doc)

    def list_entries(self, user_id: int, since: date | None = None) -> list[LedgerEntry]:
        E = Query()
        docs = self.entries.search(E.user_id == user_id)
        entries = [self._to_entry(doc) for doc in docs]
        if since is not None:
            entries = [e for e in entries if e.occurred_on >= since]
        return sorted(entries, key=lambda e: e.id)

    def recent_entries(self, user_id: int, limit: int = 5) -> list[LedgerEntry]:
        """Latest entries first."""
        return list(reversed(self.list_entries(user_id)))[:limit]

    def last_entry(self, user_id: int) -> LedgerEntry | None:
        recent = self.recent_entries(user_id, limit=1)
        return recent[0] if recent else None

    def update_entry(self, entry_id: int, **fields) -> LedgerEntry | None:
        doc = self.entries.get(doc_id=entry_id)
        if doc is None:
            return None
        updates = {k: v for k, v in fields.items() if v is not None}
        if updates:
            self.entries.update(updates, doc_ids=[entry_id])
        return self.get_entry(entry_id)

    def delete_entry(self, entry_id: int) -> bool:
        doc = self.entries.get(doc_id=entry_id)
        if doc is None:
            return False
        self.entries.remove(doc_ids=[entry_id])
        return True

    # ── Products ──────────────────────────────────────────

    def add_product(self, product: Product) -> Product:
        data = product.model_dump(mode="json")
        data.pop("id", None)
        product.id = self.products.insert(data)
        return product

    def find_product(self, user_id: int, name: str) -> Product | None:
        P = Query()
        needle = name.lower()
        docs = self.products.search(
            (P.user_id == user_id)
            & P.name.test(lambda val: needle in val.lower() or val.lower() in needle)
        )
        if not docs:
            return None
        return Product(id=docs[0].doc_id, **docs[0])
