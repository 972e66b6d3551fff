import re
from collections import OrderedDict

from loguru import logger

from ledgerbot.db.repository import LedgerRepository
from ledgerbot.errors import AuthResolutionConflict, AuthValidationError
from ledgerbot.formatting import RESTART_PROMPT, WELCOME_PROMPT, format_validation_message
from ledgerbot.models.schemas import AuthStatus, LoginProcess, LoginStep, Session, User

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 50


def validate_email(email: str) -> None:
    if not email:
        raise AuthValidationError(["Email é obrigatório"])
    if not EMAIL_RE.match(email):
        raise AuthValidationError(["Formato de email inválido"])


def validate_password(password: str) -> None:
    errors = []
    if not password:
        errors.append("Senha é obrigatória")
    else:
        if len(password) < PASSWORD_MIN_LENGTH:
            errors.append(f"Senha deve ter pelo menos {PASSWORD_MIN_LENGTH} caracteres")
        if len(password) > PASSWORD_MAX_LENGTH:
            errors.append(f"Senha muito longa. Máximo: {PASSWORD_MAX_LENGTH} caracteres")
    if errors:
        raise AuthValidationError(errors)


def _trim(entries: OrderedDict, limit: int) -> None:
    while len(entries) > limit:
        entries.popitem(last=False)


class SessionStateMachine:
    """Resolves a conversation to a user, or walks it through the login dialogue.

    Sessions and login processes live in memory, keyed by conversation id.
    The conversation id doubles as the external address bound to a user.
    Callers serialize access per conversation.

    Both maps are capped at ``max_entries``, oldest first out. An evicted
    session is rebuilt from the address binding on the next message; an
    evicted login starts over.
    """

    def __init__(self, identity: LedgerRepository, max_entries: int = 10_000):
        self.identity = identity
        self.max_entries = max_entries
        self._sessions: OrderedDict[str, Session] = OrderedDict()
        self._logins: OrderedDict[str, LoginProcess] = OrderedDict()

    def authenticate(self, conversation_id: str) -> AuthStatus:
        session = self._sessions.get(conversation_id)
        if session is not None:
            self._sessions.move_to_end(conversation_id)
            return AuthStatus(
                authenticated=True, user_id=session.user_id, step=LoginStep.AUTHENTICATED
            )

        bound = self.identity.find_user_by_address(conversation_id)
        if bound is not None:
            self._establish(conversation_id, bound)
            return AuthStatus(authenticated=True, user_id=bound.id, step=LoginStep.AUTHENTICATED)

        login = self._logins.get(conversation_id)
        if login is not None:
            return AuthStatus(authenticated=False, step=login.step)
        return AuthStatus(authenticated=False, step=LoginStep.WELCOME)

    def advance(self, conversation_id: str, text: str) -> str:
        """Run one step of the login dialogue and return the prompt to send."""
        login = self._logins.get(conversation_id)
        if login is None:
            self._logins[conversation_id] = LoginProcess(
                conversation_id=conversation_id, step=LoginStep.EMAIL
            )
            _trim(self._logins, self.max_entries)
            logger.info("Login started for {}", conversation_id)
            return WELCOME_PROMPT

        if login.step == LoginStep.EMAIL:
            return self._handle_email(login, text.strip())
        return self._handle_password(login, text.strip())

    def _handle_email(self, login: LoginProcess, email: str) -> str:
        try:
            validate_email(email)
        except AuthValidationError as e:
            return format_validation_message(e.errors) + "\n\n📧 Digite um email válido:"

        login.pending_email = email
        login.step = LoginStep.PASSWORD
        return f"✅ Email confirmado: {email}\n\n🔐 Agora digite sua senha:"

    def _handle_password(self, login: LoginProcess, password: str) -> str:
        try:
            validate_password(password)
        except AuthValidationError as e:
            return format_validation_message(e.errors) + "\n\n🔐 Digite uma senha válida:"

        conversation_id = login.conversation_id
        try:
            user = self.identity.get_or_create_user(login.pending_email)
            try:
                user = self.identity.bind_address(user.id, conversation_id)
            except AuthResolutionConflict as conflict:
                logger.warning(
                    "Address {} was bound to user #{}; rebinding to #{}",
                    conflict.address,
                    conflict.bound_user_id,
                    user.id,
                )
                user = self.identity.rebind_address(user.id, conversation_id)
        except Exception:
            logger.exception("Login failed for {}; restarting dialogue", conversation_id)
            self._logins.pop(conversation_id, None)
            return RESTART_PROMPT

        self._establish(conversation_id, user)
        return (
            f"🎉 Bem-vindo, *{user.display_name}*!\n\n"
            "🤖 Estou pronto para ajudar. Envie um gasto, uma receita ou pergunte pelo seu saldo."
        )

    def _establish(self, conversation_id: str, user: User) -> Session:
        self._logins.pop(conversation_id, None)
        session = Session(conversation_id=conversation_id, user_id=user.id)
        self._sessions[conversation_id] = session
        _trim(self._sessions, self.max_entries)
        logger.info("Session established for {} as user #{}", conversation_id, user.id)
        return session

    def login_step(self, conversation_id: str) -> LoginStep | None:
        login = self._logins.get(conversation_id)
        return login.step if login else None

    def is_collecting_password(self, conversation_id: str) -> bool:
        return self.login_step(conversation_id) == LoginStep.PASSWORD

    def logout(self, conversation_id: str) -> bool:
        """Drop the session and the address binding so the next message logs in again."""
        self.identity.unbind_address(conversation_id)
        return self._sessions.pop(conversation_id, None) is not None

    def active_sessions(self) -> int:
        return len(self._sessions)
