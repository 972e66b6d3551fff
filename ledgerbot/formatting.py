"""Reply text shared by the login dialogue, dispatcher and handlers."""

from ledgerbot.models.schemas import LedgerEntry

WELCOME_PROMPT = (
    "👋 Olá! Bem-vindo ao *Zero*, seu assistente financeiro.\n\n"
    "📧 Digite seu email para começar:"
)
RESTART_PROMPT = "⚠️ Algo deu errado. Vamos recomeçar!\n\n" + WELCOME_PROMPT
LOGIN_FIRST = "🔐 Faça login primeiro antes de enviar áudios ou imagens. Digite seu email para começar."
CLARIFICATION_PROMPT = (
    "🤔 Não entendi bem. Pode reformular?\n\n"
    "Exemplos:\n"
    '• "Gastei 50 no supermercado"\n'
    '• "Recebi 5000 de salário"\n'
    '• "Quanto gastei este mês?"'
)
GENERIC_FAILURE = "❌ Desculpe, ocorreu um erro ao processar sua mensagem. Tente novamente em alguns instantes."

CATEGORY_LABELS = {
    "alimentacao": "Alimentação",
    "supermercado": "Supermercado",
    "transporte": "Transporte",
    "lazer": "Lazer",
    "saude": "Saúde",
    "roupas": "Roupas",
    "moradia": "Moradia",
    "salario": "Salário",
    "freelance": "Freelance",
    "bonus": "Bônus",
    "vendas": "Vendas",
    "comissao": "Comissão",
    "fornecedores": "Fornecedores",
    "marketing": "Marketing",
    "aluguel": "Aluguel",
    "financiamento": "Financiamento",
    "seguro": "Seguro",
    "acoes": "Ações",
    "poupanca": "Poupança",
    "outros": "Outros",
}

KIND_LABELS = {
    "income": "Receita",
    "expense": "Despesa",
    "investment": "Investimento",
    "sale": "Venda",
}


def format_brl(amount: float) -> str:
    """Format amount in BRL style: R$ 1.234,50."""
    text = f"{amount:,.2f}"
    return "R$ " + text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_category(category: str | None) -> str:
    if not category:
        return "Outros"
    return CATEGORY_LABELS.get(category, category.replace("_", " ").capitalize())


def format_validation_message(errors: list[str]) -> str:
    return "⚠️ " + "\n⚠️ ".join(errors)


def format_entry_line(index: int, entry: LedgerEntry) -> str:
    line = (
        f"{index}. {entry.occurred_on:%d/%m} · {KIND_LABELS[entry.kind]} · "
        f"*{format_category(entry.category)}* — {format_brl(entry.amount)}"
    )
    if entry.description:
        line += f" ({entry.description})"
    return line


def format_error_message(action: str, amount: float | None = None) -> str:
    text = f"❌ Não consegui registrar {action}"
    if amount:
        text += f" de {format_brl(amount)}"
    return text + ". Tente novamente em alguns instantes."
