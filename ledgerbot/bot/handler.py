from loguru import logger
from telegram import Update
from telegram.constants import ChatAction
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from ledgerbot.config import get_settings
from ledgerbot.deps import get_router
from ledgerbot.formatting import WELCOME_PROMPT
from ledgerbot.models.schemas import InboundMessage, LoginStep, Media

settings = get_settings()

HELP_TEXT = (
    "👋 Eu sou o *Zero*, seu assistente financeiro.\n\n"
    "Mande uma mensagem de texto ou um áudio para registrar receitas, despesas "
    "e investimentos, ou uma foto de um produto para registrar uma venda.\n\n"
    "Exemplos:\n"
    '• "Gastei 50 no supermercado"\n'
    '• "Recebi 5000 de salário"\n'
    '• "Quanto gastei este mês?"\n'
    '• "Na verdade foi 80"\n\n'
    "Comandos:\n"
    "/help: mostra esta mensagem\n"
    "/logout: sai da sua conta"
)


def _inbound(update: Update, **fields) -> InboundMessage:
    chat_id = update.effective_chat.id
    return InboundMessage(
        message_id=f"{chat_id}:{update.message.message_id}",
        conversation_id=str(chat_id),
        **fields,
    )


async def _route(update: Update, message: InboundMessage) -> None:
    await update.message.chat.send_action(ChatAction.TYPING)
    reply = await get_router().handle(message)
    if reply is None:
        return
    try:
        await update.message.reply_text(reply, parse_mode="Markdown")
    except Exception as e:
        # Telegram rejects unbalanced markdown; resend as plain text
        logger.warning("Markdown reply failed ({}); sending plain text", e)
        await update.message.reply_text(reply)


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /start: help for known users, otherwise open the login dialogue."""
    status = await get_router().auth_status(str(update.effective_chat.id))
    if status.authenticated:
        await help_command(update, context)
    elif status.step != LoginStep.WELCOME:
        await update.message.reply_text(WELCOME_PROMPT, parse_mode="Markdown")
    else:
        await _route(update, _inbound(update, text="/start"))


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.message.reply_text(HELP_TEXT, parse_mode="Markdown")


async def logout_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if await get_router().logout(str(update.effective_chat.id)):
        await update.message.reply_text("👋 Você saiu da sua conta. Envie qualquer mensagem para entrar novamente.")
    else:
        await update.message.reply_text("Você não está logado.")


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle incoming text messages."""
    await _route(update, _inbound(update, text=update.message.text or ""))


async def handle_voice(update: Update, context: ContextTypes.DEFAULT_TYPE):
    voice = update.message.voice or update.message.audio
    file = await voice.get_file()
    data = bytes(await file.download_as_bytearray())
    logger.info("Telegram voice note: {} bytes", len(data))
    media = Media(kind="audio", data=data, mime_type=voice.mime_type or "audio/ogg")
    await _route(update, _inbound(update, media=media))


async def handle_photo(update: Update, context: ContextTypes.DEFAULT_TYPE):
    # Largest size is last
    photo = update.message.photo[-1]
    file = await photo.get_file()
    data = bytes(await file.download_as_bytearray())
    logger.info("Telegram photo: {} bytes", len(data))
    media = Media(kind="image", data=data, mime_type="image/jpeg")
    await _route(update, _inbound(update, text=update.message.caption or "", media=media))


def build_bot_app() -> Application:
    """Build and return the Telegram bot application."""
    app = Application.builder().token(settings.telegram_bot_token).build()

    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("logout", logout_command))

    app.add_handler(MessageHandler(filters.VOICE | filters.AUDIO, handle_voice))
    app.add_handler(MessageHandler(filters.PHOTO, handle_photo))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_message))

    return app
