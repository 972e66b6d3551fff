from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from ledgerbot.core.router import Router
from ledgerbot.deps import get_router
from ledgerbot.models.schemas import (
    CreateProductRequest,
    InboundMessage,
    LedgerEntry,
    MessageRequest,
    MessageResponse,
    Product,
)

router = APIRouter()


@router.post("/messages", response_model=MessageResponse)
async def post_message(request: MessageRequest, bot: Router = Depends(get_router)):
    message = InboundMessage(
        message_id=request.message_id,
        conversation_id=request.conversation_id,
        text=request.text,
    )
    reply = await bot.handle(message)
    if reply is None:
        return MessageResponse(duplicate=True)
    return MessageResponse(reply=reply)


@router.get("/status")
def get_status(bot: Router = Depends(get_router)):
    return bot.status()


@router.get("/users/{user_id}/entries", response_model=list[LedgerEntry])
def list_entries(user_id: int, bot: Router = Depends(get_router)):
    if bot.ledger.get_user(user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    return bot.ledger.list_entries(user_id)


@router.post("/users/{user_id}/products", response_model=Product)
def create_product(user_id: int, request: CreateProductRequest, bot: Router = Depends(get_router)):
    if bot.ledger.get_user(user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    if request.selling_price is not None and request.selling_price <= 0:
        raise HTTPException(status_code=400, detail="Selling price must be positive")

    product = bot.ledger.add_product(
        Product(user_id=user_id, name=request.name, selling_price=request.selling_price)
    )
    logger.info("Created product #{} ({}) for user #{}", product.id, product.name, user_id)
    return product
