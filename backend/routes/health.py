"""Health check endpoint."""

from fastapi import APIRouter, Request

from .models import Health

router = APIRouter()


@router.get("/health", response_model=Health, response_model_by_alias=True)
async def health(request: Request):
    """Provider, model, shop name and how many orders are held in memory."""
    settings = request.app.state.settings
    assistant = request.app.state.assistant
    return Health(
        provider=settings.provider,
        model=settings.model,
        shop=assistant.shop.name,
        orders_in_memory=len(assistant.ledger),
    )
