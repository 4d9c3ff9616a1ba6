"""Chat endpoint: one customer message in, one assistant reply out."""

import logging
import uuid

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from .models import ChatBody, ChatReply

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/chat", response_model=ChatReply, response_model_by_alias=True)
async def chat(request: Request, body: ChatBody):
    """Run the assistant tool loop for a message. A missing sessionId starts a new session."""
    session_id = body.session_id or str(uuid.uuid4())
    assistant = request.app.state.assistant
    try:
        reply = await assistant.reply(session_id, body.message)
    except Exception:
        logger.exception("Chat failed for session %s", session_id)
        return JSONResponse(status_code=500, content={"error": "Server error"})
    return ChatReply(reply=reply, session_id=session_id)
