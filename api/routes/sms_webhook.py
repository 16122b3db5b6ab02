"""
Twilio SMS Webhook Endpoint
Receives incoming SMS from workers and answers with TwiML
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from twilio.request_validator import RequestValidator
from typing import Optional
from xml.sax.saxutils import escape
import logging

from config import settings
from core.services.conversation_service import ConversationService, create_conversation_service
from models.schemas import InboundMessage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sms", tags=["SMS"])

EMPTY_TWIML = """<?xml version="1.0" encoding="UTF-8"?>
<Response></Response>"""

_conversation_service: Optional[ConversationService] = None


def get_conversation_service() -> ConversationService:
    """Shared conversation service, built from settings on first use"""
    global _conversation_service
    if _conversation_service is None:
        _conversation_service = create_conversation_service()
    return _conversation_service


def twiml_message(text: Optional[str]) -> str:
    """Wrap a reply in TwiML, or return an empty response when there is none"""
    if not text:
        return EMPTY_TWIML
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>
    <Message>{escape(text)}</Message>
</Response>"""


def validate_twilio_request(request: Request, form_data) -> bool:
    """
    Validate that request actually came from Twilio

    Only enforced when TWILIO_VALIDATE_SIGNATURE is set.

    Args:
        request: FastAPI Request object
        form_data: Already-parsed form data (FormData object from request.form())
    """
    if not settings.TWILIO_VALIDATE_SIGNATURE:
        return True

    if not settings.TWILIO_AUTH_TOKEN:
        logger.error("❌ Signature validation enabled but TWILIO_AUTH_TOKEN is not set")
        return False

    signature = request.headers.get('X-Twilio-Signature', '')
    if not signature:
        logger.error("❌ No X-Twilio-Signature header present")
        return False

    # Twilio signs the public HTTPS URL, not the one behind the proxy
    proto = request.headers.get('X-Forwarded-Proto', request.url.scheme)
    host = request.headers.get('Host', str(request.url.netloc))
    url = f"{proto}://{host}{request.url.path}"

    params = {key: value for key, value in form_data.items()}
    is_valid = RequestValidator(settings.TWILIO_AUTH_TOKEN).validate(url, params, signature)
    if not is_valid:
        logger.error(f"❌ Invalid Twilio signature | URL: {url} | From: {params.get('From')}")
    return is_valid


@router.post("/webhook")
async def sms_webhook(request: Request,
                      service: ConversationService = Depends(get_conversation_service)):
    """
    Receive incoming SMS from workers via Twilio

    Flow:
    1. Validate Twilio signature (when enabled)
    2. Run the message through the conversation service
    3. Return the reply as TwiML

    Twilio Form Data:
    - From: +491701234567 (worker phone)
    - Body: "Ja" (message text)
    - MessageSid: SM... (Twilio message ID)
    """
    form = await request.form()

    if not validate_twilio_request(request, form):
        raise HTTPException(status_code=403, detail="Invalid Twilio signature")

    sender = form.get('From')
    body = form.get('Body')
    message_sid = form.get('MessageSid')

    if not sender or body is None:
        logger.error("❌ Missing required fields in webhook request")
        raise HTTPException(status_code=400, detail="Missing required fields")

    try:
        outcome = await service.handle_inbound(InboundMessage(
            from_address=sender,
            body=body,
            message_id=message_sid,
        ))
        if outcome.error:
            logger.warning(f"⚠️  Inbound {message_sid} not processed cleanly: {outcome.error}")
        return Response(content=twiml_message(outcome.reply_text), media_type="application/xml")

    except Exception as e:
        logger.error(f"❌ Error processing SMS webhook: {e}", exc_info=True)
        return Response(content=twiml_message(service.templates.error("system_error")),
                        media_type="application/xml")


@router.post("/cleanup")
async def cleanup_conversations(service: ConversationService = Depends(get_conversation_service)):
    """Delete expired conversations"""
    removed = await service.cleanup_expired()
    logger.info(f"🧹 Conversation cleanup removed {removed} conversations")
    return {"removed": removed}
