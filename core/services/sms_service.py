"""
SMS Service using Twilio
Handles outbound SMS for worker conversations
"""

import asyncio
from twilio.rest import Client
from twilio.base.exceptions import TwilioRestException
from typing import Any, Dict, Optional
import logging

from config import settings
from core.conversation.templates import truncate
from core.registration import validate_phone_number
from models.schemas import SendErrorKind, SendResult

logger = logging.getLogger(__name__)

# Rate limit, internal error, service unavailable, temporary delivery failure
RETRYABLE_TWILIO_CODES = frozenset({20429, 20500, 20503, 21622})


def is_retryable_twilio_error(code: Optional[int]) -> bool:
    return code in RETRYABLE_TWILIO_CODES


class SMSService:
    """Service for sending SMS messages via Twilio"""

    def __init__(self, account_sid: Optional[str] = None, auth_token: Optional[str] = None,
                 from_number: Optional[str] = None, country_code: str = "49",
                 max_length: int = 1600, client: Optional[Client] = None,
                 max_retries: int = 3, retry_base_delay: float = 1.0):
        """Initialize Twilio client with the given credentials"""
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.country_code = country_code
        self.max_length = max_length
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay

        if client is not None:
            self.client = client
        elif not all([account_sid, auth_token, from_number]):
            logger.warning("⚠️  Twilio credentials not configured - SMS sending will fail")
            logger.warning("   Set: TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER")
            self.client = None
        else:
            self.client = Client(account_sid, auth_token)
            logger.info(f"✅ Twilio SMS Service initialized | From: {from_number}")

    @classmethod
    def from_settings(cls) -> 'SMSService':
        return cls(
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            from_number=settings.TWILIO_PHONE_NUMBER,
            country_code=settings.DEFAULT_COUNTRY_CODE,
            max_length=settings.MAX_SMS_LENGTH,
            max_retries=settings.SMS_MAX_RETRIES,
            retry_base_delay=settings.SMS_RETRY_BASE_DELAY,
        )

    def normalize_address(self, phone: str) -> str:
        """
        Normalize a phone number to E.164 (+49...)

        Raises:
            ValueError: the number is not a valid, non-premium number
        """
        validation = validate_phone_number(phone, self.country_code)
        if not validation.is_valid:
            raise ValueError(f"Invalid phone number {phone}: {validation.error}")
        return validation.normalized

    async def send_text(self, to: str, body: str,
                        metadata: Optional[Dict[str, Any]] = None) -> SendResult:
        """
        Send one SMS.

        Transient Twilio errors (rate limit, server errors, temporary
        delivery failures) are retried with exponential backoff up to
        ``max_retries`` times. The client call runs in a worker thread.

        Args:
            to: Recipient phone number (any German format, will be normalized)
            body: Message text, truncated to the configured maximum
            metadata: Extra data for the log line (conversation id, message type)

        Returns:
            SendResult with the Twilio message SID on success
        """
        metadata = metadata or {}

        if not self.client:
            logger.error("❌ Cannot send SMS - Twilio client not initialized")
            return SendResult(success=False, status="failed", error="Twilio client not configured",
                              error_kind=SendErrorKind.PERMANENT, attempts=0)

        try:
            normalized = self.normalize_address(to)
        except ValueError as e:
            logger.error(f"❌ Invalid phone number: {e}")
            return SendResult(success=False, status="failed", error=str(e),
                              error_kind=SendErrorKind.PERMANENT, attempts=0)

        if len(body) > self.max_length:
            logger.warning(f"⚠️  Message truncated from {len(body)} to {self.max_length} chars")
            body = truncate(body, self.max_length)

        logger.info(f"📤 Sending SMS to {normalized} | {metadata}")
        logger.debug(f"   Message: {body[:100]}...")

        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                message = await asyncio.to_thread(
                    self.client.messages.create,
                    to=normalized,
                    from_=self.from_number,
                    body=body
                )
            except TwilioRestException as e:
                retryable = is_retryable_twilio_error(e.code)
                logger.error(f"❌ Twilio API error sending SMS to {normalized}")
                logger.error(f"   Error code: {e.code} | Message: {e.msg}")
                if not retryable or attempt == attempts:
                    return SendResult(
                        success=False,
                        status="failed",
                        error=f"Twilio error {e.code}: {e.msg}",
                        error_kind=SendErrorKind.RETRYABLE if retryable else SendErrorKind.PERMANENT,
                        attempts=attempt,
                    )
                delay = self.retry_base_delay * (2 ** (attempt - 1))
                logger.warning(f"⏳ Retrying SMS in {delay:.1f}s (attempt {attempt + 1}/{attempts})")
                await asyncio.sleep(delay)
                continue

            logger.info(f"✅ SMS sent successfully | SID: {message.sid} | Status: {message.status}")
            return SendResult(success=True, transport_id=message.sid,
                              status=message.status or "queued", attempts=attempt)
