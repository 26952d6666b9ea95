# restaurant_verification/services/verification/telephony_service.py
from functools import lru_cache
from typing import Optional
import logging

import requests
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from restaurant_verification.core.config import settings
from restaurant_verification.core.errors import UpstreamTimeout

logger = logging.getLogger(__name__)


class TelephonyError(Exception):
    """The provider refused or failed to place the call / message."""


class TelephonyService:
    """
    Outbound voice and SMS delivery through Twilio.

    One instance is shared by the whole process; the underlying REST client is
    safe for concurrent use. Calls are never retried here: a retry could ring
    the restaurant twice.
    """

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.account_sid = account_sid
        self.from_number = from_number
        self._client: Optional[Client] = None

        if account_sid and auth_token and from_number:
            http_client = TwilioHttpClient(timeout=timeout or settings.TELEPHONY_TIMEOUT_SECONDS)
            self._client = Client(account_sid, auth_token, http_client=http_client)
            logger.info("Twilio telephony client initialized")
        else:
            logger.warning("Twilio credentials not configured. Phone delivery is disabled.")

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def place_voice_call(self, to: str, twiml: str) -> str:
        """Start a call that speaks ``twiml``; returns the call SID."""
        call = self._send(lambda client: client.calls.create(twiml=twiml, from_=self.from_number, to=to))
        logger.info(f"Verification call initiated to {to}: sid={call.sid}")
        return call.sid

    def send_sms(self, to: str, body: str) -> str:
        """Send ``body`` as a single SMS; returns the message SID."""
        message = self._send(lambda client: client.messages.create(body=body, from_=self.from_number, to=to))
        logger.info(f"Verification SMS sent to {to}: sid={message.sid}")
        return message.sid

    def _send(self, operation):
        if self._client is None:
            raise TelephonyError("Telephony client not configured")
        try:
            return operation(self._client)
        except requests.exceptions.Timeout as e:
            logger.error("Timeout while contacting Twilio")
            raise UpstreamTimeout("telephony") from e
        except TwilioRestException as e:
            logger.error(f"Twilio rejected request: status={e.status} code={e.code}")
            raise TelephonyError(f"Twilio error {e.code}") from e
        except (TwilioException, requests.exceptions.RequestException) as e:
            logger.error(f"Twilio request failed: {type(e).__name__}")
            raise TelephonyError("Twilio request failed") from e


@lru_cache(maxsize=1)
def get_telephony_service() -> TelephonyService:
    """Process-wide telephony client, built once from settings."""
    auth_token = settings.TWILIO_AUTH_TOKEN.get_secret_value() if settings.TWILIO_AUTH_TOKEN else None
    return TelephonyService(
        account_sid=settings.TWILIO_ACCOUNT_SID,
        auth_token=auth_token,
        from_number=settings.TWILIO_FROM_NUMBER,
    )
