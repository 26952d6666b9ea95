# restaurant_verification/services/verification/captcha_service.py
from functools import lru_cache
from typing import Optional
import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from restaurant_verification.core.config import settings
from restaurant_verification.core.errors import CaptchaProviderUnavailable, UpstreamTimeout

logger = logging.getLogger(__name__)


class CaptchaService:
    """
    Cloudflare Turnstile token verification.

    Tokens are single use, so only connection failures (request never reached
    the provider) are retried.
    """

    def __init__(self, secret: Optional[str], verify_url: Optional[str] = None, timeout: Optional[float] = None):
        self.secret = secret
        self.verify_url = verify_url or settings.TURNSTILE_VERIFY_URL
        self.timeout = timeout or settings.CAPTCHA_TIMEOUT_SECONDS
        self.http = requests.Session()
        retry = Retry(total=2, connect=2, read=0, status=0, other=0, allowed_methods=None, backoff_factor=0.1)
        self.http.mount("https://", HTTPAdapter(max_retries=retry))

    @property
    def is_configured(self) -> bool:
        return bool(self.secret)

    def verify(self, token: str, remote_ip: Optional[str] = None) -> bool:
        """Return the provider's verdict for ``token``."""
        data = {"secret": self.secret, "response": token}
        if remote_ip:
            data["remoteip"] = remote_ip
        try:
            response = self.http.post(self.verify_url, data=data, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.error("Turnstile verification timed out")
            raise UpstreamTimeout("captcha") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Turnstile verification request failed: {type(e).__name__}")
            raise CaptchaProviderUnavailable() from e

        if response.status_code != 200:
            logger.error(f"Turnstile returned HTTP {response.status_code}")
            raise CaptchaProviderUnavailable()
        try:
            payload = response.json()
        except ValueError as e:
            logger.error("Invalid JSON response from Turnstile")
            raise CaptchaProviderUnavailable() from e

        success = payload.get("success") is True
        if not success:
            logger.info(f"Turnstile rejected token: {payload.get('error-codes')}")
        return success


@lru_cache(maxsize=1)
def get_captcha_service() -> CaptchaService:
    secret = settings.TURNSTILE_SECRET_KEY.get_secret_value() if settings.TURNSTILE_SECRET_KEY else None
    return CaptchaService(secret)
