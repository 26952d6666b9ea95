# restaurant_verification/services/verification/phone.py
import ipaddress
import logging
import re
import secrets
from typing import Iterable, Mapping, Optional

from restaurant_verification.core.errors import InvalidPhone

logger = logging.getLogger(__name__)

E164_PATTERN = re.compile(r"^\+\d{7,15}$")
UNKNOWN_PLACE = "unknown"
FALLBACK_IP = "0.0.0.0"


def normalize_phone(phone: str) -> str:
    """
    Canonicalise a phone number to E.164.

    Keeps digits and a leading '+'. Ten digit numbers are treated as North
    American and get '+1'; eleven digits starting with 1 get '+'. Anything else
    just gets a '+' prefix. Raises InvalidPhone unless the result is '+'
    followed by 7-15 digits.
    """
    if not phone:
        raise InvalidPhone()
    stripped = phone.strip()
    digits = re.sub(r"\D", "", stripped)

    if stripped.startswith("+"):
        normalized = f"+{digits}"
    elif len(digits) == 10:
        normalized = f"+1{digits}"
    elif len(digits) == 11 and digits.startswith("1"):
        normalized = f"+{digits}"
    else:
        normalized = f"+{digits}"

    if not E164_PATTERN.match(normalized):
        raise InvalidPhone()
    return normalized


def new_session_id() -> str:
    """128-bit random session nonce, hex encoded."""
    return secrets.token_hex(16)


def build_identifier(place_id: Optional[str], phone_e164: str, session_id: str) -> str:
    """Composite challenge key: place_id:phone_e164:session_id"""
    return f"{place_id or UNKNOWN_PLACE}:{phone_e164}:{session_id}"


def _is_trusted(peer: Optional[str], trusted_proxies: Iterable[str]) -> bool:
    if not peer:
        return False
    try:
        peer_ip = ipaddress.ip_address(peer)
    except ValueError:
        # Non-IP peers (unix sockets, test transports) only match literally
        return peer in trusted_proxies
    for entry in trusted_proxies:
        try:
            if peer_ip in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            if entry == peer:
                return True
    return False


def get_client_ip(headers: Mapping[str, str], peer: Optional[str], trusted_proxies: Iterable[str]) -> str:
    """
    Resolve the caller's IP.

    The first X-Forwarded-For hop is used only when the direct peer is a
    configured proxy; otherwise the peer address wins. Falls back to 0.0.0.0.
    """
    trusted = list(trusted_proxies)
    if _is_trusted(peer, trusted):
        forwarded = headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
    return peer or FALLBACK_IP
