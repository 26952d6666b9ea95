# restaurant_verification/services/verification/audit.py
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

audit_logger = logging.getLogger("restaurant_verification.audit")

# Never written to the audit trail, whatever the caller passes
_FORBIDDEN_KEYS = {"code", "code_attempt", "echoed_code"}


def audit_log(
    action: str,
    phone_e164: Optional[str],
    ip_address: Optional[str],
    place_id: Optional[str],
    outcome: str,
    **details: Any,
) -> Dict[str, Any]:
    """Emit one structured AUDIT line and return the entry."""
    entry: Dict[str, Any] = {
        "timestamp": datetime.utcnow().isoformat(),
        "action": action,
        "phone_e164": phone_e164,
        "ip": ip_address,
        "place_id": place_id,
        "outcome": outcome,
    }
    for key, value in details.items():
        if key in _FORBIDDEN_KEYS:
            continue
        entry[key] = value

    audit_logger.info(f"AUDIT: {json.dumps(entry, default=str)}")
    return entry
