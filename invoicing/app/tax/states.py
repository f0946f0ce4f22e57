"""State code helpers.

Customer and seller states are stored as ``"<2-digit-code>-<name>"``, e.g.
``"33-Tamil Nadu"``. Only the numeric prefix takes part in tax decisions.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

_CODE_RE = re.compile(r"^\s*(\d{1,2})(?!\d)")


def state_code(state: str | None) -> str | None:
    """Return the zero-padded two digit code of ``state`` or ``None``."""

    if not state:
        return None
    match = _CODE_RE.match(str(state))
    if not match:
        return None
    return match.group(1).zfill(2)


def is_interstate(buyer_state: str | None, seller_state: str | None) -> bool:
    """Return ``True`` when buyer and seller sit in different states.

    A missing or unparseable code on either side is treated as intra-state
    and logged; this never raises.
    """

    buyer = state_code(buyer_state)
    seller = state_code(seller_state)
    if buyer is None or seller is None:
        logger.warning(
            "unparseable state code buyer=%r seller=%r; treating as intra-state",
            buyer_state,
            seller_state,
        )
        return False
    return buyer != seller
