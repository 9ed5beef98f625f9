"""
Claim engine: decides whether an order identifier may be redeemed right now
and, when it may, records the redemption and hands back the download links.

Policy rejections are ordinary return values (``ClaimResult``); only storage
failures raise.  Nothing here logs; the HTTP layer does that.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..common.clock import Clock, isoformat, utcnow
from ..common.database import AsyncSessionLocal
from ..orders import ledger

# A lost race is retried when the fresh row still looks claimable
# (e.g. an admin switched the order to multi-use in between).
MAX_CLAIM_ATTEMPTS = 3


class ClaimOutcome(str, enum.Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_CLAIMED = "already_claimed"
    NO_PRODUCTS = "no_products"


MESSAGES = {
    ClaimOutcome.SUCCESS: "Products claimed successfully!",
    ClaimOutcome.NOT_FOUND: "Order not found",
    ClaimOutcome.EXPIRED: "This order has expired",
    ClaimOutcome.ALREADY_CLAIMED: "This order has already been claimed (one-time use only)",
    ClaimOutcome.NO_PRODUCTS: "No products found for this order",
}

HTTP_STATUS = {
    ClaimOutcome.SUCCESS: 200,
    ClaimOutcome.NOT_FOUND: 404,
    ClaimOutcome.EXPIRED: 400,
    ClaimOutcome.ALREADY_CLAIMED: 400,
    ClaimOutcome.NO_PRODUCTS: 400,
}

_LEDGER_REJECTIONS = {
    ledger.EXPIRED: ClaimOutcome.EXPIRED,
    ledger.ALREADY_CLAIMED: ClaimOutcome.ALREADY_CLAIMED,
}


@dataclass
class ClaimResult:
    outcome: ClaimOutcome
    message: str
    products: List[Dict[str, Any]] = field(default_factory=list)
    download_links: List[str] = field(default_factory=list)
    claim_count: Optional[int] = None
    claimed_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.outcome is ClaimOutcome.SUCCESS

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.outcome]

    @classmethod
    def rejected(cls, outcome: ClaimOutcome) -> "ClaimResult":
        return cls(outcome=outcome, message=MESSAGES[outcome])

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {"success": False, "message": self.message}
        return {
            "success": True,
            "message": self.message,
            "products": self.products,
            "download_links": self.download_links,
            "claim_count": self.claim_count,
            "claimed_at": isoformat(self.claimed_at),
        }


async def attempt_claim(order_identifier: str, clock: Clock = utcnow) -> ClaimResult:
    now = clock()
    async with AsyncSessionLocal() as session:
        async with session.begin():
            order = await ledger.find_by_identifier(session, order_identifier)
            for _ in range(MAX_CLAIM_ATTEMPTS):
                if order is None:
                    return ClaimResult.rejected(ClaimOutcome.NOT_FOUND)

                rejection = ledger.rejection_for(order, now)
                if rejection is not None:
                    return ClaimResult.rejected(_LEDGER_REJECTIONS[rejection])

                products = await ledger.list_products(session, order.id)
                if not products:
                    return ClaimResult.rejected(ClaimOutcome.NO_PRODUCTS)

                claim_count = await ledger.increment_claim(session, order.id, now)
                if claim_count is not None:
                    return ClaimResult(
                        outcome=ClaimOutcome.SUCCESS,
                        message=MESSAGES[ClaimOutcome.SUCCESS],
                        products=[p.public_dict() for p in products],
                        download_links=[p.download_link for p in products],
                        claim_count=claim_count,
                        claimed_at=now,
                    )

                # Someone else changed the row between our read and our write
                order = await ledger.find_by_identifier(session, order_identifier, refresh=True)

            return ClaimResult.rejected(ClaimOutcome.ALREADY_CLAIMED)
