from typing import Optional

from pydantic import BaseModel

import config
from database import count_tasks_db, get_subscription_status
from models import Owner


class QuotaCheck(BaseModel):
    allowed: bool
    reason: Optional[str] = None


def is_pro(owner: Owner) -> bool:
    """Guests never have a subscription."""
    if owner.is_guest:
        return False
    status = get_subscription_status(owner.id)
    return bool(status and status["is_valid"])


def can_create_task(owner: Owner) -> QuotaCheck:
    if is_pro(owner):
        return QuotaCheck(allowed=True)

    limit = config.FREE_PLAN_LIMIT
    count = count_tasks_db(owner)
    if count >= limit:
        return QuotaCheck(
            allowed=False,
            reason=f"Free plan limit reached ({count} of {limit} tasks used). Upgrade to create more.",
        )
    return QuotaCheck(allowed=True)
