"""
Confirmation gate for destructive commands.

A batch containing delete or bulk_delete_all is never executed straight
from a parse: it is parked in a ConfirmationStore under a random token and
only runs when the same owner redeems that token within the TTL.

ConfirmationStore keeps state in process memory. With more than one API
instance it has to be replaced by a shared keyed store with per-key expiry
(e.g. Redis SET with EX + GETDEL), otherwise a token issued by one instance
cannot be redeemed on another.
"""
import asyncio
import logging
import secrets
import threading
import time
from typing import Callable, Optional

from pydantic import BaseModel

import config
from actions import (
    DESTRUCTIVE_ACTION_TYPES,
    Action,
    CommandResponse,
    DeleteAction,
    ParsedCommand,
)
from executor import ambiguous_delete_message
from models import Owner

logger = logging.getLogger(__name__)

EXPIRED_MESSAGE = "Confirmation expired, please retry."


class AmbiguousMatchError(Exception):
    """A title-based delete matches more than one task."""


class PendingConfirmation(BaseModel):
    token: str
    owner: Owner
    actions: list[Action]
    preview: str
    created_at: float


class ConfirmationStore:
    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = config.CONFIRMATION_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: dict[str, PendingConfirmation] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def _expired(self, entry: PendingConfirmation, now: float) -> bool:
        return now - entry.created_at > self.ttl_seconds

    def issue(self, owner: Owner, actions: list[Action], preview: str) -> str:
        token = secrets.token_hex(32)
        entry = PendingConfirmation(
            token=token,
            owner=owner,
            actions=actions,
            preview=preview,
            created_at=self._clock(),
        )
        with self._lock:
            self._pending[token] = entry
        logger.info("Issued confirmation token for %s (%d action(s))", owner.id, len(actions))
        return token

    def redeem(self, token: str, owner: Owner) -> Optional[PendingConfirmation]:
        """
        Take the pending batch for token. Unknown, expired, already used and
        wrong-owner tokens all return None. A successful redeem removes the
        entry, so a token works once.
        """
        with self._lock:
            entry = self._pending.get(token)
            if entry is None:
                return None
            if self._expired(entry, self._clock()):
                del self._pending[token]
                logger.info("Confirmation token for %s expired before use", entry.owner.id)
                return None
            if entry.owner != owner:
                logger.warning("Confirmation token presented by a different owner")
                return None
            del self._pending[token]
        return entry

    def sweep(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [token for token, entry in self._pending.items() if self._expired(entry, now)]
            for token in expired:
                del self._pending[token]
        if expired:
            logger.debug("Swept %d expired confirmation token(s)", len(expired))
        return len(expired)


async def reap_expired(store: ConfirmationStore, interval_seconds: Optional[float] = None):
    """Background task: sweep the store forever (cancel to stop)."""
    interval = config.CONFIRMATION_SWEEP_SECONDS if interval_seconds is None else interval_seconds
    while True:
        await asyncio.sleep(interval)
        store.sweep()


def requires_confirm(actions: list[Action]) -> bool:
    """The only place the confirm-or-not decision is made."""
    return any(isinstance(action, DESTRUCTIVE_ACTION_TYPES) for action in actions)


def find_ambiguous_delete(owner: Owner, actions: list[Action]) -> Optional[str]:
    """Message for the first title-only delete that matches several tasks, else None."""
    for action in actions:
        if isinstance(action, DeleteAction) and action.match.title and not action.match.id:
            message = ambiguous_delete_message(owner, action.match.title)
            if message:
                return message
    return None


def gate_command(owner: Owner, parsed: ParsedCommand, store: ConfirmationStore) -> CommandResponse:
    """
    Decide auto-execute vs. confirm for a parsed batch.

    Raises AmbiguousMatchError for an ambiguous delete. The parser's own
    requiresConfirm hint is ignored.
    """
    message = find_ambiguous_delete(owner, parsed.actions)
    if message:
        raise AmbiguousMatchError(message)

    if not requires_confirm(parsed.actions):
        return CommandResponse(actions=parsed.actions, preview=parsed.preview, requires_confirm=False)

    token = store.issue(owner, parsed.actions, parsed.preview)
    return CommandResponse(
        actions=parsed.actions,
        preview=parsed.preview,
        requires_confirm=True,
        confirm_token=token,
    )
