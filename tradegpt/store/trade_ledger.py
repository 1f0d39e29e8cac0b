"""In-memory trade ledger, partitioned by user then by trade id.

Every operation is synchronous, so under the single event loop each call is
atomic with respect to the monitor and the request handlers. Sequences of
calls separated by an ``await`` are not.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import ValidationError

from tradegpt.errors import DuplicateIdError, InvalidTradeUpdateError
from tradegpt.models.trade import Trade, TradeStatus, TradeSuggestion

logger = logging.getLogger(__name__)

# Fields callers may never overwrite through update()
_IMMUTABLE_FIELDS = {"id", "user_id", "created_at", "updated_at"}


class TradeLedger:
    def __init__(self):
        self._trades_by_user: dict[str, dict[str, Trade]] = {}

    def insert(
        self,
        user_id: str,
        suggestion: TradeSuggestion,
        status: TradeStatus = TradeStatus.DRAFT,
    ) -> Trade:
        """Create a trade record from a suggestion."""
        user_trades = self._trades_by_user.setdefault(user_id, {})
        if suggestion.id in user_trades:
            raise DuplicateIdError(f"Trade {suggestion.id} already exists for user {user_id}")

        now = datetime.now(timezone.utc)
        trade = Trade(
            **suggestion.model_dump(),
            user_id=user_id,
            status=status,
            created_at=now,
            updated_at=now,
        )
        user_trades[trade.id] = trade
        logger.debug(f"Inserted trade {trade.id} for {user_id} ({status.value})")
        return trade

    def get(self, user_id: str, trade_id: str) -> Trade | None:
        return self._trades_by_user.get(user_id, {}).get(trade_id)

    def update(self, user_id: str, trade_id: str, fields: dict[str, Any]) -> Trade | None:
        """Merge ``fields`` onto an existing trade.

        Returns the merged record, or None when the trade does not exist
        (nothing to update; not an error). ``updated_at`` strictly increases
        on every successful call.
        """
        existing = self.get(user_id, trade_id)
        if existing is None:
            return None

        patch = {k: v for k, v in fields.items() if k not in _IMMUTABLE_FIELDS}
        patch["updated_at"] = _timestamp_after(existing.updated_at)
        # Validate the merged record before storing so a bad patch leaves the ledger untouched
        try:
            merged = Trade.model_validate({**existing.model_dump(), **patch})
        except ValidationError as e:
            bad_fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
            raise InvalidTradeUpdateError(f"Invalid trade update: {bad_fields or e}") from e
        self._trades_by_user[user_id][trade_id] = merged
        return merged

    def list_all(self) -> list[Trade]:
        """Every trade across users, most recently updated first (monitoring accessor)."""
        trades = [t for user_trades in self._trades_by_user.values() for t in user_trades.values()]
        return sorted(trades, key=lambda t: t.updated_at, reverse=True)

    def list(self, user_id: str) -> list[Trade]:
        """A user's trades, newest first."""
        trades = self._trades_by_user.get(user_id, {}).values()
        return sorted(trades, key=lambda t: t.created_at, reverse=True)


def _timestamp_after(previous: datetime) -> datetime:
    now = datetime.now(timezone.utc)
    if now <= previous:
        return previous + timedelta(microseconds=1)
    return now
