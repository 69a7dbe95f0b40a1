from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pricing_engine.services.history_retention import purge_expired_history


def _session_factory():
    mock_session = AsyncMock()
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=mock_session)


class TestPurgeExpiredHistory:
    """Verify the one-shot history retention purge."""

    @pytest.mark.asyncio
    async def test_purges_entries_older_than_retention(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        repo = MagicMock()
        repo.purge_older_than = AsyncMock(return_value=4)
        repo.commit = AsyncMock()

        with patch(
            "pricing_engine.services.history_retention.RuleHistoryRepository",
            return_value=repo,
        ):
            purged = await purge_expired_history(_session_factory(), retention_days=30, now=now)

        assert purged == 4
        repo.purge_older_than.assert_awaited_once_with(now - timedelta(days=30))
        repo.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_nothing_to_purge(self):
        repo = MagicMock()
        repo.purge_older_than = AsyncMock(return_value=0)
        repo.commit = AsyncMock()

        with patch(
            "pricing_engine.services.history_retention.RuleHistoryRepository",
            return_value=repo,
        ):
            purged = await purge_expired_history(_session_factory(), retention_days=730)

        assert purged == 0
