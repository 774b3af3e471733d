"""Chat history store access and the persistence outbox."""

from arbor.history.client import HistoryClient, HistoryClientConfig
from arbor.history.outbox import HistoryOutbox

__all__ = ["HistoryClient", "HistoryClientConfig", "HistoryOutbox"]
