"""接続オーケストレーションの中核"""

from deploylink.core.disconnect import DisconnectWorkflow
from deploylink.core.orchestrator import ProviderConnectionOrchestrator
from deploylink.core.reader import ConnectionStateReader
from deploylink.core.state import (
    AccountSlice,
    ConnectionSnapshot,
    ConnectionStateStore,
    RecordSlice,
    SignedInAsView,
)

__all__ = [
    "AccountSlice",
    "ConnectionSnapshot",
    "ConnectionStateReader",
    "ConnectionStateStore",
    "DisconnectWorkflow",
    "ProviderConnectionOrchestrator",
    "RecordSlice",
    "SignedInAsView",
]
