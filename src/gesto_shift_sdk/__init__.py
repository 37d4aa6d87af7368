from .cash_breakdown import CashBreakdownCalculator, compute_totals
from .config import ClientConfig, ConfigError, load_config
from .connectivity import ConnectivityEvent, ConnectivityMonitor, ConnectivityState
from .exceptions import (
    ApiError,
    ConflictError,
    ConnectivityLost,
    InputRejected,
    NotFoundError,
    ParseFailed,
    SelectionMissingError,
    ServerError,
    ShiftError,
    SyncFailed,
    TransportError,
    ValidationError,
    ValidationFailed,
)
from .http_client import HttpClient
from .local_store import LocalStore
from .models import (
    Area,
    CashBreakdown,
    CashTotals,
    ConsumptionLedger,
    Employee,
    FlowKind,
    LedgerItem,
    ProductEntry,
)
from .quantities import QuantityAggregator, reshape
from .reconciliation import (
    PendingConfirmation,
    ReconciliationReport,
    ReconciliationValidator,
    close_confirmation,
    evaluate,
)
from .scheduling import ManualScheduler, Scheduler, TkScheduler
from .session import SessionEvent, ShiftSession
from .settings import Selection, ShiftSettings
from .sync_engine import SyncEngine, SyncState

__all__ = [
    "ApiError",
    "Area",
    "CashBreakdown",
    "CashBreakdownCalculator",
    "CashTotals",
    "ClientConfig",
    "ConfigError",
    "ConflictError",
    "ConnectivityEvent",
    "ConnectivityLost",
    "ConnectivityMonitor",
    "ConnectivityState",
    "ConsumptionLedger",
    "Employee",
    "FlowKind",
    "HttpClient",
    "InputRejected",
    "LedgerItem",
    "LocalStore",
    "ManualScheduler",
    "NotFoundError",
    "ParseFailed",
    "PendingConfirmation",
    "ProductEntry",
    "QuantityAggregator",
    "ReconciliationReport",
    "ReconciliationValidator",
    "Scheduler",
    "Selection",
    "SelectionMissingError",
    "ServerError",
    "SessionEvent",
    "ShiftError",
    "ShiftSession",
    "ShiftSettings",
    "SyncEngine",
    "SyncFailed",
    "SyncState",
    "TkScheduler",
    "TransportError",
    "ValidationError",
    "ValidationFailed",
    "close_confirmation",
    "compute_totals",
    "evaluate",
    "load_config",
    "reshape",
]
