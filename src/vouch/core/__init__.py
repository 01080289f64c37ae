"""Vouch Core - ledger, verification, rewards and fee pool."""

from .events import DomainEvent, EventKind, EventLog
from .exceptions import (
    AlreadyVerifiedError,
    ConfigException,
    ConflictError,
    InsufficientBalanceError,
    InvalidAmountError,
    NotFoundError,
    NothingToWithdrawError,
    TransferFailedError,
    UnauthorizedError,
    ValidationException,
    VouchException,
)
from .fee_pool import FeePool
from .interfaces import (
    FundsTransferService,
    InMemoryFundsTransfer,
    InMemoryTokenAccounts,
    TokenAccountService,
)
from .ledger import Ledger
from .logging import (
    OperationLogger,
    configure_logging,
    correlation_context,
    get_logger,
    operation_logger,
)
from .models import (
    FeePoolState,
    PoolStats,
    Post,
    PostView,
    RewardInstruction,
    RewardReason,
    VerificationRecord,
)
from .persistence import StateStore
from .rewards import RewardConstants, RewardOutcome, RewardPolicy, issue_rewards
from .service import (
    CallerContext,
    DisbursementReceipt,
    PostReceipt,
    VerificationReceipt,
    VouchService,
)
from .verification import VerificationRegistry

__all__ = [
    # Events
    "DomainEvent",
    "EventKind",
    "EventLog",
    # Exceptions
    "VouchException",
    "ValidationException",
    "ConfigException",
    "NotFoundError",
    "ConflictError",
    "AlreadyVerifiedError",
    "UnauthorizedError",
    "InvalidAmountError",
    "InsufficientBalanceError",
    "NothingToWithdrawError",
    "TransferFailedError",
    # Components
    "Ledger",
    "VerificationRegistry",
    "RewardPolicy",
    "RewardConstants",
    "RewardOutcome",
    "issue_rewards",
    "FeePool",
    "StateStore",
    # Collaborators
    "TokenAccountService",
    "FundsTransferService",
    "InMemoryTokenAccounts",
    "InMemoryFundsTransfer",
    # Models
    "Post",
    "PostView",
    "VerificationRecord",
    "RewardInstruction",
    "RewardReason",
    "FeePoolState",
    "PoolStats",
    # Service
    "VouchService",
    "CallerContext",
    "PostReceipt",
    "VerificationReceipt",
    "DisbursementReceipt",
    # Logging
    "configure_logging",
    "get_logger",
    "correlation_context",
    "OperationLogger",
    "operation_logger",
]
