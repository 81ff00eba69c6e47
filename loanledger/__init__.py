"""
loanledger - Peer-to-Peer Collateralized Lending Ledger

A borrower locks collateral and requests a loan, a lender supplies the exact
principal, and the loan resolves by exact repayment (principal + flat fee,
collateral returned) or by lender liquidation after strict expiry
(collateral seized).

Usage:
    from loanledger import AccountBook, LoanLedger, LogicalClock

    book = AccountBook("bank")
    for wallet in ("alice", "bob"):
        book.register_wallet(wallet)
    book.issue("alice", 1_000)
    book.issue("bob", 1_000)

    clock = LogicalClock(start=1_700_000_000)
    loans = LoanLedger(book, clock)

    loan_id = loans.request_loan(1000, 30, 500, 200, caller="alice")
    loans.fund_loan(loan_id, 1000, caller="bob")
    loans.repay_loan(loan_id, loans.total_owed(loan_id), caller="alice")
"""

# Core types
from .core import (
    LoanView,
    ValueTransferService,
    Clock,
    ReceiverHook,
    Transfer,
    Settlement,
    Loan,
    LoanEvent,
    LoanStatus,
    LoanEventType,
    LendingError,
    InvalidParameters,
    NotFound,
    InvalidState,
    Unauthorized,
    AmountMismatch,
    NotYetDue,
    ReentrantCall,
    TransferFailed,
    InsufficientFunds,
    WalletNotRegistered,
    RecipientRejected,
    UnsolicitedTransfer,
    compute_interest,
    compute_total_owed,
    compute_due_time,
    is_past_due,
    can_transition,
    advance_status,
    SYSTEM_WALLET,
    DEFAULT_LEDGER_NAME,
    SECONDS_PER_DAY,
    BPS_DENOMINATOR,
)

# Collaborators
from .accounts import AccountBook
from .clock import LogicalClock, SystemClock
from .guard import SingleFlightGuard

# Loan ledger
from .loan_ledger import LoanLedger

# Savings
from .savings import (
    SavingsLedger,
    DEFAULT_TRANSFER_INTERVAL,
    DEFAULT_TRANSFER_BPS,
)

__all__ = [
    # Core
    'LoanView', 'ValueTransferService', 'Clock', 'ReceiverHook',
    'Transfer', 'Settlement', 'Loan', 'LoanEvent', 'LoanStatus', 'LoanEventType',
    'LendingError', 'InvalidParameters', 'NotFound', 'InvalidState', 'Unauthorized',
    'AmountMismatch', 'NotYetDue', 'ReentrantCall', 'TransferFailed',
    'InsufficientFunds', 'WalletNotRegistered', 'RecipientRejected', 'UnsolicitedTransfer',
    'compute_interest', 'compute_total_owed', 'compute_due_time', 'is_past_due',
    'can_transition', 'advance_status',
    'SYSTEM_WALLET', 'DEFAULT_LEDGER_NAME', 'SECONDS_PER_DAY', 'BPS_DENOMINATOR',
    # Collaborators
    'AccountBook', 'LogicalClock', 'SystemClock', 'SingleFlightGuard',
    # Loan ledger
    'LoanLedger',
    # Savings
    'SavingsLedger', 'DEFAULT_TRANSFER_INTERVAL', 'DEFAULT_TRANSFER_BPS',
]

__version__ = '1.0.0'
