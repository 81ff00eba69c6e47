"""
Core types and pure functions for the lending ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LoanView for read-only loan access, ValueTransferService and
   Clock for the collaborators the ledger depends on
2. Immutable data structures: Transfer, Settlement, Loan, LoanEvent
3. Exceptions: LendingError and the precondition / transfer error taxonomy
4. Pure functions: interest, total owed, due time, status transitions

All functions in this module are pure. No function can mutate ledger state.
Amounts are integer asset units and times are integer seconds; the flat fee
is truncated with floor division so repayment amounts are bit-exact.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import (
    Dict, List, Optional, Callable, Any, Protocol,
    Sequence, Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance. Exempt from balance validation.
SYSTEM_WALLET = "system"

# Default custody wallet / ledger name.
DEFAULT_LEDGER_NAME = "loan_ledger"

SECONDS_PER_DAY = 86400

# 1 bps = 1/100 of a percent.
BPS_DENOMINATOR = 10000


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Who is invoking an operation (wallet ID on the transfer service).
Identity = str

# Integer seconds.
Timestamp = int

# Mapping from wallet ID to balance.
BalanceMap = Dict[str, int]

# Callback invoked by the transfer service when value lands in a wallet.
# Raising from the hook rejects the value and fails the whole batch.
ReceiverHook = Callable[['Transfer'], None]


# ============================================================================
# ENUMS
# ============================================================================

class LoanStatus(str, Enum):
    """
    Lifecycle status of a loan.

    REQUESTED and FUNDED are the only non-terminal states. REQUESTED is the
    zero value: a record that was never initialized reads as REQUESTED.
    """
    REQUESTED = "requested"     # Collateral locked, waiting for a lender
    FUNDED = "funded"           # Principal delivered to the borrower
    REPAID = "repaid"           # Lender paid, collateral returned
    LIQUIDATED = "liquidated"   # Collateral seized by the lender


class LoanEventType(str, Enum):
    """Notification kinds appended to the ledger's event log."""
    LOAN_REQUESTED = "LoanRequested"
    LOAN_FUNDED = "LoanFunded"
    LOAN_REPAID = "LoanRepaid"
    LOAN_LIQUIDATED = "LoanLiquidated"


# Forward-only transitions. Terminal states have no entry.
ALLOWED_TRANSITIONS: Dict[LoanStatus, FrozenSet[LoanStatus]] = {
    LoanStatus.REQUESTED: frozenset({LoanStatus.FUNDED}),
    LoanStatus.FUNDED: frozenset({LoanStatus.REPAID, LoanStatus.LIQUIDATED}),
}

OPEN_STATUSES = frozenset({LoanStatus.REQUESTED, LoanStatus.FUNDED})


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for all lending-ledger errors."""
    pass


class InvalidParameters(LendingError):
    """Raised for non-positive principal, duration or collateral, or malformed inputs."""
    pass


class NotFound(LendingError):
    """Raised when a referenced loan ID has no record."""
    pass


class InvalidState(LendingError):
    """Raised when an operation is attempted outside its required status."""
    pass


class Unauthorized(LendingError):
    """Raised when the caller is not the party the operation requires."""
    pass


class AmountMismatch(LendingError):
    """Raised when the attached value is not exactly the required amount."""
    pass


class NotYetDue(LendingError):
    """Raised when a time-gated operation is attempted too early."""
    pass


class ReentrantCall(LendingError):
    """Raised when a mutating operation starts while another is in flight."""
    pass


class TransferFailed(LendingError):
    """Raised when the transfer service could not move funds."""
    pass


class InsufficientFunds(TransferFailed):
    """Raised when a transfer would take a wallet below zero."""
    pass


class WalletNotRegistered(TransferFailed):
    """Raised when a transfer names a wallet the transfer service does not know."""
    pass


class RecipientRejected(TransferFailed):
    """Raised when a receiving wallet refuses the value."""
    pass


class UnsolicitedTransfer(TransferFailed):
    """Raised when value is sent to a custody wallet outside a recognized operation."""
    pass


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

def is_amount(value: Any) -> bool:
    """True for plain ints. bool is an int subclass but never an amount."""
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True, slots=True)
class Transfer:
    """
    A single movement of value between two wallets.

    Attributes:
        amount: Asset units to move (positive integer).
        source: Wallet ID debited.
        dest: Wallet ID credited.
        reference: Identifier of the operation generating this transfer.
    """
    amount: int
    source: str
    dest: str
    reference: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Transfer source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Transfer dest cannot be empty")
        if not self.reference or not self.reference.strip():
            raise ValueError("Transfer reference cannot be empty")
        if not is_amount(self.amount):
            raise ValueError(f"Transfer amount must be int, got {type(self.amount)}")
        if self.amount <= 0:
            raise ValueError(f"Transfer amount must be positive, got {self.amount}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Transfer({self.amount}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class Settlement:
    """
    An executed, immutable record of one atomic batch of transfers.

    Attributes:
        transfers: The legs, in execution order
        reference: Operation that submitted the batch
        book_name: Name of the transfer service that executed it
        sequence_number: Monotonic sequence within that service
        exec_id: Unique execution identifier (book + sequence)
    """
    transfers: Tuple[Transfer, ...]
    reference: str
    book_name: str
    sequence_number: int
    exec_id: str = field(default="")

    def __post_init__(self):
        if not self.transfers:
            raise ValueError("Settlement must have at least one transfer")
        if not self.exec_id:
            object.__setattr__(
                self, 'exec_id', f"exec:{self.book_name}:{self.sequence_number:012d}"
            )

    def total_into(self, wallet_id: str) -> int:
        """Sum of legs crediting wallet_id."""
        return sum(t.amount for t in self.transfers if t.dest == wallet_id)

    def total_out_of(self, wallet_id: str) -> int:
        """Sum of legs debiting wallet_id."""
        return sum(t.amount for t in self.transfers if t.source == wallet_id)

    def __repr__(self) -> str:
        w = 80  # Inner content width
        bar = "─" * w

        def pad(text: str) -> str:
            """Pad or truncate text to exactly w characters."""
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Settlement: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   reference : ' + self.reference)}│",
            f"│{pad('   sequence  : ' + str(self.sequence_number))}│",
            f"├{bar}┤",
            f"│{pad(' Transfers (' + str(len(self.transfers)) + '):')}│",
        ]
        for i, t in enumerate(self.transfers):
            lines.append(f"│{pad(f'   [{i}] {t.amount}: {t.source} → {t.dest}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class Loan:
    """
    Immutable loan record.

    Every transition replaces the record; nothing is mutated in place and
    nothing is ever deleted. Closed loans stay queryable as history.

    Attributes:
        loan_id: Unique, monotonically assigned, never reused
        borrower: Requester identity (None only for the empty record)
        lender: Funder identity, None until funding, then fixed
        principal: Requested amount
        collateral: Amount locked at request time
        interest_rate_bps: Flat fee rate in basis points of principal
        due_time: Creation time + duration, in seconds
        status: Lifecycle status
    """
    loan_id: int
    borrower: Optional[str]
    lender: Optional[str]
    principal: int
    collateral: int
    interest_rate_bps: int
    due_time: int
    status: LoanStatus = LoanStatus.REQUESTED

    @classmethod
    def empty(cls, loan_id: int) -> Loan:
        """The zero record returned for an ID that was never initialized."""
        return cls(
            loan_id=loan_id,
            borrower=None,
            lender=None,
            principal=0,
            collateral=0,
            interest_rate_bps=0,
            due_time=0,
        )

    @property
    def exists(self) -> bool:
        return self.borrower is not None

    @property
    def is_open(self) -> bool:
        return self.exists and self.status in OPEN_STATUSES

    @property
    def is_closed(self) -> bool:
        return self.exists and self.status not in OPEN_STATUSES

    @property
    def interest(self) -> int:
        return compute_interest(self.principal, self.interest_rate_bps)

    @property
    def total_owed(self) -> int:
        return compute_total_owed(self.principal, self.interest_rate_bps)


@dataclass(frozen=True, slots=True)
class LoanEvent:
    """
    Immutable notification appended to the ledger's event log.

    Attributes:
        event_type: Which lifecycle step happened
        loan_id: Loan the event concerns
        sequence_number: Position in the ledger's log
        timestamp: Ledger time when the operation committed
        params: Event payload as frozen (key, value) pairs
    """
    event_type: LoanEventType
    loan_id: int
    sequence_number: int
    timestamp: int
    params: Tuple[Tuple[str, Any], ...] = ()

    @property
    def params_dict(self) -> Dict[str, Any]:
        return dict(self.params)

    def __repr__(self) -> str:
        params_str = ", ".join(f"{k}={v}" for k, v in self.params)
        return f"{self.event_type.value}(#{self.loan_id}, {params_str})"


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class ValueTransferService(Protocol):
    """
    Moves value between wallets. The ledger depends on it, never implements it.

    execute() is all-or-nothing: either every leg is applied, or it raises
    TransferFailed (or a subclass) and no balance has changed.
    """

    def execute(self, transfers: Sequence[Transfer], reference: str) -> Settlement:
        ...

    def get_balance(self, wallet_id: str) -> int:
        ...

    def is_registered(self, wallet_id: str) -> bool:
        ...

    def register_wallet(self, wallet_id: str) -> str:
        ...

    def register_receiver(self, wallet_id: str, receiver: ReceiverHook) -> None:
        ...


@runtime_checkable
class Clock(Protocol):
    """Monotonic time source in integer seconds."""

    def now(self) -> int:
        ...


@runtime_checkable
class LoanView(Protocol):
    """
    Read-only interface to loan state.

    Functions accepting a LoanView declare their read-only intent. LoanLedger
    implements this protocol but also provides the mutating operations.
    """

    def get_loan(self, loan_id: int) -> Loan:
        """Return the record, or Loan.empty(loan_id) if there is none."""
        ...

    def list_loans(self, status: Optional[LoanStatus] = None) -> List[Loan]:
        ...

    def events(
        self,
        loan_id: Optional[int] = None,
        event_type: Optional[LoanEventType] = None,
    ) -> List[LoanEvent]:
        ...


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def compute_interest(principal: int, interest_rate_bps: int) -> int:
    """
    Flat fee on principal, truncated.

    Example:
        1000 at 500 bps -> 50
        999 at 1 bps -> 0
    """
    return principal * interest_rate_bps // BPS_DENOMINATOR


def compute_total_owed(principal: int, interest_rate_bps: int) -> int:
    """principal + floor(principal * interest_rate_bps / 10000)."""
    return principal + compute_interest(principal, interest_rate_bps)


def compute_due_time(now: int, duration_days: int) -> int:
    return now + duration_days * SECONDS_PER_DAY


def is_past_due(due_time: int, now: int) -> bool:
    """Strict expiry: exactly at due_time is not yet past due."""
    return now > due_time


def can_transition(current: LoanStatus, new: LoanStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def advance_status(loan: Loan, new_status: LoanStatus, **changes: Any) -> Loan:
    """
    Return a copy of loan moved to new_status (plus any field changes).

    Raises:
        InvalidState: If the move is not a forward step of the lifecycle
    """
    if not can_transition(loan.status, new_status):
        raise InvalidState(
            f"Loan {loan.loan_id}: cannot move from {loan.status.value} to {new_status.value}"
        )
    return replace(loan, status=new_status, **changes)
