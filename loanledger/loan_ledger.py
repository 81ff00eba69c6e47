"""
loan_ledger.py - Peer-to-Peer Collateralized Loan Ledger

=== LOAN MODEL ===

A Loan moves through a forward-only lifecycle:

    REQUESTED --fund--> FUNDED --repay-----> REPAID
                               --liquidate-> LIQUIDATED

When a loan is requested:
    1. Collateral moves: borrower -> custody
    2. Record created (REQUESTED, no lender)

When a loan is funded:
    1. Record updated (FUNDED, lender fixed)
    2. Principal moves: lender -> custody -> borrower

When a loan is repaid (borrower only, exact amount):
    1. Record updated (REPAID)
    2. Payment moves: borrower -> custody -> lender
    3. Collateral moves: custody -> borrower

When a loan is liquidated (lender only, strictly after due_time):
    1. Record updated (LIQUIDATED)
    2. Collateral moves: custody -> lender

=== ORDERING ===

Each operation commits the new record BEFORE issuing transfers, and all of
an operation's transfers go to the transfer service as one atomic batch.
If the batch fails, the previous record is restored and TransferFailed is
raised: status and funds never disagree.

Every mutating operation holds the ledger-wide SingleFlightGuard, so a
receiver hook fired by an outbound transfer cannot re-enter the ledger.

=== CUSTODY ===

The ledger's custody wallet (named after the ledger) accepts value only as
an inbound leg of the operation currently in flight. Anything else is
refused with UnsolicitedTransfer.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Dict, List, Optional, Iterator, Any, Sequence
import threading

from .core import (
    # Types
    Loan, LoanEvent, LoanStatus, LoanEventType, Transfer, Settlement,
    ValueTransferService, Clock,
    # Constants
    DEFAULT_LEDGER_NAME, SYSTEM_WALLET,
    # Exceptions
    LendingError, InvalidParameters, NotFound, InvalidState, Unauthorized,
    AmountMismatch, NotYetDue, TransferFailed, UnsolicitedTransfer,
    # Pure functions
    is_amount, compute_due_time, is_past_due, advance_status,
)
from .clock import SystemClock
from .guard import SingleFlightGuard


def _require_positive(name: str, value: Any) -> None:
    if not is_amount(value) or value <= 0:
        raise InvalidParameters(f"{name} must be a positive integer, got {value!r}")


def _reference(loan_id: int, operation: str) -> str:
    return f"loan:{loan_id}:{operation}"


class LoanLedger:
    """
    Registry of loan records plus the operations that drive them.

    Implements the LoanView protocol. Caller identity and attached value are
    explicit parameters of every operation; the attached value is pulled
    from the caller's wallet inside the operation's atomic batch. Time is
    never a parameter: every operation reads the ledger clock once.

    Thread Safety:
        Mutating operations are single-flight: a second one, from any thread
        or from a receiver hook, fails immediately with ReentrantCall.
        Reads wait for an in-flight operation to finish, except reads from
        the thread that is running it.

    Example:
        book = AccountBook("bank")
        clock = LogicalClock(start=1_700_000_000)
        loans = LoanLedger(book, clock)

        loan_id = loans.request_loan(1000, 30, 500, 200, caller="alice")
        loans.fund_loan(loan_id, 1000, caller="bob")
        loans.repay_loan(loan_id, 1050, caller="alice")
    """

    def __init__(
        self,
        transfers: ValueTransferService,
        clock: Optional[Clock] = None,
        name: str = DEFAULT_LEDGER_NAME,
        verbose: bool = True,
    ):
        """
        Create a loan ledger.

        Registers the custody wallet `name` on the transfer service (if it is
        not already registered) and installs this ledger as its receiver.

        Args:
            transfers: Value transfer service holding custody and party wallets
            clock: Time source (default: SystemClock)
            name: Ledger identifier and custody wallet ID
            verbose: Print operation results (default: True)
        """
        self.name = name
        self.transfers = transfers
        self.clock = clock or SystemClock()
        self.verbose = verbose
        self._loans: Dict[int, Loan] = {}
        self._next_loan_id: int = 1
        self._event_log: List[LoanEvent] = []
        self._guard = SingleFlightGuard(name)
        self._state_lock = threading.RLock()
        # Inbound legs the custody wallet will accept during the current operation
        self._expected_inbound: List[Transfer] = []

        if not transfers.is_registered(name):
            transfers.register_wallet(name)
        transfers.register_receiver(name, self.on_receive)

    # ========================================================================
    # LoanView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    def get_loan(self, loan_id: int) -> Loan:
        """
        Return the loan record.

        Never fails: an ID with no record returns Loan.empty(loan_id), whose
        `exists` is False.
        """
        with self._state_lock:
            loan = self._loans.get(loan_id)
        if loan is None:
            return Loan.empty(loan_id)
        return loan

    def list_loans(self, status: Optional[LoanStatus] = None) -> List[Loan]:
        """All records in ID order, optionally filtered by status."""
        with self._state_lock:
            loans = [self._loans[i] for i in sorted(self._loans)]
        if status is None:
            return loans
        return [loan for loan in loans if loan.status is status]

    def events(
        self,
        loan_id: Optional[int] = None,
        event_type: Optional[LoanEventType] = None,
    ) -> List[LoanEvent]:
        """Notifications in emission order, optionally filtered."""
        with self._state_lock:
            log = list(self._event_log)
        return [
            e for e in log
            if (loan_id is None or e.loan_id == loan_id)
            and (event_type is None or e.event_type is event_type)
        ]

    # ========================================================================
    # QUERIES
    # ========================================================================

    @property
    def loan_count(self) -> int:
        """Number of loan IDs ever allocated."""
        return self._next_loan_id - 1

    @property
    def in_flight(self) -> Optional[str]:
        """Name of the operation holding the guard, or None."""
        return self._guard.operation

    def require_loan(self, loan_id: int) -> Loan:
        """
        Return the loan record.

        Raises:
            NotFound: If no loan has this ID
        """
        with self._state_lock:
            loan = self._loans.get(loan_id)
        if loan is None:
            raise NotFound(f"Loan {loan_id} not found")
        return loan

    def loans_for(self, party: str) -> List[Loan]:
        """Records where party is the borrower or the lender."""
        return [
            loan for loan in self.list_loans()
            if party in (loan.borrower, loan.lender)
        ]

    def total_owed(self, loan_id: int) -> int:
        """Exact repayment amount: principal + floor(principal * bps / 10000)."""
        return self.require_loan(loan_id).total_owed

    def is_liquidatable(self, loan_id: int, now: Optional[int] = None) -> bool:
        """True if the loan is FUNDED and strictly past its due time."""
        loan = self.get_loan(loan_id)
        if not loan.exists or loan.status is not LoanStatus.FUNDED:
            return False
        return is_past_due(loan.due_time, self._resolve_now(now))

    def overdue_loans(self, now: Optional[int] = None) -> List[Loan]:
        """FUNDED loans strictly past due (candidates for liquidation)."""
        now = self._resolve_now(now)
        return [
            loan for loan in self.list_loans(LoanStatus.FUNDED)
            if is_past_due(loan.due_time, now)
        ]

    def custody_balance(self) -> int:
        """Value the transfer service holds in this ledger's custody wallet."""
        return self.transfers.get_balance(self.name)

    def held_collateral(self) -> int:
        """Collateral of every loan that has not been released yet."""
        return sum(loan.collateral for loan in self.list_loans() if loan.is_open)

    def verify_custody(self) -> Dict[str, Any]:
        """
        Check that custody holds exactly the unreleased collateral.

        Escrowed principal passes straight through to the borrower on
        funding, so nothing else may remain in custody.

        Returns:
            Dict with keys 'valid', 'custody', 'held'
        """
        with self._state_lock:
            custody = self.custody_balance()
            held = self.held_collateral()
        return {
            'valid': custody == held,
            'custody': custody,
            'held': held,
        }

    # ========================================================================
    # LIFECYCLE OPERATIONS (Mutating)
    # ========================================================================

    def request_loan(
        self,
        principal: int,
        duration_days: int,
        interest_rate_bps: int,
        attached_collateral: int,
        caller: str,
    ) -> int:
        """
        Open a loan request and lock the caller's collateral.

        Args:
            principal: Amount requested (> 0)
            duration_days: Term in days (> 0); due_time = now + days * 86400
            interest_rate_bps: Flat fee in basis points of principal (>= 0)
            attached_collateral: Value the caller locks (> 0)
            caller: Borrower identity

        Returns:
            The new loan ID

        Raises:
            InvalidParameters: Non-positive amounts/duration, negative rate,
                non-int values, or an unusable caller
            TransferFailed: The collateral could not be taken into custody
            ReentrantCall: Another operation is in flight
        """
        with self._operation("request_loan"):
            _require_positive("principal", principal)
            _require_positive("duration_days", duration_days)
            _require_positive("attached_collateral", attached_collateral)
            if not is_amount(interest_rate_bps) or interest_rate_bps < 0:
                raise InvalidParameters(
                    f"interest_rate_bps must be a non-negative integer, got {interest_rate_bps!r}"
                )
            self._require_identity(caller)
            now = self._now()

            loan = Loan(
                loan_id=self._next_loan_id,
                borrower=caller,
                lender=None,
                principal=principal,
                collateral=attached_collateral,
                interest_rate_bps=interest_rate_bps,
                due_time=compute_due_time(now, duration_days),
                status=LoanStatus.REQUESTED,
            )
            reference = _reference(loan.loan_id, "request")
            self._settle(reference, None, loan, [
                Transfer(attached_collateral, caller, self.name, reference),
            ])
            self._next_loan_id += 1

            self._emit(
                LoanEventType.LOAN_REQUESTED, loan.loan_id, now,
                borrower=caller,
                principal=principal,
                collateral=attached_collateral,
                interest_rate_bps=interest_rate_bps,
                due_time=loan.due_time,
            )
            return loan.loan_id

    def fund_loan(self, loan_id: int, attached_principal: int, caller: str) -> None:
        """
        Fund a REQUESTED loan with exactly its principal.

        The caller becomes the lender. The principal passes through custody
        to the borrower in the same atomic batch.

        Raises:
            NotFound: No such loan
            InvalidState: Loan is not REQUESTED
            InvalidParameters: Unusable caller identity
            AmountMismatch: attached_principal != principal
            TransferFailed: Principal could not be moved (record restored)
            ReentrantCall: Another operation is in flight
        """
        with self._operation("fund_loan"):
            now = self._now()
            loan = self.require_loan(loan_id)
            self._require_status(loan, LoanStatus.REQUESTED, "fund")
            self._require_identity(caller)
            if not is_amount(attached_principal) or attached_principal != loan.principal:
                raise AmountMismatch(
                    f"Loan {loan_id}: funding requires exactly {loan.principal}, "
                    f"got {attached_principal!r}"
                )

            funded = advance_status(loan, LoanStatus.FUNDED, lender=caller)
            reference = _reference(loan_id, "fund")
            self._settle(reference, loan, funded, [
                Transfer(loan.principal, caller, self.name, reference),
                Transfer(loan.principal, self.name, loan.borrower, reference),
            ])

            self._emit(
                LoanEventType.LOAN_FUNDED, loan_id, now,
                lender=caller,
            )

    def repay_loan(self, loan_id: int, attached_payment: int, caller: str) -> None:
        """
        Repay a FUNDED loan in full.

        The borrower attaches exactly principal + fee. The lender receives the
        full payment and the borrower gets the collateral back, both in the
        same atomic batch as the payment itself.

        Raises:
            NotFound: No such loan
            InvalidState: Loan is not FUNDED
            Unauthorized: Caller is not the borrower
            AmountMismatch: attached_payment != total owed
            TransferFailed: Any leg failed (record restored, nothing moved)
            ReentrantCall: Another operation is in flight
        """
        with self._operation("repay_loan"):
            now = self._now()
            loan = self.require_loan(loan_id)
            self._require_status(loan, LoanStatus.FUNDED, "repay")
            if caller != loan.borrower:
                raise Unauthorized(
                    f"Loan {loan_id}: only the borrower {loan.borrower} can repay, not {caller}"
                )
            owed = loan.total_owed
            if not is_amount(attached_payment) or attached_payment != owed:
                raise AmountMismatch(
                    f"Loan {loan_id}: repayment requires exactly {owed}, "
                    f"got {attached_payment!r}"
                )

            repaid = advance_status(loan, LoanStatus.REPAID)
            reference = _reference(loan_id, "repay")
            self._settle(reference, loan, repaid, [
                Transfer(owed, caller, self.name, reference),
                Transfer(owed, self.name, loan.lender, reference),
                Transfer(loan.collateral, self.name, loan.borrower, reference),
            ])

            self._emit(
                LoanEventType.LOAN_REPAID, loan_id, now,
                borrower=loan.borrower,
                amount_paid=owed,
            )

    def liquidate_loan(self, loan_id: int, caller: str) -> None:
        """
        Seize the collateral of a FUNDED loan that is strictly past due.

        Expiry is judged against the ledger clock only.

        Raises:
            NotFound: No such loan
            InvalidState: Loan is not FUNDED
            Unauthorized: Caller is not the lender
            NotYetDue: clock.now() <= due_time
            TransferFailed: Collateral could not be moved (record restored)
            ReentrantCall: Another operation is in flight
        """
        with self._operation("liquidate_loan"):
            now = self._now()
            loan = self.require_loan(loan_id)
            self._require_status(loan, LoanStatus.FUNDED, "liquidate")
            if caller != loan.lender:
                raise Unauthorized(
                    f"Loan {loan_id}: only the lender {loan.lender} can liquidate, not {caller}"
                )
            if not is_past_due(loan.due_time, now):
                raise NotYetDue(
                    f"Loan {loan_id}: due at {loan.due_time}, liquidation needs now > due_time "
                    f"(now={now})"
                )

            liquidated = advance_status(loan, LoanStatus.LIQUIDATED)
            reference = _reference(loan_id, "liquidate")
            self._settle(reference, loan, liquidated, [
                Transfer(loan.collateral, self.name, loan.lender, reference),
            ])

            self._emit(
                LoanEventType.LOAN_LIQUIDATED, loan_id, now,
                lender=loan.lender,
                collateral_taken=loan.collateral,
            )

    # ========================================================================
    # CUSTODY RECEIVER
    # ========================================================================

    def on_receive(self, transfer: Transfer) -> None:
        """
        Receiver hook for the custody wallet.

        Accepts a transfer only if it is an inbound leg of the operation in
        flight; each expected leg is accepted once.

        Raises:
            UnsolicitedTransfer: For any other incoming value
        """
        for i, expected in enumerate(self._expected_inbound):
            if expected == transfer:
                del self._expected_inbound[i]
                return
        raise UnsolicitedTransfer(
            f"{self.name} refuses unsolicited {transfer.amount} from {transfer.source}"
        )

    # ========================================================================
    # INTERNALS
    # ========================================================================

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        """Hold the guard and the state lock; report rejections when verbose."""
        try:
            with self._guard.hold(name), self._state_lock:
                yield
        except LendingError as exc:
            if self.verbose:
                print(f"✗ REJECTED {name}: {exc}")
            raise

    def _settle(
        self,
        reference: str,
        previous: Optional[Loan],
        updated: Loan,
        transfers: Sequence[Transfer],
    ) -> Settlement:
        """
        Commit `updated`, then execute the transfers as one batch.

        On failure the registry entry is put back to `previous` (removed if
        there was none) and the failure is raised as TransferFailed.
        """
        self._loans[updated.loan_id] = updated
        self._expected_inbound = [t for t in transfers if t.dest == self.name]
        try:
            return self.transfers.execute(transfers, reference)
        except TransferFailed:
            self._restore(updated.loan_id, previous)
            raise
        except Exception as exc:
            self._restore(updated.loan_id, previous)
            raise TransferFailed(f"{reference}: transfer service error: {exc}") from exc
        finally:
            self._expected_inbound = []

    def _restore(self, loan_id: int, previous: Optional[Loan]) -> None:
        if previous is None:
            self._loans.pop(loan_id, None)
        else:
            self._loans[loan_id] = previous

    def _emit(self, event_type: LoanEventType, loan_id: int, timestamp: int, **params: Any) -> LoanEvent:
        event = LoanEvent(
            event_type=event_type,
            loan_id=loan_id,
            sequence_number=len(self._event_log),
            timestamp=timestamp,
            params=tuple(params.items()),
        )
        self._event_log.append(event)
        if self.verbose:
            print(f"✓ {event!r}")
        return event

    def _require_status(self, loan: Loan, expected: LoanStatus, action: str) -> None:
        if loan.status is not expected:
            raise InvalidState(
                f"Loan {loan.loan_id} is {loan.status.value}; {action} requires {expected.value}"
            )

    def _require_identity(self, caller: Any) -> None:
        if not isinstance(caller, str) or not caller.strip():
            raise InvalidParameters(f"caller must be a non-empty identity, got {caller!r}")
        if caller in (self.name, SYSTEM_WALLET):
            raise InvalidParameters(f"{caller} cannot act as a loan party")

    def _now(self) -> int:
        return self._resolve_now(None)

    def _resolve_now(self, now: Optional[int]) -> int:
        if now is None:
            now = self.clock.now()
        if not is_amount(now) or now < 0:
            raise InvalidParameters(f"now must be a non-negative integer, got {now!r}")
        return now
