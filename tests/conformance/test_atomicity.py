"""
Atomicity Conformance Tests

INVARIANT: An operation is all-or-nothing.

    ∀ operation O:
        O succeeds ⟹ record updated, every transfer applied, event emitted
        O fails    ⟹ record, balances, transfer log and events unchanged

The record is committed before the transfers are issued; a failed batch
puts the previous record back.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from loanledger import (
    LoanLedger, SavingsLedger, LogicalClock, LoanStatus, Transfer,
    LendingError, TransferFailed, RecipientRejected,
)
from tests.conftest import (
    capture_state, make_book,
    START_TIME, INITIAL_BALANCE,
    PRINCIPAL, DURATION_DAYS, RATE_BPS, COLLATERAL, TOTAL_OWED, DUE_TIME,
)


class TestAtomicityExamples:
    """Explicit atomicity examples."""

    def test_borrower_refusing_principal_rolls_back_funding(self, book, loans, requested_loan):
        """A refusal on the last leg undoes the lender's payment into custody."""
        book.reject_incoming("alice")
        before = capture_state(loans, book)

        with pytest.raises(RecipientRejected):
            loans.fund_loan(requested_loan, PRINCIPAL, caller="bob")

        assert capture_state(loans, book) == before
        loan = loans.get_loan(requested_loan)
        assert loan.status is LoanStatus.REQUESTED
        assert loan.lender is None

    def test_lender_refusing_payment_rolls_back_repayment(self, book, loans, funded_loan):
        """Borrower keeps the payment and the collateral stays in custody."""
        book.reject_incoming("bob")
        before = capture_state(loans, book)

        with pytest.raises(TransferFailed):
            loans.repay_loan(funded_loan, TOTAL_OWED, caller="alice")

        assert capture_state(loans, book) == before
        assert loans.get_loan(funded_loan).status is LoanStatus.FUNDED
        assert loans.verify_custody()['valid']

    def test_borrower_hook_raising_rolls_back_repayment(self, book, loans, funded_loan):
        """A hook failing on the collateral-return leg undoes the whole batch."""
        def refuse_collateral(transfer):
            if transfer.reference.endswith(":repay"):
                raise RuntimeError("wallet frozen")

        book.register_receiver("alice", refuse_collateral)
        before = capture_state(loans, book)

        with pytest.raises(TransferFailed):
            loans.repay_loan(funded_loan, TOTAL_OWED, caller="alice")

        assert capture_state(loans, book) == before

    def test_hook_deposit_during_failed_repayment_leaves_no_trace(self, book, loans, funded_loan):
        """
        The lender's hook tries to bank part of the payment while the borrower
        refuses the collateral. The deposit is refused outright, so savings
        history and balances still agree once the repayment rolls back.
        """
        savings = SavingsLedger(book, owner="bob", clock=loans.clock, verbose=False)
        refused = []

        def bank_payment(transfer):
            try:
                savings.deposit(5, caller="bob")
            except TransferFailed as exc:
                refused.append(exc)

        def refuse_collateral(transfer):
            if transfer.amount == COLLATERAL:
                raise RuntimeError("wallet frozen")

        book.register_receiver("bob", bank_payment)
        book.register_receiver("alice", refuse_collateral)
        before = capture_state(loans, book)

        with pytest.raises(TransferFailed):
            loans.repay_loan(funded_loan, TOTAL_OWED, caller="alice")

        assert len(refused) == 1
        assert capture_state(loans, book) == before
        assert savings.get_balance() == 0
        assert savings.history == []

        assert all(s.reference != "savings:deposit" for s in book.transfer_log)
        assert book.issue("carol", 1).sequence_number == before['log_length']

    def test_retry_after_failure_succeeds(self, book, loans, funded_loan):
        book.reject_incoming("bob")
        with pytest.raises(TransferFailed):
            loans.repay_loan(funded_loan, TOTAL_OWED, caller="alice")

        book.reject_incoming("bob", reject=False)
        loans.repay_loan(funded_loan, TOTAL_OWED, caller="alice")
        assert loans.get_loan(funded_loan).status is LoanStatus.REPAID
        assert len(loans.events(loan_id=funded_loan)) == 3

    def test_guard_released_after_failure(self, book, loans, requested_loan):
        book.reject_incoming("alice")
        with pytest.raises(TransferFailed):
            loans.fund_loan(requested_loan, PRINCIPAL, caller="bob")
        assert loans.in_flight is None

        book.reject_incoming("alice", reject=False)
        loans.fund_loan(requested_loan, PRINCIPAL, caller="bob")
        assert loans.get_loan(requested_loan).status is LoanStatus.FUNDED


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(
        collateral=st.integers(min_value=1, max_value=3 * INITIAL_BALANCE),
        principal=st.integers(min_value=1, max_value=3 * INITIAL_BALANCE),
    )
    @settings(max_examples=100, deadline=None)
    def test_request_and_fund_all_or_nothing(self, collateral, principal):
        """
        PROPERTY: Each step either fully applies or leaves no trace,
        whatever the amounts relative to the parties' balances.
        """
        book = make_book()
        loans = LoanLedger(book, LogicalClock(start=START_TIME), verbose=False)

        before = capture_state(loans, book)
        try:
            loan_id = loans.request_loan(principal, DURATION_DAYS, RATE_BPS, collateral, caller="alice")
        except LendingError:
            assert capture_state(loans, book) == before
            assert collateral > INITIAL_BALANCE
            return
        assert book.get_balance("alice") == INITIAL_BALANCE - collateral
        assert loans.custody_balance() == collateral

        before = capture_state(loans, book)
        try:
            loans.fund_loan(loan_id, principal, caller="bob")
        except LendingError:
            assert capture_state(loans, book) == before
            assert principal > INITIAL_BALANCE
            return
        assert book.get_balance("bob") == INITIAL_BALANCE - principal
        assert book.get_balance("alice") == INITIAL_BALANCE - collateral + principal
        assert loans.custody_balance() == collateral

    @given(spend=st.integers(min_value=0, max_value=INITIAL_BALANCE - COLLATERAL + PRINCIPAL))
    @settings(max_examples=100, deadline=None)
    def test_repay_all_or_nothing(self, spend):
        """
        PROPERTY: Repayment either pays the lender and returns the collateral,
        or changes nothing.
        """
        book = make_book()
        loans = LoanLedger(book, LogicalClock(start=START_TIME), verbose=False)
        loan_id = loans.request_loan(PRINCIPAL, DURATION_DAYS, RATE_BPS, COLLATERAL, caller="alice")
        loans.fund_loan(loan_id, PRINCIPAL, caller="bob")
        if spend:
            book.execute([Transfer(spend, "alice", "carol", "spend")], "spend")
        alice_before = book.get_balance("alice")

        before = capture_state(loans, book)
        try:
            loans.repay_loan(loan_id, TOTAL_OWED, caller="alice")
        except TransferFailed:
            assert capture_state(loans, book) == before
            assert alice_before < TOTAL_OWED
            return
        assert book.get_balance("alice") == alice_before - TOTAL_OWED + COLLATERAL
        assert book.get_balance("bob") == INITIAL_BALANCE - PRINCIPAL + TOTAL_OWED
        assert loans.custody_balance() == 0

    @given(offset=st.integers(min_value=-DUE_TIME + START_TIME, max_value=10))
    @settings(max_examples=50, deadline=None)
    def test_liquidation_is_time_gated(self, offset):
        """PROPERTY: Liquidation succeeds exactly when now > due_time."""
        book = make_book()
        clock = LogicalClock(start=START_TIME)
        loans = LoanLedger(book, clock, verbose=False)
        loan_id = loans.request_loan(PRINCIPAL, DURATION_DAYS, RATE_BPS, COLLATERAL, caller="alice")
        loans.fund_loan(loan_id, PRINCIPAL, caller="bob")
        clock.advance_to(DUE_TIME + offset)

        before = capture_state(loans, book)
        try:
            loans.liquidate_loan(loan_id, caller="bob")
        except LendingError:
            assert offset <= 0
            assert capture_state(loans, book) == before
            return
        assert offset > 0
        assert loans.get_loan(loan_id).status is LoanStatus.LIQUIDATED
