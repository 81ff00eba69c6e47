#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Loan Ledger Step by Step

This is a pedagogical demonstration of how the collateralized loan ledger
works. Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation   - The account book, custody, a loan request
  4-6:  Repayment    - Funding, exact repayment, closed loans
  7-8:  Default      - Strict expiry and liquidation
  9-10: Safety       - Rejected operations, atomicity, reentrancy
  11:   Savings      - Scheduled transfers on the same book

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import sys

from loanledger import (
    # Collaborators
    AccountBook, LogicalClock,
    # Ledgers
    LoanLedger, SavingsLedger,
    # Types
    Transfer,
    # Errors
    LendingError, ReentrantCall,
    # Constants
    SYSTEM_WALLET, SECONDS_PER_DAY,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: int = 1_700_000_000

    # Initial funding
    alice_initial: int = 1_000
    bob_initial: int = 1_000

    # Loan terms
    principal: int = 1_000
    duration_days: int = 30
    interest_rate_bps: int = 500
    collateral: int = 200


CONFIG = DemoConfig()

# Global state for interactive mode
QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def show_balances(book: AccountBook, loans: LoanLedger):
    for wallet in ("alice", "bob", loans.name):
        print(f"  {wallet:<12} {book.get_balance(wallet):>8}")


def fresh_setup():
    """Book with alice and bob funded, a clock, and a ledger."""
    book = AccountBook("bank", verbose=False)
    for wallet, amount in (("alice", CONFIG.alice_initial), ("bob", CONFIG.bob_initial)):
        book.register_wallet(wallet)
        book.issue(wallet, amount)
    clock = LogicalClock(start=CONFIG.start_time)
    loans = LoanLedger(book, clock, verbose=True)
    return book, clock, loans


def request_reference_loan(loans: LoanLedger) -> int:
    return loans.request_loan(
        CONFIG.principal, CONFIG.duration_days, CONFIG.interest_rate_bps,
        CONFIG.collateral, caller="alice",
    )


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_account_book():
    """Create the transfer service and fund two parties."""
    step_header(1, "The Account Book",
        "See where value lives before any loan exists.")

    print("""
    The loan ledger never holds balances itself. It asks a transfer service
    (here an AccountBook) to move value between wallets, one atomic batch
    per operation.

    Value enters the book from the SYSTEM wallet, which is allowed to go
    negative: the sum of every balance is always zero.
    """)

    print(">>> book = AccountBook('bank')")
    book = AccountBook("bank", verbose=False)
    book.register_wallet("alice")
    book.register_wallet("bob")
    book.issue("alice", CONFIG.alice_initial)
    book.issue("bob", CONFIG.bob_initial)

    section_header("Balances")
    for wallet in sorted(book.list_wallets()):
        print(f"  {wallet:<12} {book.get_balance(wallet):>8}")

    result = book.verify_conservation()
    print(f"\n  supply={result['supply']} issued={result['issued']} valid={result['valid']}")
    return book


def step_02_custody(book: AccountBook):
    """Attach a loan ledger and inspect its custody wallet."""
    step_header(2, "The Custody Wallet",
        "Understand that the ledger owns exactly one wallet: custody.")

    clock = LogicalClock(start=CONFIG.start_time)
    print(">>> loans = LoanLedger(book, clock)")
    loans = LoanLedger(book, clock, verbose=True)

    print(f"\n  custody wallet: {loans.name}")
    print(f"  custody balance: {loans.custody_balance()}")

    section_header("Unsolicited value is refused")
    try:
        book.execute([Transfer(10, "bob", loans.name, "gift")], "gift")
    except LendingError as exc:
        print(f"  {type(exc).__name__}: {exc}")
    print(f"  custody balance: {loans.custody_balance()}")
    return clock, loans


def step_03_request(book: AccountBook, loans: LoanLedger):
    """Alice locks collateral and asks for a loan."""
    step_header(3, "Requesting a Loan",
        "Watch collateral move into custody as the request is created.")

    print(f">>> loans.request_loan({CONFIG.principal}, {CONFIG.duration_days}, "
          f"{CONFIG.interest_rate_bps}, {CONFIG.collateral}, caller='alice')")
    loan_id = request_reference_loan(loans)

    loan = loans.get_loan(loan_id)
    section_header("Loan record")
    print(f"  id={loan.loan_id} status={loan.status.value} borrower={loan.borrower}")
    print(f"  principal={loan.principal} collateral={loan.collateral} "
          f"rate={loan.interest_rate_bps}bps due={loan.due_time}")
    print(f"  total owed: {loan.total_owed}")

    section_header("Balances")
    show_balances(book, loans)
    return loan_id


# ============================================================================
# PHASE 2: REPAYMENT (Steps 4-6)
# ============================================================================

def step_04_fund(book: AccountBook, loans: LoanLedger, loan_id: int):
    step_header(4, "Funding",
        "The lender attaches exactly the principal; it passes through custody.")

    print(f">>> loans.fund_loan({loan_id}, {CONFIG.principal}, caller='bob')")
    loans.fund_loan(loan_id, CONFIG.principal, caller="bob")
    print(repr(book.transfer_log[-1]))

    section_header("Balances")
    show_balances(book, loans)


def step_05_repay(book: AccountBook, loans: LoanLedger, loan_id: int):
    step_header(5, "Repayment",
        "Only the exact amount is accepted; the collateral comes back in the same batch.")

    owed = loans.total_owed(loan_id)
    for wrong in (owed - 1, owed + 1):
        print(f">>> loans.repay_loan({loan_id}, {wrong}, caller='alice')")
        try:
            loans.repay_loan(loan_id, wrong, caller="alice")
        except LendingError:
            pass

    print(f"\n>>> loans.repay_loan({loan_id}, {owed}, caller='alice')")
    loans.repay_loan(loan_id, owed, caller="alice")
    print(repr(book.transfer_log[-1]))

    section_header("Balances")
    show_balances(book, loans)


def step_06_closed_loan(loans: LoanLedger, clock: LogicalClock, loan_id: int):
    step_header(6, "Closed Loans",
        "A repaid loan is history: it stays queryable and refuses every operation.")

    clock.advance_days(CONFIG.duration_days + 1)
    print(f">>> loans.liquidate_loan({loan_id}, caller='bob')   # after expiry")
    try:
        loans.liquidate_loan(loan_id, caller="bob")
    except LendingError:
        pass

    section_header("Event log")
    for event in loans.events(loan_id=loan_id):
        print(f"  [{event.sequence_number}] t={event.timestamp} {event!r}")


# ============================================================================
# PHASE 3: DEFAULT (Steps 7-8)
# ============================================================================

def step_07_expiry():
    step_header(7, "Strict Expiry",
        "Exactly at due_time the loan is not yet expired; one second later it is.")

    book, clock, loans = fresh_setup()
    loan_id = request_reference_loan(loans)
    loans.fund_loan(loan_id, CONFIG.principal, caller="bob")
    due_time = loans.get_loan(loan_id).due_time

    clock.advance_to(due_time)
    print(f">>> clock.advance_to({due_time})   # == due_time")
    print(f"  is_liquidatable: {loans.is_liquidatable(loan_id)}")
    try:
        loans.liquidate_loan(loan_id, caller="bob")
    except LendingError:
        pass

    clock.advance(1)
    print("\n>>> clock.advance(1)")
    print(f"  is_liquidatable: {loans.is_liquidatable(loan_id)}")
    return book, clock, loans, loan_id


def step_08_liquidate(book: AccountBook, loans: LoanLedger, loan_id: int):
    step_header(8, "Liquidation",
        "The lender, and only the lender, seizes the collateral.")

    print(f">>> loans.liquidate_loan({loan_id}, caller='alice')")
    try:
        loans.liquidate_loan(loan_id, caller="alice")
    except LendingError:
        pass

    print(f"\n>>> loans.liquidate_loan({loan_id}, caller='bob')")
    loans.liquidate_loan(loan_id, caller="bob")

    section_header("Balances")
    show_balances(book, loans)
    print(f"\n  status: {loans.get_loan(loan_id).status.value}")


# ============================================================================
# PHASE 4: SAFETY (Steps 9-10)
# ============================================================================

def step_09_atomicity():
    step_header(9, "Atomicity",
        "If any transfer of an operation fails, the loan record is put back.")

    book, clock, loans = fresh_setup()
    loan_id = request_reference_loan(loans)
    book.reject_incoming("alice")

    print(">>> book.reject_incoming('alice')")
    print(f">>> loans.fund_loan({loan_id}, {CONFIG.principal}, caller='bob')")
    try:
        loans.fund_loan(loan_id, CONFIG.principal, caller="bob")
    except LendingError:
        pass

    loan = loans.get_loan(loan_id)
    print(f"\n  status={loan.status.value} lender={loan.lender}")
    show_balances(book, loans)


def step_10_reentrancy():
    step_header(10, "Reentrancy",
        "A receiving wallet's hook cannot call back into the ledger mid-operation.")

    book, clock, loans = fresh_setup()
    loan_id = request_reference_loan(loans)

    def greedy_hook(transfer):
        try:
            loans.fund_loan(loan_id, CONFIG.principal, caller="bob")
        except ReentrantCall as exc:
            print(f"  hook blocked: {exc}")

    book.register_receiver("alice", greedy_hook)
    loans.fund_loan(loan_id, CONFIG.principal, caller="bob")
    print(f"\n  status={loans.get_loan(loan_id).status.value}")


# ============================================================================
# PHASE 5: SAVINGS (Step 11)
# ============================================================================

def step_11_savings():
    step_header(11, "Savings",
        "An owner-only account that pushes 10% to a recipient every 30 days.")

    book = AccountBook("bank", verbose=False)
    for wallet in ("alice", "bob"):
        book.register_wallet(wallet)
    book.issue("alice", 1_000)
    clock = LogicalClock(start=CONFIG.start_time)

    savings = SavingsLedger(book, owner="alice", clock=clock, verbose=True)
    savings.deposit(1_000, caller="alice")
    savings.set_recipient("bob", caller="alice")

    try:
        savings.execute_automatic_transfer(caller="alice")
    except LendingError as exc:
        print(f"  too early: {exc}")

    clock.advance(30 * SECONDS_PER_DAY)
    savings.execute_automatic_transfer(caller="alice")
    print(f"\n  savings={savings.get_balance()} bob={book.get_balance('bob')}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       LOAN LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    # Phase 1: Foundation
    book = step_01_account_book()
    wait_for_enter()
    clock, loans = step_02_custody(book)
    wait_for_enter()
    loan_id = step_03_request(book, loans)
    wait_for_enter()

    # Phase 2: Repayment
    step_04_fund(book, loans, loan_id)
    wait_for_enter()
    step_05_repay(book, loans, loan_id)
    wait_for_enter()
    step_06_closed_loan(loans, clock, loan_id)
    wait_for_enter()

    # Phase 3: Default (new book)
    book, clock, loans, loan_id = step_07_expiry()
    wait_for_enter()
    step_08_liquidate(book, loans, loan_id)
    wait_for_enter()

    # Phase 4: Safety
    step_09_atomicity()
    wait_for_enter()
    step_10_reentrancy()
    wait_for_enter()

    # Phase 5: Savings
    step_11_savings()

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print(f"""
    You've learned:
      - Collateral sits in custody until the loan closes
      - Funding and repayment require exact amounts
      - Liquidation needs the lender and now > due_time
      - Every operation is atomic and single-flight
      - Value only enters from {SYSTEM_WALLET!r}; the sum of balances stays zero

    Next steps:
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
