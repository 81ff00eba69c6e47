"""
conftest.py - Shared pytest fixtures for loan ledger tests

Provides common fixtures used across unit, conformance and functional tests:
- A funded account book with three parties
- A logical clock
- A loan ledger, plus ledgers holding a requested or funded loan
- State capture helpers for "nothing changed" assertions
"""

import pytest
from typing import Any, Dict

from loanledger import (
    AccountBook, LoanLedger, LogicalClock,
    SECONDS_PER_DAY,
)


START_TIME = 1_700_000_000
INITIAL_BALANCE = 10_000
PARTIES = ("alice", "bob", "carol")

# The reference scenario: 1000 for 30 days at 500 bps, 200 collateral.
PRINCIPAL = 1000
DURATION_DAYS = 30
RATE_BPS = 500
COLLATERAL = 200
TOTAL_OWED = 1050
DUE_TIME = START_TIME + DURATION_DAYS * SECONDS_PER_DAY


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_book(name: str = "bank") -> AccountBook:
    """Account book with every party registered and funded."""
    book = AccountBook(name, verbose=False)
    for party in PARTIES:
        book.register_wallet(party)
        book.issue(party, INITIAL_BALANCE)
    return book


def capture_state(loans: LoanLedger, book: AccountBook) -> Dict[str, Any]:
    """Everything an operation could change, for before/after comparison."""
    return {
        'loans': loans.list_loans(),
        'events': loans.events(),
        'loan_count': loans.loan_count,
        'balances': dict(book.balances),
        'log_length': len(book.transfer_log),
    }


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    """Logical clock at START_TIME."""
    return LogicalClock(start=START_TIME)


@pytest.fixture
def book():
    """Account book with alice, bob and carol holding 10,000 each."""
    return make_book()


@pytest.fixture
def loans(book, clock):
    """Empty loan ledger on the funded book."""
    return LoanLedger(book, clock, verbose=False)


# =============================================================================
# LIFECYCLE FIXTURES
# =============================================================================

@pytest.fixture
def requested_loan(loans):
    """ID of the reference loan, requested by alice."""
    return loans.request_loan(PRINCIPAL, DURATION_DAYS, RATE_BPS, COLLATERAL, caller="alice")


@pytest.fixture
def funded_loan(loans, requested_loan):
    """ID of the reference loan, funded by bob."""
    loans.fund_loan(requested_loan, PRINCIPAL, caller="bob")
    return requested_loan
