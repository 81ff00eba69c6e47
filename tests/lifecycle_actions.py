"""
lifecycle_actions.py - Random operation sequences for property tests

Provides a hypothesis strategy producing lists of ledger actions, and a
runner that applies them to a LoanLedger, recording every accepted and
rejected call. Rejections are expected: most random calls violate some
precondition.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Tuple

from hypothesis import strategies as st

from loanledger import LoanLedger, LogicalClock, LendingError, SECONDS_PER_DAY

from tests.conftest import PARTIES


party = st.sampled_from(PARTIES + ("mallory",))

request_action = st.tuples(
    st.just("request"),
    party,
    st.integers(min_value=1, max_value=6_000),     # principal
    st.integers(min_value=1, max_value=60),        # duration_days
    st.integers(min_value=0, max_value=2_000),     # interest_rate_bps
    st.integers(min_value=1, max_value=4_000),     # collateral
)
fund_action = st.tuples(st.just("fund"), st.integers(0, 5), party, st.booleans())
repay_action = st.tuples(st.just("repay"), st.integers(0, 5), party, st.booleans())
liquidate_action = st.tuples(st.just("liquidate"), st.integers(0, 5), party)
advance_action = st.tuples(st.just("advance"), st.integers(min_value=0, max_value=40))

actions = st.lists(
    st.one_of(request_action, fund_action, repay_action, liquidate_action, advance_action),
    min_size=1,
    max_size=30,
)


@dataclass
class ActionLog:
    """Outcome of each applied action."""
    accepted: List[Tuple] = field(default_factory=list)
    rejected: List[Tuple[Tuple, LendingError]] = field(default_factory=list)


def _pick_loan(loans: LoanLedger, index: int) -> int:
    """Map an index onto an existing loan ID; index past the end picks an unknown ID."""
    if index < loans.loan_count:
        return index + 1
    return loans.loan_count + 1 + index


def apply_action(loans: LoanLedger, clock: LogicalClock, action: Tuple) -> None:
    kind = action[0]
    if kind == "request":
        _, caller, principal, days, rate, collateral = action
        loans.request_loan(principal, days, rate, collateral, caller=caller)
    elif kind == "fund":
        _, index, caller, exact = action
        loan = loans.get_loan(_pick_loan(loans, index))
        amount = loan.principal if exact else loan.principal + 1
        loans.fund_loan(loan.loan_id, amount, caller=caller)
    elif kind == "repay":
        _, index, caller, exact = action
        loan = loans.get_loan(_pick_loan(loans, index))
        amount = loan.total_owed if exact else loan.total_owed - 1
        loans.repay_loan(loan.loan_id, amount, caller=caller)
    elif kind == "liquidate":
        _, index, caller = action
        loans.liquidate_loan(_pick_loan(loans, index), caller=caller)
    elif kind == "advance":
        clock.advance(action[1] * SECONDS_PER_DAY)
    else:
        raise ValueError(f"Unknown action {kind}")


def run_actions(loans: LoanLedger, clock: LogicalClock, sequence, after_each=None) -> ActionLog:
    """
    Apply every action, catching ledger rejections.

    after_each, if given, is called with the action after each step,
    accepted or not.
    """
    log = ActionLog()
    for action in sequence:
        try:
            apply_action(loans, clock, action)
        except LendingError as exc:
            log.rejected.append((action, exc))
        else:
            log.accepted.append(action)
        if after_each is not None:
            after_each(action)
    return log
