"""
savings.py - Scheduled-withdrawal savings account

An owner-controlled account on the same transfer service as the loan
ledger. No counterparties, no collateral: the owner deposits and withdraws,
names a recipient, and may periodically push a fixed fraction of the held
balance to that recipient.

Pattern:
    deposit(amount)                 owner -> savings
    withdraw(amount)                savings -> owner      (amount <= balance)
    execute_automatic_transfer()    savings -> recipient  (balance * bps // 10000,
                                                           once per interval)

Like the loan ledger, the savings wallet refuses value that does not arrive
through deposit().
"""

from __future__ import annotations
from typing import List, Optional

from .core import (
    Transfer, Settlement, ValueTransferService, Clock,
    SECONDS_PER_DAY, BPS_DENOMINATOR, SYSTEM_WALLET,
    InvalidParameters, InvalidState, Unauthorized, NotYetDue,
    InsufficientFunds, UnsolicitedTransfer, LendingError,
    is_amount,
)
from .clock import SystemClock
from .guard import SingleFlightGuard


DEFAULT_SAVINGS_NAME = "savings"

# Minimum time between automatic transfers.
DEFAULT_TRANSFER_INTERVAL = 30 * SECONDS_PER_DAY

# Fraction of the held balance moved per automatic transfer (10%).
DEFAULT_TRANSFER_BPS = 1000


class SavingsLedger:
    """
    Owner-only savings account with a periodic automatic transfer.

    The interval clock starts at construction: the first automatic transfer
    is allowed one full interval after the account is opened.

    Example:
        savings = SavingsLedger(book, owner="alice", clock=clock)
        savings.deposit(1000, caller="alice")
        savings.set_recipient("bob", caller="alice")
        clock.advance_days(30)
        savings.execute_automatic_transfer(caller="alice")   # bob gets 100
    """

    def __init__(
        self,
        transfers: ValueTransferService,
        owner: str,
        clock: Optional[Clock] = None,
        name: str = DEFAULT_SAVINGS_NAME,
        interval: int = DEFAULT_TRANSFER_INTERVAL,
        transfer_bps: int = DEFAULT_TRANSFER_BPS,
        verbose: bool = True,
    ):
        if not isinstance(owner, str) or not owner.strip() or owner in (name, SYSTEM_WALLET):
            raise InvalidParameters(f"owner must be a usable identity, got {owner!r}")
        if not is_amount(interval) or interval <= 0:
            raise InvalidParameters(f"interval must be a positive integer, got {interval!r}")
        if not is_amount(transfer_bps) or not 0 < transfer_bps <= BPS_DENOMINATOR:
            raise InvalidParameters(
                f"transfer_bps must be in (0, {BPS_DENOMINATOR}], got {transfer_bps!r}"
            )

        self.name = name
        self.owner = owner
        self.transfers = transfers
        self.clock = clock or SystemClock()
        self.interval = interval
        self.transfer_bps = transfer_bps
        self.verbose = verbose
        self.recipient: Optional[str] = None
        self.last_transfer_time: int = self.clock.now()
        self.history: List[Settlement] = []
        self._guard = SingleFlightGuard(name)
        self._expected_inbound: List[Transfer] = []

        if not transfers.is_registered(name):
            transfers.register_wallet(name)
        transfers.register_receiver(name, self.on_receive)

    def get_balance(self) -> int:
        return self.transfers.get_balance(self.name)

    def next_transfer_time(self) -> int:
        """Earliest time execute_automatic_transfer() is allowed."""
        return self.last_transfer_time + self.interval

    def deposit(self, amount: int, caller: str) -> Settlement:
        with self._guard.hold("deposit"):
            self._require_owner(caller)
            self._require_positive(amount)
            return self._execute("deposit", Transfer(amount, caller, self.name, "savings:deposit"))

    def withdraw(self, amount: int, caller: str) -> Settlement:
        """
        Move amount back to the owner.

        Raises:
            InsufficientFunds: amount exceeds the held balance
        """
        with self._guard.hold("withdraw"):
            self._require_owner(caller)
            self._require_positive(amount)
            balance = self.get_balance()
            if amount > balance:
                raise InsufficientFunds(f"{self.name}: balance {balance} < {amount}")
            return self._execute("withdraw", Transfer(amount, self.name, self.owner, "savings:withdraw"))

    def set_recipient(self, recipient: str, caller: str) -> None:
        with self._guard.hold("set_recipient"):
            self._require_owner(caller)
            if not isinstance(recipient, str) or not recipient.strip() or recipient in (self.name, SYSTEM_WALLET):
                raise InvalidParameters(f"recipient must be a usable identity, got {recipient!r}")
            self.recipient = recipient
            if self.verbose:
                print(f"✓ {self.name}: recipient set to {recipient}")

    def execute_automatic_transfer(self, caller: str) -> Settlement:
        """
        Push transfer_bps of the held balance to the recipient.

        Raises:
            Unauthorized: Caller is not the owner
            InvalidState: No recipient, or the computed amount is zero
            NotYetDue: Less than `interval` seconds since the last transfer,
                measured on the account clock
        """
        with self._guard.hold("execute_automatic_transfer"):
            self._require_owner(caller)
            if self.recipient is None:
                raise InvalidState(f"{self.name}: no recipient set")
            now = self.clock.now()
            if now - self.last_transfer_time < self.interval:
                raise NotYetDue(
                    f"{self.name}: next automatic transfer at {self.next_transfer_time()}, now={now}"
                )
            amount = self.get_balance() * self.transfer_bps // BPS_DENOMINATOR
            if amount <= 0:
                raise InvalidState(f"{self.name}: nothing to transfer")

            settlement = self._execute(
                "automatic_transfer",
                Transfer(amount, self.name, self.recipient, "savings:automatic_transfer"),
            )
            self.last_transfer_time = now
            return settlement

    def on_receive(self, transfer: Transfer) -> None:
        """Accept only the inbound leg of the deposit in flight."""
        if transfer in self._expected_inbound:
            self._expected_inbound.remove(transfer)
            return
        raise UnsolicitedTransfer(
            f"{self.name} refuses unsolicited {transfer.amount} from {transfer.source}"
        )

    def _execute(self, operation: str, transfer: Transfer) -> Settlement:
        if transfer.dest == self.name:
            self._expected_inbound = [transfer]
        try:
            settlement = self.transfers.execute([transfer], transfer.reference)
        except LendingError as exc:
            if self.verbose:
                print(f"✗ REJECTED {operation}: {exc}")
            raise
        finally:
            self._expected_inbound = []
        self.history.append(settlement)
        return settlement

    def _require_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise Unauthorized(f"{self.name}: only {self.owner} may do this, not {caller}")

    @staticmethod
    def _require_positive(amount: int) -> None:
        if not is_amount(amount) or amount <= 0:
            raise InvalidParameters(f"amount must be a positive integer, got {amount!r}")
