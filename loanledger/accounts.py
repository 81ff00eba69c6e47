"""
accounts.py - Account Book (reference Value Transfer Service)

The AccountBook holds wallet balances and moves value between them. The
loan ledger depends on this service but never touches balances directly.

Key responsibilities:
    - Implements the ValueTransferService protocol
    - Executes batches of transfers atomically (all legs succeed or none do)
    - Calls receiver hooks after value lands, so receiving wallets can refuse it
    - Always validates and always logs

Receiver hooks are untrusted code. Whatever they raise, every balance of the
batch is restored before the failure reaches the caller.
"""

from __future__ import annotations
from typing import Dict, List, Set, Optional, Sequence, Any
import copy

from .core import (
    # Types
    Transfer, Settlement, BalanceMap, ReceiverHook,
    # Constants
    SYSTEM_WALLET,
    # Exceptions
    LendingError, TransferFailed, InsufficientFunds,
    WalletNotRegistered, RecipientRejected,
    # Helpers
    is_amount,
)


class AccountBook:
    """
    Single-asset account book with full validation and audit trail.

    Design Principles:
        - Always validates: every leg is checked against registration and the
          source's running balance before anything is applied.
        - Always logs: every executed batch is recorded as a Settlement.

    The system wallet is exempt from balance checks and is the source of
    issuance, so the sum of all balances (system included) is always zero.

    Thread Safety:
        Not thread-safe. Callers serialize access (LoanLedger does).

    Example:
        book = AccountBook("bank")
        book.register_wallet("alice")
        book.register_wallet("bob")
        book.issue("alice", 1000)
        book.execute([Transfer(100, "alice", "bob", "payment_001")], "payment_001")
    """

    def __init__(
        self,
        name: str,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Create an account book.

        Args:
            name: Book identifier
            verbose: Print settlement results (default: True)
            test_mode: Allow set_balance() calls (default: False)
        """
        self.name = name
        self.balances: BalanceMap = {}
        self.registered_wallets: Set[str] = set()
        self.transfer_log: List[Settlement] = []
        self.verbose = verbose
        self._test_mode = test_mode
        # Monotonic sequence counter for execution ordering
        self._next_sequence: int = 0
        self._receivers: Dict[str, ReceiverHook] = {}
        self._rejecting: Set[str] = set()
        # Set while receiver hooks run; hooks may not start another batch
        self._notifying: bool = False

        # Auto-register the system wallet (used for issuance)
        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = 0

    # ========================================================================
    # READ-ONLY METHODS
    # ========================================================================

    def get_balance(self, wallet_id: str) -> int:
        """
        Get the balance of a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return self.balances[wallet_id]

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def total_supply(self) -> int:
        """
        Sum of all balances held outside the system wallet.

        Wallets are sorted before summation for a deterministic order.
        """
        return sum(
            self.balances[w] for w in sorted(self.registered_wallets)
            if w != SYSTEM_WALLET
        )

    def verify_conservation(self, expected_supply: Optional[int] = None) -> Dict[str, Any]:
        """
        Verify that transfers neither created nor destroyed value.

        Every unit outside the system wallet was issued from it, so
        supply + system balance must be exactly zero.

        Args:
            expected_supply: Optional total the non-system wallets should hold.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all checks hold
            - 'supply': int - Sum of non-system balances
            - 'issued': int - Amount issued by the system wallet
            - 'discrepancies': List[str] - Description of any violation

        Example:
            result = book.verify_conservation(expected_supply=10_000)
            assert result['valid'], result['discrepancies']
        """
        supply = self.total_supply()
        issued = -self.balances[SYSTEM_WALLET]
        discrepancies = []

        if supply != issued:
            discrepancies.append(f"supply {supply} != issued {issued}")
        if expected_supply is not None and supply != expected_supply:
            discrepancies.append(f"supply {supply} != expected {expected_supply}")

        return {
            'valid': len(discrepancies) == 0,
            'supply': supply,
            'issued': issued,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet.

        Raises:
            ValueError: If wallet is already registered or the ID is empty
        """
        if not wallet_id or not wallet_id.strip():
            raise ValueError("Wallet ID cannot be empty")
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = 0
        return wallet_id

    def register_receiver(self, wallet_id: str, receiver: ReceiverHook) -> None:
        """
        Install the hook called whenever value lands in wallet_id.

        The hook receives the Transfer. Raising from it refuses the value
        and fails the enclosing batch.
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        self._receivers[wallet_id] = receiver

    def reject_incoming(self, wallet_id: str, reject: bool = True) -> None:
        """Mark a wallet as refusing all incoming value (or lift the mark)."""
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if reject:
            self._rejecting.add(wallet_id)
        else:
            self._rejecting.discard(wallet_id)

    def set_balance(self, wallet_id: str, amount: int) -> None:
        """
        Set a wallet's balance directly.

        WARNING: This bypasses the system wallet, so verify_conservation()
        will no longer hold. Only available in test mode; use issue() or
        execute() otherwise.

        Raises:
            LendingError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LendingError(
                "set_balance() is disabled in production mode. "
                "Use issue() or execute() to modify balances. "
                "Set test_mode=True when creating AccountBook for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if not is_amount(amount):
            raise ValueError(f"Balance must be int, got {type(amount)}")
        self.balances[wallet_id] = amount

    # ========================================================================
    # EXECUTION (Mutating)
    # ========================================================================

    def issue(self, wallet_id: str, amount: int) -> Settlement:
        """Mint amount into wallet_id from the system wallet."""
        reference = f"issue:{wallet_id}"
        return self.execute([Transfer(amount, SYSTEM_WALLET, wallet_id, reference)], reference)

    def execute(self, transfers: Sequence[Transfer], reference: str) -> Settlement:
        """
        Execute a batch of transfers atomically.

        Steps:
        1. Validate every leg in order against a scratch copy of balances
        2. Apply all legs
        3. Call receiver hooks for each leg's destination, in leg order
        4. Log the Settlement

        If step 1 fails nothing is applied. If any hook raises, balances are
        restored to their state before step 2 and nothing is logged. Hooks cannot
        submit batches of their own: execute() called from a hook raises
        TransferFailed, so a rollback never undoes a settlement already
        handed out.

        Args:
            transfers: Legs to apply
            reference: Identifier of the submitting operation

        Returns:
            The executed Settlement

        Raises:
            WalletNotRegistered: A leg names an unknown wallet
            InsufficientFunds: A leg would take its source below zero
            RecipientRejected: A destination refuses the value
            TransferFailed: Called from a receiver hook
        """
        if self._notifying:
            if self.verbose:
                print(f"✗ REJECTED: {reference}: batch submitted from a receiver hook")
            raise TransferFailed(
                f"{reference}: cannot execute a batch while receivers of another are notified"
            )
        transfers = tuple(transfers)
        if not transfers:
            raise ValueError("Cannot execute an empty batch")

        try:
            self._validate(transfers)
        except TransferFailed as exc:
            if self.verbose:
                print(f"✗ REJECTED: {reference}: {exc}")
            raise

        balances_before = dict(self.balances)

        self._apply(transfers)
        self._notifying = True
        try:
            self._notify_receivers(transfers)
        except Exception as exc:
            self.balances = balances_before
            if self.verbose:
                print(f"✗ REJECTED: {reference}: recipient refused: {exc}")
            if isinstance(exc, TransferFailed):
                raise
            raise RecipientRejected(f"{reference}: recipient refused value: {exc}") from exc
        finally:
            self._notifying = False

        sequence = self._next_sequence
        self._next_sequence += 1
        settlement = Settlement(
            transfers=transfers,
            reference=reference,
            book_name=self.name,
            sequence_number=sequence,
        )
        self.transfer_log.append(settlement)

        if self.verbose:
            print(repr(settlement))
            print(f"✓ APPLIED: {reference}")
        return settlement

    def _validate(self, transfers: Sequence[Transfer]) -> None:
        """
        Check registration, refusals and running balances leg by leg.

        Legs are checked sequentially, so a wallet cannot spend value it only
        receives in a later leg of the same batch.
        """
        running: Dict[str, int] = {}
        for transfer in transfers:
            for wallet in (transfer.source, transfer.dest):
                if wallet not in self.registered_wallets:
                    raise WalletNotRegistered(f"Wallet {wallet} not registered")
            if transfer.dest in self._rejecting:
                raise RecipientRejected(f"Wallet {transfer.dest} refuses incoming value")

            source_balance = running.get(transfer.source, self.balances[transfer.source])
            if transfer.source != SYSTEM_WALLET and source_balance < transfer.amount:
                raise InsufficientFunds(
                    f"{transfer.source}: balance {source_balance} < {transfer.amount}"
                )
            running[transfer.source] = source_balance - transfer.amount
            running[transfer.dest] = running.get(
                transfer.dest, self.balances[transfer.dest]
            ) + transfer.amount

    def _apply(self, transfers: Sequence[Transfer]) -> None:
        for transfer in transfers:
            self.balances[transfer.source] -= transfer.amount
            self.balances[transfer.dest] += transfer.amount

    def _notify_receivers(self, transfers: Sequence[Transfer]) -> None:
        for transfer in transfers:
            receiver = self._receivers.get(transfer.dest)
            if receiver is not None:
                receiver(transfer)

    # ========================================================================
    # CLONING
    # ========================================================================

    def clone(self) -> AccountBook:
        """
        Create an independent copy of this book.

        Balances, registrations, rejections and the log are copied. Receiver
        hooks are not: they are bound to the objects that installed them.
        """
        cloned = AccountBook.__new__(AccountBook)
        cloned.name = self.name
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned.balances = dict(self.balances)
        cloned.registered_wallets = self.registered_wallets.copy()
        cloned.transfer_log = list(self.transfer_log)
        cloned._next_sequence = self._next_sequence
        cloned._receivers = {}
        cloned._rejecting = copy.copy(self._rejecting)
        cloned._notifying = False
        return cloned
