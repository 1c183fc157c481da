from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

import httpx

from .accounts import GuardConfig, IssuanceRecord, IssuanceStateReader
from .config import Settings
from .eligibility import (
    REASON_INSUFFICIENT_BALANCE,
    REASON_NOT_CONNECTED,
    REASON_SOLD_OUT,
    AvailabilitySnapshot,
    Eligibility,
    WalletState,
    compute_eligibility,
)
from .errors import ErrorKind, MintError, ReadError
from .pricing import cost_lamports, derive_price, lamports_to_sol
from .project_constants import EXPLORER_TOKEN_URL
from .rpc import LedgerClient, RpcError
from .submit import SubmissionPipeline
from .transaction import build_mint_transaction
from .wallet import DisconnectedWallet, Wallet

log = logging.getLogger(__name__)

MSG_SUCCESS = "Mint was successful!"
MSG_NO_CANDY_MACHINE = "No candy machine ID found. Add environment variable."
MSG_NO_RPC_URL = "No RPC URL found. Add environment variable."

REASON_REFRESH_REQUIRED = "refresh required"

BLOCK_MESSAGES = {
    REASON_NOT_CONNECTED: "Please connect your wallet.",
    REASON_SOLD_OUT: "Sold out.",
    REASON_INSUFFICIENT_BALANCE: "Add more SOL to your wallet.",
    REASON_REFRESH_REQUIRED: "Refresh to see the latest supply.",
}


class OrchestratorState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"
    READY = "ready"
    MINTING = "minting"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class InFlight:
    pass


@dataclass(frozen=True)
class Success:
    minted_item_id: str
    signature: str


@dataclass(frozen=True)
class Failed:
    reason: ErrorKind
    message: str


MintOutcome = Union[Idle, InFlight, Success, Failed]


class MintOrchestrator:
    """
    Owns the derived state a UI renders from and the two operations it calls.

    All methods run on one event loop. Refreshes may overlap; each one takes a
    sequence number and only commits if no newer refresh has started. At most
    one mint is in flight: `execute_mint` flips the state to MINTING before its
    first await, so a second call sees a disabled action and returns. A refresh
    whose reads straddle the end of a mint is dropped, since they may predate
    it. Wallet balance writes share one sequence counter across
    `refresh_availability`, `refresh_wallet` and `set_wallet`.
    """

    def __init__(
        self,
        settings: Settings,
        ledger: LedgerClient,
        wallet: Optional[Wallet] = None,
        reader: Optional[IssuanceStateReader] = None,
        pipeline: Optional[SubmissionPipeline] = None,
    ) -> None:
        self.settings = settings
        self.ledger = ledger
        self.reader = reader or IssuanceStateReader(ledger)
        self.pipeline = pipeline or SubmissionPipeline(ledger)
        self.wallet: Wallet = wallet or DisconnectedWallet()

        self.state = OrchestratorState.IDLE
        self.snapshot: Optional[AvailabilitySnapshot] = None
        self.wallet_state = WalletState.disconnected()
        self.eligibility = compute_eligibility(None, self.wallet_state)
        self.outcome: MintOutcome = Idle()

        self._issuance: Optional[IssuanceRecord] = None
        self._guard: Optional[GuardConfig] = None
        self._refresh_seq = 0
        self._wallet_seq = 0
        self._mints_resolved = 0

    @classmethod
    def from_settings(
        cls, settings: Settings, wallet: Optional[Wallet] = None, timeout_s: float = 30.0
    ) -> "MintOrchestrator":
        return cls(settings, LedgerClient(settings.rpc_url, timeout_s=timeout_s), wallet=wallet)

    async def aclose(self) -> None:
        await self.ledger.close()

    # --- outputs -------------------------------------------------------

    @property
    def mint_enabled(self) -> bool:
        if not self.eligibility.mint_enabled or self._issuance is None:
            return False
        if self.state is OrchestratorState.READY:
            return True
        # A failed attempt leaves the action available for a fresh try.
        return (
            self.state is OrchestratorState.RESOLVED
            and isinstance(self.outcome, Failed)
            and self.outcome.reason.retriable
        )

    @property
    def block_reason(self) -> Optional[str]:
        reason = self.eligibility.block_reason
        if reason is None and not self.mint_enabled and self.state in (
            OrchestratorState.IDLE,
            OrchestratorState.RESOLVED,
        ):
            # Eligible on paper, but the snapshot predates a mint or a dismiss.
            return REASON_REFRESH_REQUIRED
        return reason

    @property
    def cost_sol(self) -> float:
        return lamports_to_sol(self.snapshot.cost_lamports if self.snapshot else 0)

    @property
    def message(self) -> Optional[str]:
        if isinstance(self.outcome, Failed):
            return self.outcome.message
        if isinstance(self.outcome, Success):
            return MSG_SUCCESS
        reason = self.block_reason
        return BLOCK_MESSAGES.get(reason) if reason else None

    @property
    def explorer_url(self) -> Optional[str]:
        if not isinstance(self.outcome, Success):
            return None
        url = EXPLORER_TOKEN_URL.format(mint=self.outcome.minted_item_id)
        return url + (self.settings.explorer_cluster_suffix() or "")

    # --- operations ----------------------------------------------------

    async def refresh_availability(self) -> None:
        """Re-read the candy machine, its guard and the wallet balance."""
        self._refresh_seq += 1
        seq = self._refresh_seq
        minting = self.state is OrchestratorState.MINTING
        mints_resolved = self._mints_resolved

        missing = self.settings.missing()
        if missing:
            msg = MSG_NO_CANDY_MACHINE if "CANDY_MACHINE_ID" in missing else MSG_NO_RPC_URL
            log.error("Missing configuration: %s", ", ".join(missing))
            self._commit_read_failure(ErrorKind.CONFIGURATION_ERROR, msg)
            return

        if not minting:
            self.state = OrchestratorState.REFRESHING
            self.outcome = Idle()

        try:
            issuance = await self.reader.fetch_issuance(self.settings.candy_machine_id)
            guard = await self.reader.fetch_guard(issuance.guard_id)
            self._wallet_seq += 1
            wallet_seq = self._wallet_seq
            wallet_state = await self._read_wallet()
        except MintError as e:
            if seq != self._refresh_seq:
                log.debug("Dropping stale refresh #%d failure: %s", seq, e)
                return
            if mints_resolved != self._mints_resolved:
                log.debug("Dropping refresh #%d failure, a mint resolved meanwhile: %s", seq, e)
                return
            log.warning("Refresh failed (%s): %s", e.kind.value, e)
            self._commit_read_failure(e.kind, e.message)
            return
        except Exception as e:  # noqa: BLE001
            log.exception("Unclassified refresh failure")
            if seq == self._refresh_seq and mints_resolved == self._mints_resolved:
                self._commit_read_failure(ErrorKind.UNKNOWN, str(e))
            return

        if seq != self._refresh_seq:
            log.debug("Dropping stale refresh #%d (latest #%d)", seq, self._refresh_seq)
            return
        if mints_resolved != self._mints_resolved:
            log.debug("Dropping refresh #%d, a mint resolved while it was reading", seq)
            return

        requirement = derive_price(guard)
        self._issuance = issuance
        self._guard = guard
        self.snapshot = AvailabilitySnapshot.build(
            total=issuance.items_loaded,
            redeemed=issuance.items_redeemed,
            cost_lamports=cost_lamports(requirement),
        )
        if wallet_seq == self._wallet_seq:
            self.wallet_state = wallet_state
        self._recompute()
        if self.state is not OrchestratorState.MINTING:
            self.state = OrchestratorState.READY
        log.info(
            "Minted %d / %d, remaining %d, cost %s SOL",
            self.snapshot.redeemed, self.snapshot.total, self.snapshot.remaining, self.cost_sol,
        )

    async def refresh_wallet(self) -> bool:
        """Re-read the connected wallet's balance; returns False if the read failed."""
        self._wallet_seq += 1
        seq = self._wallet_seq
        try:
            wallet_state = await self._read_wallet()
        except ReadError as e:
            log.warning("Balance check failed: %s", e)
            return False
        if seq != self._wallet_seq:
            return True
        self.wallet_state = wallet_state
        self._recompute()
        return True

    async def set_wallet(self, wallet: Optional[Wallet]) -> None:
        """Swap the signer (connect, disconnect, account change) and re-check eligibility."""
        self.wallet = wallet or DisconnectedWallet()
        self._wallet_seq += 1
        self.wallet_state = WalletState.disconnected()
        self._recompute()
        if self.wallet.connected:
            await self.refresh_wallet()

    async def watch_balance(self, interval_s: float = 10.0) -> None:
        """Poll the balance until cancelled."""
        while True:
            await self.refresh_wallet()
            await asyncio.sleep(interval_s)

    async def execute_mint(self) -> MintOutcome:
        if not self.mint_enabled:
            log.debug(
                "execute_mint ignored (state=%s, reason=%s)", self.state.value, self.block_reason
            )
            return self.outcome
        issuance = self._issuance
        payer = self.wallet.public_key
        if issuance is None or payer is None:
            return self.outcome

        self.state = OrchestratorState.MINTING
        self.outcome = InFlight()
        try:
            request = build_mint_transaction(issuance, self._guard, payer)
            log.info("Minting asset %s from %s", request.asset_id, issuance.id)
            receipt = await self.pipeline.submit(request, self.wallet)
        except MintError as e:
            log.warning("Mint failed (%s): %s", e.kind.value, e)
            self.outcome = Failed(e.kind, e.message)
        except Exception as e:  # noqa: BLE001
            log.exception("Unclassified mint failure")
            self.outcome = Failed(ErrorKind.UNKNOWN, str(e))
        else:
            self.outcome = Success(receipt.minted_item_id, receipt.signature)
        self._mints_resolved += 1
        self.state = OrchestratorState.RESOLVED
        return self.outcome

    def dismiss(self) -> None:
        """Clear a resolved outcome. Minting stays off until the next refresh commits."""
        if self.state is not OrchestratorState.RESOLVED:
            return
        self.outcome = Idle()
        self.state = OrchestratorState.IDLE

    # --- internals -----------------------------------------------------

    async def _read_wallet(self) -> WalletState:
        pk = self.wallet.public_key
        if not self.wallet.connected or pk is None:
            return WalletState.disconnected()
        address = str(pk)
        try:
            balance = await self.ledger.get_balance(address)
        except (httpx.HTTPError, RpcError) as e:
            raise ReadError(f"Could not read balance of {address}: {e}", ErrorKind.NETWORK_FAILURE) from e
        return WalletState(connected=True, public_address=address, balance_lamports=balance)

    def _recompute(self) -> Eligibility:
        self.eligibility = compute_eligibility(self.snapshot, self.wallet_state)
        return self.eligibility

    def _commit_read_failure(self, kind: ErrorKind, message: str) -> None:
        # A failed read leaves no snapshot behind, so minting stays disabled.
        self._issuance = None
        self._guard = None
        self.snapshot = None
        self._recompute()
        if self.state is OrchestratorState.MINTING:
            return
        self.state = OrchestratorState.RESOLVED
        self.outcome = Failed(kind, message)
