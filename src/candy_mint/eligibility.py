from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

REASON_NOT_CONNECTED = "wallet not connected"
REASON_SOLD_OUT = "sold out"
REASON_INSUFFICIENT_BALANCE = "insufficient balance"
REASON_UNKNOWN_AVAILABILITY = "availability unknown"


@dataclass(frozen=True)
class AvailabilitySnapshot:
    total: int
    redeemed: int
    remaining: int
    cost_lamports: int

    @staticmethod
    def build(total: int, redeemed: int, cost_lamports: int) -> "AvailabilitySnapshot":
        return AvailabilitySnapshot(
            total=total,
            redeemed=redeemed,
            remaining=max(total - redeemed, 0),
            cost_lamports=cost_lamports,
        )


@dataclass(frozen=True)
class WalletState:
    connected: bool
    public_address: Optional[str]
    balance_lamports: int

    @staticmethod
    def disconnected() -> "WalletState":
        return WalletState(connected=False, public_address=None, balance_lamports=0)


@dataclass(frozen=True)
class Eligibility:
    mint_enabled: bool
    block_reason: Optional[str] = None


def compute_eligibility(
    snapshot: Optional[AvailabilitySnapshot], wallet: WalletState
) -> Eligibility:
    """First matching rule wins: connection, supply, then balance."""
    if not wallet.connected:
        return Eligibility(False, REASON_NOT_CONNECTED)
    if snapshot is None:
        return Eligibility(False, REASON_UNKNOWN_AVAILABILITY)
    if snapshot.remaining == 0:
        return Eligibility(False, REASON_SOLD_OUT)
    if wallet.balance_lamports < snapshot.cost_lamports:
        return Eligibility(False, REASON_INSUFFICIENT_BALANCE)
    return Eligibility(True)
