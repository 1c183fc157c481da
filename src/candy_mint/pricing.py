from __future__ import annotations

from typing import Optional

from .accounts import GuardConfig, PaymentRequirement
from .project_constants import LAMPORTS_PER_SOL


def derive_price(guard: Optional[GuardConfig]) -> Optional[PaymentRequirement]:
    """No guard, or a guard without solPayment, means a free mint."""
    if guard is None:
        return None
    return guard.payment_requirement


def cost_lamports(requirement: Optional[PaymentRequirement]) -> int:
    return requirement.amount_lamports if requirement is not None else 0


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL
