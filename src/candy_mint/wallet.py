from __future__ import annotations

import inspect
import json
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol, Union

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from .errors import WalletRejectedError

Approver = Callable[[Transaction], Union[bool, Awaitable[bool]]]


class Wallet(Protocol):
    """The connected signer. Signing may wait on a human indefinitely."""

    @property
    def connected(self) -> bool: ...

    @property
    def public_key(self) -> Optional[Pubkey]: ...

    async def sign_transaction(self, tx: Transaction) -> Transaction: ...


class DisconnectedWallet:
    connected = False
    public_key = None

    async def sign_transaction(self, tx: Transaction) -> Transaction:
        raise WalletRejectedError("Please connect your wallet.")


class KeypairWallet:
    """
    Signs with a local keypair. `approve`, if given, is asked before every
    signature and may decline (sync or async callable).
    """

    def __init__(self, keypair: Keypair, approve: Optional[Approver] = None) -> None:
        self.keypair = keypair
        self.approve = approve

    @property
    def connected(self) -> bool:
        return True

    @property
    def public_key(self) -> Optional[Pubkey]:
        return self.keypair.pubkey()

    async def sign_transaction(self, tx: Transaction) -> Transaction:
        if self.approve is not None:
            ok = self.approve(tx)
            if inspect.isawaitable(ok):
                ok = await ok
            if not ok:
                raise WalletRejectedError("User rejected the request.")
        tx.partial_sign([self.keypair], tx.message.recent_blockhash)
        return tx


def load_keypair(path: str) -> Keypair:
    """Solana CLI keypair file: JSON array of 64 secret-key bytes."""
    with open(Path(path).expanduser(), "r", encoding="utf-8") as f:
        secret = json.load(f)
    if not isinstance(secret, list) or len(secret) != 64:
        raise ValueError(f"{path}: expected a JSON array of 64 bytes.")
    return Keypair.from_bytes(bytes(secret))
