"""
Pytest configuration and an in-memory ledger for candy-mint tests.
"""
from __future__ import annotations

import asyncio
import struct
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import base58
import pytest
from solders.keypair import Keypair
from solders.transaction import Transaction

# Add package source to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from candy_mint.accounts import (  # noqa: E402
    CANDY_GUARD_DISCRIMINATOR,
    CANDY_MACHINE_DISCRIMINATOR,
    HIDDEN_SECTION_OFFSET,
)
from candy_mint.config import Settings  # noqa: E402
from candy_mint.project_constants import (  # noqa: E402
    CANDY_GUARD_PROGRAM_ID,
    CANDY_MACHINE_PROGRAM_ID,
)
from candy_mint.rpc import AccountInfo, SignatureStatus  # noqa: E402

SOL = 1_000_000_000
BLOCKHASH = base58.b58encode(bytes(range(1, 33))).decode("ascii")


def new_address() -> str:
    return str(Keypair().pubkey())


def _key(address: str) -> bytes:
    return base58.b58decode(address)


def _string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return struct.pack("<I", len(raw)) + raw


def encode_candy_machine(
    authority: str,
    mint_authority: str,
    collection_mint: str,
    items_redeemed: int = 0,
    items_available: int = 100,
    items_loaded: Optional[int] = None,
    hidden_settings: bool = False,
) -> bytes:
    out = bytearray(CANDY_MACHINE_DISCRIMINATOR)
    out += bytes([1, 4]) + bytes(6)  # version, pNFT token standard, features
    out += _key(authority) + _key(mint_authority) + _key(collection_mint)
    out += struct.pack("<Q", items_redeemed)
    out += struct.pack("<Q", items_available)
    out += _string("TLW")
    out += struct.pack("<HQ", 500, 0) + b"\x01"
    out += struct.pack("<I", 1) + _key(authority) + b"\x01" + bytes([100])
    if hidden_settings:
        out += b"\x00"
        out += b"\x01" + _string("Last War #$ID+1$") + _string("https://example.com/$ID$.json") + bytes(32)
    else:
        out += b"\x01"
        out += _string("Last War #") + struct.pack("<I", 4)
        out += _string("https://arweave.net/") + struct.pack("<I", 43)
        out += b"\x00"  # is_sequential
        out += b"\x00"  # no hidden settings
        out = bytearray(out.ljust(HIDDEN_SECTION_OFFSET, b"\x00"))
        loaded = items_available if items_loaded is None else items_loaded
        out += struct.pack("<I", loaded)
    return bytes(out)


def encode_candy_guard(
    authority: str,
    lamports: Optional[int] = None,
    destination: Optional[str] = None,
    bot_tax: bool = False,
) -> bytes:
    out = bytearray(CANDY_GUARD_DISCRIMINATOR)
    out += bytes(32) + b"\xfe" + _key(authority)
    features = 0
    body = b""
    if bot_tax:
        features |= 1
        body += struct.pack("<Q", 10_000_000) + b"\x01"
    if lamports is not None:
        features |= 2
        body += struct.pack("<Q", lamports) + _key(destination or authority)
    out += struct.pack("<Q", features) + body
    out += b"\x00"  # no groups
    return bytes(out)


class FakeLedger:
    """
    Serves encoded accounts and accepts transactions. A successful send
    bumps `items_redeemed` on the candy machine, as the program would.
    """

    def __init__(self) -> None:
        self.accounts: Dict[str, AccountInfo] = {}
        self.balances: Dict[str, int] = {}
        self.machines: Dict[str, Dict[str, Any]] = {}
        self.sent: List[Transaction] = []
        self.skip_preflight: List[bool] = []
        self.reads = 0
        self.read_exc: Optional[Exception] = None
        self.balance_exc: Optional[Exception] = None
        self.send_exc: Optional[Exception] = None
        self.confirm_exc: Optional[Exception] = None
        self.tx_err: Any = None
        self.send_gate: Optional[asyncio.Event] = None
        self.closed = False

    def put_candy_machine(self, address: str, **fields: Any) -> None:
        self.machines[address] = dict(fields)
        self.accounts[address] = AccountInfo(
            owner=CANDY_MACHINE_PROGRAM_ID, lamports=1, data=encode_candy_machine(**fields)
        )

    def put_candy_guard(self, address: str, **fields: Any) -> None:
        self.accounts[address] = AccountInfo(
            owner=CANDY_GUARD_PROGRAM_ID, lamports=1, data=encode_candy_guard(**fields)
        )

    def _redeem_one(self) -> None:
        for address, fields in self.machines.items():
            fields["items_redeemed"] = fields.get("items_redeemed", 0) + 1
            self.put_candy_machine(address, **fields)

    async def get_account_info(self, address: str, commitment: str = "confirmed"):
        self.reads += 1
        if self.read_exc is not None:
            raise self.read_exc
        return self.accounts.get(address)

    async def get_balance(self, address: str, commitment: str = "confirmed") -> int:
        if self.balance_exc is not None:
            raise self.balance_exc
        return self.balances.get(address, 0)

    async def get_latest_blockhash(self, commitment: str = "finalized") -> str:
        return BLOCKHASH

    async def send_transaction(
        self, raw_tx: bytes, skip_preflight: bool = True, preflight_commitment: str = "finalized"
    ) -> str:
        self.skip_preflight.append(skip_preflight)
        if self.send_gate is not None:
            await self.send_gate.wait()
        if self.send_exc is not None:
            raise self.send_exc
        tx = Transaction.from_bytes(raw_tx)
        self.sent.append(tx)
        if self.tx_err is None:
            self._redeem_one()
        return str(tx.signatures[0])

    async def confirm_transaction(
        self,
        signature: str,
        commitment: str = "finalized",
        timeout_s: float = 90.0,
        poll_interval_s: float = 2.0,
    ) -> SignatureStatus:
        if self.confirm_exc is not None:
            raise self.confirm_exc
        return SignatureStatus(confirmation_status="finalized", err=self.tx_err)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def payer() -> Keypair:
    return Keypair()


@pytest.fixture
def drop() -> Dict[str, str]:
    """Addresses for one candy machine drop."""
    return {
        "candy_machine": new_address(),
        "authority": new_address(),
        "guard": new_address(),
        "collection": new_address(),
        "treasury": new_address(),
    }


@pytest.fixture
def ledger(drop: Dict[str, str]) -> FakeLedger:
    """100 items, 10 redeemed, 1 SOL solPayment guard."""
    fake = FakeLedger()
    fake.put_candy_machine(
        drop["candy_machine"],
        authority=drop["authority"],
        mint_authority=drop["guard"],
        collection_mint=drop["collection"],
        items_redeemed=10,
        items_available=100,
    )
    fake.put_candy_guard(
        drop["guard"], authority=drop["authority"], lamports=1 * SOL, destination=drop["treasury"]
    )
    return fake


@pytest.fixture
def settings(drop: Dict[str, str]) -> Settings:
    return Settings(candy_machine_id=drop["candy_machine"], network="devnet", rpc_url="http://ledger.test")
