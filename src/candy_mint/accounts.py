from __future__ import annotations

import hashlib
import logging
import struct
from dataclasses import dataclass
from typing import Optional

import base58
import httpx

from .errors import ConfigurationError, ErrorKind, ReadError
from .project_constants import (
    CANDY_GUARD_PROGRAM_ID,
    CANDY_MACHINE_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
)
from .rpc import AccountInfo, LedgerClient, RpcError

log = logging.getLogger(__name__)

CANDY_MACHINE_DISCRIMINATOR = hashlib.sha256(b"account:CandyMachine").digest()[:8]
CANDY_GUARD_DISCRIMINATOR = hashlib.sha256(b"account:CandyGuard").digest()[:8]

# Config-line machines keep `items_loaded` (u32) at this fixed offset.
HIDDEN_SECTION_OFFSET = 850

CREATOR_LEN = 34  # address(32) + verified(1) + share(1)

# Default guard set feature bits, in serialization order.
GUARD_BOT_TAX = 0
GUARD_SOL_PAYMENT = 1
BOT_TAX_LEN = 9  # lamports u64 + last_instruction bool


@dataclass(frozen=True)
class IssuanceRecord:
    id: str
    authority: str
    collection_id: str
    items_loaded: int
    items_redeemed: int
    items_available: int
    guard_id: str


@dataclass(frozen=True)
class PaymentRequirement:
    amount_lamports: int
    destination: str


@dataclass(frozen=True)
class GuardConfig:
    id: str
    payment_requirement: Optional[PaymentRequirement]


class _Cursor:
    """Little-endian Borsh reader over raw account bytes."""

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self.data = data
        self.offset = offset

    def take(self, n: int) -> bytes:
        end = self.offset + n
        if end > len(self.data):
            raise ValueError(f"account data truncated at offset {self.offset} (+{n})")
        out = self.data[self.offset:end]
        self.offset = end
        return out

    def skip(self, n: int) -> None:
        self.take(n)

    def u8(self) -> int:
        return self.take(1)[0]

    def u32(self) -> int:
        return struct.unpack("<I", self.take(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self.take(8))[0]

    def flag(self) -> bool:
        v = self.u8()
        if v not in (0, 1):
            raise ValueError(f"invalid bool/option tag {v} at offset {self.offset - 1}")
        return v == 1

    def pubkey(self) -> str:
        return base58.b58encode(self.take(32)).decode("ascii")

    def string(self) -> str:
        n = self.u32()
        return self.take(n).decode("utf-8")


def is_address(value: str) -> bool:
    try:
        return len(base58.b58decode(value)) == 32
    except ValueError:
        return False


def decode_candy_machine(address: str, data: bytes) -> IssuanceRecord:
    try:
        c = _Cursor(data)
        if c.take(8) != CANDY_MACHINE_DISCRIMINATOR:
            raise ValueError("not a candy machine account")
        c.skip(8)  # version, token_standard, features
        authority = c.pubkey()
        mint_authority = c.pubkey()
        collection_mint = c.pubkey()
        items_redeemed = c.u64()

        items_available = c.u64()
        c.string()  # symbol
        c.skip(2 + 8 + 1)  # seller_fee_basis_points, max_supply, is_mutable
        c.skip(c.u32() * CREATOR_LEN)
        if c.flag():  # config_line_settings
            c.string()
            c.u32()
            c.string()
            c.u32()
            c.flag()
        hidden_settings = c.flag()
        if hidden_settings:
            c.string()
            c.string()
            c.skip(32)
            items_loaded = items_available
        else:
            items_loaded = _Cursor(data, HIDDEN_SECTION_OFFSET).u32()
    except (ValueError, UnicodeDecodeError) as e:
        raise ReadError(
            f"Candy machine {address} could not be decoded: {e}", ErrorKind.DECODE_FAILURE
        ) from e

    return IssuanceRecord(
        id=address,
        authority=authority,
        collection_id=collection_mint,
        items_loaded=items_loaded,
        items_redeemed=items_redeemed,
        items_available=items_available,
        guard_id=mint_authority,
    )


def decode_candy_guard(address: str, data: bytes) -> GuardConfig:
    """
    Reads the default guard set only. Guards are serialized in feature-bit
    order; everything after solPayment is left unread.
    """
    try:
        c = _Cursor(data)
        if c.take(8) != CANDY_GUARD_DISCRIMINATOR:
            raise ValueError("not a candy guard account")
        c.skip(32 + 1 + 32)  # base, bump, authority
        features = c.u64()

        payment: Optional[PaymentRequirement] = None
        if features & (1 << GUARD_BOT_TAX):
            c.skip(BOT_TAX_LEN)
        if features & (1 << GUARD_SOL_PAYMENT):
            lamports = c.u64()
            destination = c.pubkey()
            payment = PaymentRequirement(amount_lamports=lamports, destination=destination)
    except ValueError as e:
        raise ReadError(
            f"Candy guard {address} could not be decoded: {e}", ErrorKind.DECODE_FAILURE
        ) from e

    return GuardConfig(id=address, payment_requirement=payment)


class IssuanceStateReader:
    """One remote read per call; retrying is the caller's decision."""

    def __init__(self, ledger: LedgerClient) -> None:
        self.ledger = ledger

    async def _read(self, address: str, what: str) -> Optional[AccountInfo]:
        if not is_address(address):
            raise ConfigurationError(f"{what} id {address!r} is not a valid address.")
        try:
            return await self.ledger.get_account_info(address)
        except (httpx.HTTPError, RpcError) as e:
            raise ReadError(
                f"Could not read {what} {address}: {e}", ErrorKind.NETWORK_FAILURE
            ) from e

    async def fetch_issuance(self, issuance_id: str) -> IssuanceRecord:
        info = await self._read(issuance_id, "candy machine")
        if info is None:
            raise ReadError(f"Candy machine {issuance_id} not found.", ErrorKind.NOT_FOUND)
        if info.owner != CANDY_MACHINE_PROGRAM_ID:
            raise ReadError(
                f"Account {issuance_id} is owned by {info.owner}, not the candy machine program.",
                ErrorKind.DECODE_FAILURE,
            )
        record = decode_candy_machine(issuance_id, info.data)
        log.debug(
            "candy machine %s: loaded=%d redeemed=%d guard=%s",
            record.id, record.items_loaded, record.items_redeemed, record.guard_id,
        )
        return record

    async def fetch_guard(self, guard_id: str) -> Optional[GuardConfig]:
        """None when no guard is configured (missing account or a plain wallet authority)."""
        info = await self._read(guard_id, "candy guard")
        if info is None or info.owner == SYSTEM_PROGRAM_ID:
            log.debug("no candy guard at %s", guard_id)
            return None
        if info.owner != CANDY_GUARD_PROGRAM_ID:
            raise ReadError(
                f"Account {guard_id} is owned by {info.owner}, not the candy guard program.",
                ErrorKind.DECODE_FAILURE,
            )
        return decode_candy_guard(guard_id, info.data)
