"""
Tests for candy_mint.accounts: layout decoding and the state reader.
"""
from __future__ import annotations

import httpx
import pytest

from candy_mint.accounts import (
    IssuanceStateReader,
    decode_candy_guard,
    decode_candy_machine,
    is_address,
)
from candy_mint.errors import ConfigurationError, ErrorKind, ReadError
from candy_mint.project_constants import SYSTEM_PROGRAM_ID
from candy_mint.rpc import AccountInfo, RpcError

from conftest import SOL, FakeLedger, encode_candy_guard, encode_candy_machine, new_address


class TestDecodeCandyMachine:
    """Tests for the candy machine account layout."""

    def test_config_line_machine(self, drop):
        """Should read counts and authorities, items_loaded from the hidden section."""
        data = encode_candy_machine(
            authority=drop["authority"],
            mint_authority=drop["guard"],
            collection_mint=drop["collection"],
            items_redeemed=7,
            items_available=100,
            items_loaded=60,
        )
        record = decode_candy_machine(drop["candy_machine"], data)

        assert record.id == drop["candy_machine"]
        assert record.authority == drop["authority"]
        assert record.collection_id == drop["collection"]
        assert record.guard_id == drop["guard"]
        assert record.items_redeemed == 7
        assert record.items_available == 100
        assert record.items_loaded == 60

    def test_hidden_settings_machine(self, drop):
        """Hidden-settings machines are fully loaded by definition."""
        data = encode_candy_machine(
            authority=drop["authority"],
            mint_authority=drop["guard"],
            collection_mint=drop["collection"],
            items_available=333,
            hidden_settings=True,
        )
        record = decode_candy_machine(drop["candy_machine"], data)
        assert record.items_loaded == 333

    def test_wrong_discriminator(self, drop):
        """Should reject data that is not a candy machine."""
        data = encode_candy_guard(authority=drop["authority"])
        with pytest.raises(ReadError) as exc:
            decode_candy_machine(drop["candy_machine"], data)
        assert exc.value.kind is ErrorKind.DECODE_FAILURE

    def test_truncated_data(self, drop):
        """Should report truncated data as a decode failure."""
        data = encode_candy_machine(
            authority=drop["authority"],
            mint_authority=drop["guard"],
            collection_mint=drop["collection"],
        )
        with pytest.raises(ReadError) as exc:
            decode_candy_machine(drop["candy_machine"], data[:200])
        assert exc.value.kind is ErrorKind.DECODE_FAILURE


class TestDecodeCandyGuard:
    """Tests for the default guard set layout."""

    def test_sol_payment(self, drop):
        data = encode_candy_guard(drop["authority"], lamports=2 * SOL, destination=drop["treasury"])
        guard = decode_candy_guard(drop["guard"], data)

        assert guard.id == drop["guard"]
        assert guard.payment_requirement is not None
        assert guard.payment_requirement.amount_lamports == 2 * SOL
        assert guard.payment_requirement.destination == drop["treasury"]

    def test_bot_tax_is_skipped(self, drop):
        """solPayment follows botTax in the serialized set."""
        data = encode_candy_guard(
            drop["authority"], lamports=SOL // 2, destination=drop["treasury"], bot_tax=True
        )
        guard = decode_candy_guard(drop["guard"], data)
        assert guard.payment_requirement.amount_lamports == SOL // 2
        assert guard.payment_requirement.destination == drop["treasury"]

    def test_no_payment_guard(self, drop):
        guard = decode_candy_guard(drop["guard"], encode_candy_guard(drop["authority"], bot_tax=True))
        assert guard.payment_requirement is None

    def test_wrong_discriminator(self, drop):
        data = encode_candy_machine(
            authority=drop["authority"],
            mint_authority=drop["guard"],
            collection_mint=drop["collection"],
        )
        with pytest.raises(ReadError) as exc:
            decode_candy_guard(drop["guard"], data)
        assert exc.value.kind is ErrorKind.DECODE_FAILURE


class TestIsAddress:
    def test_valid(self):
        assert is_address(new_address())

    @pytest.mark.parametrize("value", ["", "not-base58-0OIl", "abc"])
    def test_invalid(self, value):
        assert not is_address(value)


class TestIssuanceStateReader:
    """Tests for IssuanceStateReader against the fake ledger."""

    @pytest.mark.asyncio
    async def test_fetch_issuance_and_guard(self, ledger, drop):
        reader = IssuanceStateReader(ledger)
        record = await reader.fetch_issuance(drop["candy_machine"])
        guard = await reader.fetch_guard(record.guard_id)

        assert record.items_redeemed == 10
        assert guard.payment_requirement.amount_lamports == SOL
        assert ledger.reads == 2

    @pytest.mark.asyncio
    async def test_missing_candy_machine(self, drop):
        reader = IssuanceStateReader(FakeLedger())
        with pytest.raises(ReadError) as exc:
            await reader.fetch_issuance(drop["candy_machine"])
        assert exc.value.kind is ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_wrong_owner(self, drop):
        fake = FakeLedger()
        fake.accounts[drop["candy_machine"]] = AccountInfo(owner=SYSTEM_PROGRAM_ID, lamports=1, data=b"")
        with pytest.raises(ReadError) as exc:
            await IssuanceStateReader(fake).fetch_issuance(drop["candy_machine"])
        assert exc.value.kind is ErrorKind.DECODE_FAILURE

    @pytest.mark.asyncio
    async def test_invalid_id_is_configuration_error(self):
        fake = FakeLedger()
        with pytest.raises(ConfigurationError):
            await IssuanceStateReader(fake).fetch_issuance("nope")
        assert fake.reads == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [httpx.ConnectError("connection refused"), RpcError(-32005, "Node is behind")],
    )
    async def test_transport_failure(self, ledger, drop, error):
        ledger.read_exc = error
        with pytest.raises(ReadError) as exc:
            await IssuanceStateReader(ledger).fetch_issuance(drop["candy_machine"])
        assert exc.value.kind is ErrorKind.NETWORK_FAILURE

    @pytest.mark.asyncio
    async def test_absent_guard_is_none(self, drop):
        assert await IssuanceStateReader(FakeLedger()).fetch_guard(drop["guard"]) is None

    @pytest.mark.asyncio
    async def test_wallet_mint_authority_is_no_guard(self, drop):
        fake = FakeLedger()
        fake.accounts[drop["guard"]] = AccountInfo(owner=SYSTEM_PROGRAM_ID, lamports=5, data=b"")
        assert await IssuanceStateReader(fake).fetch_guard(drop["guard"]) is None
