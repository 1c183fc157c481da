from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from typing import List, Optional, Union

from solders.compute_budget import set_compute_unit_limit
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .accounts import GuardConfig, IssuanceRecord, PaymentRequirement
from .pricing import derive_price
from .project_constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    CANDY_GUARD_PROGRAM_ID,
    CANDY_MACHINE_PROGRAM_ID,
    COMPUTE_UNIT_LIMIT,
    SYSTEM_PROGRAM_ID,
    SYSVAR_INSTRUCTIONS_ID,
    SYSVAR_SLOT_HASHES_ID,
    TOKEN_METADATA_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
)

CANDY_MACHINE_PROGRAM = Pubkey.from_string(CANDY_MACHINE_PROGRAM_ID)
CANDY_GUARD_PROGRAM = Pubkey.from_string(CANDY_GUARD_PROGRAM_ID)
TOKEN_METADATA_PROGRAM = Pubkey.from_string(TOKEN_METADATA_PROGRAM_ID)
TOKEN_PROGRAM = Pubkey.from_string(TOKEN_PROGRAM_ID)
ASSOCIATED_TOKEN_PROGRAM = Pubkey.from_string(ASSOCIATED_TOKEN_PROGRAM_ID)
SYSTEM_PROGRAM = Pubkey.from_string(SYSTEM_PROGRAM_ID)
SYSVAR_INSTRUCTIONS = Pubkey.from_string(SYSVAR_INSTRUCTIONS_ID)
SYSVAR_SLOT_HASHES = Pubkey.from_string(SYSVAR_SLOT_HASHES_ID)


def sighash(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


MINT_V2_DISCRIMINATOR = sighash("mint_v2")


@dataclass(frozen=True)
class NoPayment:
    pass


@dataclass(frozen=True)
class SolPayment:
    destination: str


# Closed set of guard arguments understood by the assembler.
GuardArgs = Union[NoPayment, SolPayment]


@dataclass(frozen=True)
class TransactionRequest:
    instructions: List[Instruction]
    asset_signer: Keypair
    payer: Pubkey

    @property
    def asset_id(self) -> str:
        return str(self.asset_signer.pubkey())


def guard_args_for(requirement: Optional[PaymentRequirement]) -> GuardArgs:
    if requirement is None:
        return NoPayment()
    return SolPayment(destination=requirement.destination)


def candy_machine_authority_pda(candy_machine: Pubkey) -> Pubkey:
    return Pubkey.find_program_address(
        [b"candy_machine", bytes(candy_machine)], CANDY_MACHINE_PROGRAM
    )[0]


def metadata_pda(mint: Pubkey) -> Pubkey:
    return Pubkey.find_program_address(
        [b"metadata", bytes(TOKEN_METADATA_PROGRAM), bytes(mint)], TOKEN_METADATA_PROGRAM
    )[0]


def master_edition_pda(mint: Pubkey) -> Pubkey:
    return Pubkey.find_program_address(
        [b"metadata", bytes(TOKEN_METADATA_PROGRAM), bytes(mint), b"edition"],
        TOKEN_METADATA_PROGRAM,
    )[0]


def associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    return Pubkey.find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM), bytes(mint)], ASSOCIATED_TOKEN_PROGRAM
    )[0]


def token_record_pda(mint: Pubkey, token: Pubkey) -> Pubkey:
    return Pubkey.find_program_address(
        [b"metadata", bytes(TOKEN_METADATA_PROGRAM), bytes(mint), b"token_record", bytes(token)],
        TOKEN_METADATA_PROGRAM,
    )[0]


def collection_delegate_record_pda(
    collection_mint: Pubkey, update_authority: Pubkey, delegate: Pubkey
) -> Pubkey:
    return Pubkey.find_program_address(
        [
            b"metadata",
            bytes(TOKEN_METADATA_PROGRAM),
            bytes(collection_mint),
            b"collection_delegate",
            bytes(update_authority),
            bytes(delegate),
        ],
        TOKEN_METADATA_PROGRAM,
    )[0]


def encode_mint_v2() -> bytes:
    # mint_args: Vec<u8> (empty; solPayment takes its destination as an account)
    # label: Option<String> (None; default guard set)
    return MINT_V2_DISCRIMINATOR + struct.pack("<I", 0) + b"\x00"


def remaining_accounts_for(args: GuardArgs) -> List[AccountMeta]:
    if isinstance(args, NoPayment):
        return []
    if isinstance(args, SolPayment):
        return [
            AccountMeta(pubkey=Pubkey.from_string(args.destination), is_signer=False, is_writable=True)
        ]
    raise TypeError(f"Unsupported guard arguments: {args!r}")


def build_mint_v2_ix(
    issuance: IssuanceRecord,
    payer: Pubkey,
    nft_mint: Pubkey,
    args: GuardArgs,
) -> Instruction:
    """Candy guard mint_v2 for a programmable NFT, in the program's account order."""
    candy_machine = Pubkey.from_string(issuance.id)
    collection_mint = Pubkey.from_string(issuance.collection_id)
    collection_update_authority = Pubkey.from_string(issuance.authority)
    authority_pda = candy_machine_authority_pda(candy_machine)
    token = associated_token_address(payer, nft_mint)

    accounts: List[AccountMeta] = [
        AccountMeta(pubkey=Pubkey.from_string(issuance.guard_id), is_signer=False, is_writable=False),
        AccountMeta(pubkey=CANDY_MACHINE_PROGRAM, is_signer=False, is_writable=False),
        AccountMeta(pubkey=candy_machine, is_signer=False, is_writable=True),
        AccountMeta(pubkey=authority_pda, is_signer=False, is_writable=True),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),  # payer
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),  # minter
        AccountMeta(pubkey=nft_mint, is_signer=True, is_writable=True),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=False),  # mint authority
        AccountMeta(pubkey=metadata_pda(nft_mint), is_signer=False, is_writable=True),
        AccountMeta(pubkey=master_edition_pda(nft_mint), is_signer=False, is_writable=True),
        AccountMeta(pubkey=token, is_signer=False, is_writable=True),
        AccountMeta(pubkey=token_record_pda(nft_mint, token), is_signer=False, is_writable=True),
        AccountMeta(
            pubkey=collection_delegate_record_pda(
                collection_mint, collection_update_authority, authority_pda
            ),
            is_signer=False,
            is_writable=False,
        ),
        AccountMeta(pubkey=collection_mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=metadata_pda(collection_mint), is_signer=False, is_writable=True),
        AccountMeta(pubkey=master_edition_pda(collection_mint), is_signer=False, is_writable=False),
        AccountMeta(pubkey=collection_update_authority, is_signer=False, is_writable=False),
        AccountMeta(pubkey=TOKEN_METADATA_PROGRAM, is_signer=False, is_writable=False),
        AccountMeta(pubkey=TOKEN_PROGRAM, is_signer=False, is_writable=False),
        AccountMeta(pubkey=ASSOCIATED_TOKEN_PROGRAM, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYSTEM_PROGRAM, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYSVAR_INSTRUCTIONS, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYSVAR_SLOT_HASHES, is_signer=False, is_writable=False),
        # authorization rules program / rules: not used, Anchor takes the program id for None
        AccountMeta(pubkey=CANDY_GUARD_PROGRAM, is_signer=False, is_writable=False),
        AccountMeta(pubkey=CANDY_GUARD_PROGRAM, is_signer=False, is_writable=False),
    ]
    accounts.extend(remaining_accounts_for(args))
    return Instruction(program_id=CANDY_GUARD_PROGRAM, data=encode_mint_v2(), accounts=accounts)


def build_mint_transaction(
    issuance: IssuanceRecord,
    guard: Optional[GuardConfig],
    payer: Pubkey,
) -> TransactionRequest:
    """
    Pure construction: compute budget, then mint_v2 for a freshly generated
    asset keypair. Every call yields a new asset id.
    """
    asset_signer = Keypair()
    args = guard_args_for(derive_price(guard))
    instructions = [
        set_compute_unit_limit(COMPUTE_UNIT_LIMIT),
        build_mint_v2_ix(issuance, payer, asset_signer.pubkey(), args),
    ]
    return TransactionRequest(instructions=instructions, asset_signer=asset_signer, payer=payer)
