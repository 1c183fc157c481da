from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from solders.hash import Hash
from solders.message import Message
from solders.transaction import Transaction

from .errors import ErrorKind, SubmitError, WalletRejectedError
from .project_constants import (
    CONFIRM_COMMITMENT,
    CONFIRM_POLL_INTERVAL_S,
    CONFIRM_TIMEOUT_S,
)
from .rpc import ConfirmationTimeout, LedgerClient, RpcError
from .transaction import TransactionRequest
from .wallet import Wallet

log = logging.getLogger(__name__)

# JSON-RPC server error codes (solana-rpc-client-api)
RPC_SEND_TX_PREFLIGHT_FAILURE = -32002
RPC_NODE_UNHEALTHY = -32005
RPC_BLOCKHASH_NOT_FOUND = -32008


@dataclass(frozen=True)
class MintReceipt:
    minted_item_id: str
    signature: str


def describe_tx_error(err: Any) -> str:
    """Human-readable text for a ledger-reported transaction error."""
    if isinstance(err, dict) and "InstructionError" in err:
        index, detail = err["InstructionError"]
        if isinstance(detail, dict) and "Custom" in detail:
            code = int(detail["Custom"])
            return (
                f"Mint rejected on-chain: instruction {index} failed with "
                f"custom program error 0x{code:x} ({code})."
            )
        return f"Mint rejected on-chain: instruction {index} failed with {detail}."
    return f"Mint rejected on-chain: {err}"


def classify_rpc_error(e: RpcError) -> SubmitError:
    if e.code == RPC_SEND_TX_PREFLIGHT_FAILURE:
        return SubmitError(e.rpc_message, ErrorKind.SIMULATION_OR_GUARD_REJECTED)
    if e.code in (RPC_NODE_UNHEALTHY, RPC_BLOCKHASH_NOT_FOUND):
        return SubmitError(e.rpc_message, ErrorKind.NETWORK_FAILURE)
    return SubmitError(e.rpc_message, ErrorKind.UNKNOWN)


class SubmissionPipeline:
    """
    Sign, send without preflight, then wait for the strongest commitment.

    Nothing here retries. A NETWORK_FAILURE after sending is ambiguous: the
    transaction may still land, so the wallet is the source of truth.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        commitment: str = CONFIRM_COMMITMENT,
        timeout_s: float = CONFIRM_TIMEOUT_S,
        poll_interval_s: float = CONFIRM_POLL_INTERVAL_S,
    ) -> None:
        self.ledger = ledger
        self.commitment = commitment
        self.timeout_s = timeout_s
        self.poll_interval_s = poll_interval_s

    async def _sign(self, request: TransactionRequest, signer: Wallet) -> Transaction:
        if not signer.connected or signer.public_key is None:
            raise SubmitError("Please connect your wallet.", ErrorKind.USER_REJECTED)
        if signer.public_key != request.payer:
            raise SubmitError(
                "Connected wallet does not match the transaction payer.", ErrorKind.UNKNOWN
            )

        try:
            blockhash = await self.ledger.get_latest_blockhash()
        except httpx.HTTPError as e:
            raise SubmitError(f"Could not fetch a recent blockhash: {e}", ErrorKind.NETWORK_FAILURE) from e
        except RpcError as e:
            raise classify_rpc_error(e) from e

        message = Message.new_with_blockhash(
            request.instructions, request.payer, Hash.from_string(blockhash)
        )
        tx = Transaction.new_unsigned(message)
        tx.partial_sign([request.asset_signer], message.recent_blockhash)

        try:
            tx = await signer.sign_transaction(tx)
        except WalletRejectedError as e:
            raise SubmitError(str(e) or "User rejected the request.", ErrorKind.USER_REJECTED) from e
        if not tx.is_signed():
            raise SubmitError("Transaction is missing required signatures.", ErrorKind.UNKNOWN)
        return tx

    async def submit(self, request: TransactionRequest, signer: Wallet) -> MintReceipt:
        tx = await self._sign(request, signer)

        try:
            signature = await self.ledger.send_transaction(bytes(tx), skip_preflight=True)
        except httpx.HTTPError as e:
            raise SubmitError(f"Sending the transaction failed: {e}", ErrorKind.NETWORK_FAILURE) from e
        except RpcError as e:
            raise classify_rpc_error(e) from e
        log.info("Sent mint transaction %s (asset %s)", signature, request.asset_id)

        try:
            status = await self.ledger.confirm_transaction(
                signature,
                commitment=self.commitment,
                timeout_s=self.timeout_s,
                poll_interval_s=self.poll_interval_s,
            )
        except ConfirmationTimeout as e:
            raise SubmitError(str(e), ErrorKind.NETWORK_FAILURE) from e
        except httpx.HTTPError as e:
            raise SubmitError(
                f"Lost contact while confirming {signature}: {e}", ErrorKind.NETWORK_FAILURE
            ) from e
        except RpcError as e:
            raise classify_rpc_error(e) from e

        if status.err is not None:
            raise SubmitError(describe_tx_error(status.err), ErrorKind.SIMULATION_OR_GUARD_REJECTED)

        log.info("Mint %s %s", signature, status.confirmation_status)
        return MintReceipt(minted_item_id=request.asset_id, signature=signature)
