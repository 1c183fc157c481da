from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

log = logging.getLogger(__name__)

COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


class RpcError(RuntimeError):
    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.rpc_message = message
        self.data = data


class ConfirmationTimeout(RuntimeError):
    def __init__(self, signature: str, commitment: str, timeout_s: float) -> None:
        super().__init__(
            f"Transaction {signature} was not {commitment} within {timeout_s:.0f}s; "
            "check your wallet before retrying."
        )
        self.signature = signature


@dataclass(frozen=True)
class AccountInfo:
    owner: str
    lamports: int
    data: bytes


@dataclass(frozen=True)
class SignatureStatus:
    confirmation_status: Optional[str]
    err: Any

    def reached(self, commitment: str) -> bool:
        if self.confirmation_status is None:
            return False
        return COMMITMENT_RANK.get(self.confirmation_status, -1) >= COMMITMENT_RANK[commitment]


class LedgerClient:
    """Async JSON-RPC client for the handful of ledger calls a mint needs."""

    def __init__(
        self,
        rpc_url: str,
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.client = httpx.AsyncClient(timeout=timeout_s, transport=transport)

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        log.debug("rpc -> %s", payload["method"])
        resp = await self.client.post(self.rpc_url, json=payload)
        resp.raise_for_status()
        data = resp.json()
        if "error" in data:
            err = data["error"]
            raise RpcError(int(err.get("code", 0)), str(err.get("message", "")), err.get("data"))
        return data

    async def get_account_info(
        self, address: str, commitment: str = "confirmed"
    ) -> Optional[AccountInfo]:
        """Returns None when the account does not exist."""
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getAccountInfo",
            "params": [address, {"encoding": "base64", "commitment": commitment}],
        }
        data = await self._post(payload)
        value = data["result"]["value"]
        if value is None:
            return None
        # value['data'] is [base64_str, "base64"]
        raw = base64.b64decode(value["data"][0])
        return AccountInfo(owner=value["owner"], lamports=int(value["lamports"]), data=raw)

    async def get_balance(self, address: str, commitment: str = "confirmed") -> int:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getBalance",
            "params": [address, {"commitment": commitment}],
        }
        data = await self._post(payload)
        return int(data["result"]["value"])

    async def get_latest_blockhash(self, commitment: str = "finalized") -> str:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getLatestBlockhash",
            "params": [{"commitment": commitment}],
        }
        data = await self._post(payload)
        return data["result"]["value"]["blockhash"]

    async def send_transaction(
        self,
        raw_tx: bytes,
        skip_preflight: bool = True,
        preflight_commitment: str = "finalized",
    ) -> str:
        """Broadcasts a signed transaction and returns its signature."""
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "sendTransaction",
            "params": [
                base64.b64encode(raw_tx).decode("ascii"),
                {
                    "encoding": "base64",
                    "skipPreflight": skip_preflight,
                    "preflightCommitment": preflight_commitment,
                },
            ],
        }
        data = await self._post(payload)
        return str(data["result"])

    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getSignatureStatuses",
            "params": [[signature], {"searchTransactionHistory": False}],
        }
        data = await self._post(payload)
        statuses = data["result"]["value"]
        if not statuses or statuses[0] is None:
            return None
        s = statuses[0]
        return SignatureStatus(confirmation_status=s.get("confirmationStatus"), err=s.get("err"))

    async def confirm_transaction(
        self,
        signature: str,
        commitment: str = "finalized",
        timeout_s: float = 90.0,
        poll_interval_s: float = 2.0,
    ) -> SignatureStatus:
        """
        Polls until the signature reaches `commitment` or fails on-ledger.
        A failed transaction is returned (err set) as soon as it is seen.
        Raises ConfirmationTimeout when the deadline passes first.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        while True:
            status = await self.get_signature_status(signature)
            if status is not None:
                if status.err is not None:
                    return status
                if status.reached(commitment):
                    return status
            if loop.time() >= deadline:
                raise ConfirmationTimeout(signature, commitment, timeout_s)
            await asyncio.sleep(poll_interval_s)
