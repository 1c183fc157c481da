from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

NETWORKS = ("devnet", "testnet", "mainnet-beta")


def normalize_network(value: str | None) -> str:
    v = (value or "").strip().lower()
    if v in ("devnet", "testnet"):
        return v
    return "mainnet-beta"


def normalize_rpc_url(value: str | None) -> str:
    v = (value or "").strip()
    if not v:
        return ""
    # Deploy configs historically store just the host.
    if "://" not in v:
        return f"https://{v}"
    return v


@dataclass(frozen=True)
class Settings:
    candy_machine_id: str
    network: str
    rpc_url: str

    @staticmethod
    def from_env(
        rpc_url_override: str | None = None,
        candy_machine_override: str | None = None,
        network_override: str | None = None,
    ) -> "Settings":
        load_dotenv()

        # Explicit CLI values win over the environment.
        rpc_url = rpc_url_override or os.getenv("RPC_URL", "")
        candy_machine_id = candy_machine_override or os.getenv("CANDY_MACHINE_ID", "")
        network = network_override or os.getenv("NETWORK", "")

        return Settings(
            candy_machine_id=candy_machine_id.strip(),
            network=normalize_network(network),
            rpc_url=normalize_rpc_url(rpc_url),
        )

    def missing(self) -> List[str]:
        """Names of required values that are not set."""
        out: List[str] = []
        if not self.candy_machine_id:
            out.append("CANDY_MACHINE_ID")
        if not self.rpc_url:
            out.append("RPC_URL")
        return out

    def explorer_cluster_suffix(self) -> Optional[str]:
        if self.network == "mainnet-beta":
            return None
        return f"?cluster={self.network}"
