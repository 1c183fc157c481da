from __future__ import annotations

import argparse
import asyncio
import logging

from solders.transaction import Transaction

from .config import NETWORKS, Settings
from .orchestrator import Failed, MintOrchestrator, Success
from .pricing import lamports_to_sol
from .wallet import KeypairWallet, load_keypair


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def settings_from_args(args: argparse.Namespace) -> Settings:
    return Settings.from_env(
        rpc_url_override=args.rpc_url,
        candy_machine_override=args.candy_machine,
        network_override=args.network,
    )


def print_availability(orch: MintOrchestrator) -> None:
    snap = orch.snapshot
    print("========================================")
    print("CANDY MACHINE")
    print("========================================")
    print(f"Candy machine : {orch.settings.candy_machine_id or '(not set)'}")
    print(f"Network       : {orch.settings.network}")
    if snap is not None:
        print(f"Minted        : {snap.redeemed} / {snap.total}")
        print(f"Remaining     : {snap.remaining}")
        print(f"Price         : {orch.cost_sol} SOL")
    if orch.wallet_state.connected:
        print(f"Wallet        : {orch.wallet_state.public_address}")
        print(f"Balance       : {lamports_to_sol(orch.wallet_state.balance_lamports)} SOL")
    print("----------------------------------------")
    print(f"Mint enabled  : {'yes' if orch.mint_enabled else 'no'}")
    if orch.message:
        print(f"Message       : {orch.message}")


async def _status(args: argparse.Namespace) -> int:
    settings = settings_from_args(args)
    wallet = KeypairWallet(load_keypair(args.keypair)) if args.keypair else None
    orch = MintOrchestrator.from_settings(settings, wallet=wallet, timeout_s=args.timeout)
    try:
        await orch.refresh_availability()
    finally:
        await orch.aclose()
    print_availability(orch)
    return 1 if isinstance(orch.outcome, Failed) else 0


def cmd_status(args: argparse.Namespace) -> int:
    return asyncio.run(_status(args))


def _confirm_prompt(tx: Transaction) -> bool:
    answer = input(f"Sign mint transaction ({len(tx.message.instructions)} instructions)? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


async def _mint(args: argparse.Namespace) -> int:
    log = logging.getLogger("mint")
    settings = settings_from_args(args)
    approve = None if args.yes else _confirm_prompt
    wallet = KeypairWallet(load_keypair(args.keypair), approve=approve)
    orch = MintOrchestrator.from_settings(settings, wallet=wallet, timeout_s=args.timeout)
    try:
        await orch.refresh_availability()
        print_availability(orch)
        if not orch.mint_enabled:
            return 1

        outcome = await orch.execute_mint()
        if isinstance(outcome, Success):
            url = orch.explorer_url
            print("----------------------------------------")
            print(f"✅ {orch.message}")
            print(f"Minted item   : {outcome.minted_item_id}")
            print(f"Signature     : {outcome.signature}")
            print(f"Explorer      : {url}")
            log.info("Refreshing availability after mint...")
            await orch.refresh_availability()
            if orch.snapshot is not None:
                print(f"Minted        : {orch.snapshot.redeemed} / {orch.snapshot.total}")
            return 0

        print("----------------------------------------")
        if isinstance(outcome, Failed):
            print(f"❌ Mint failed ({outcome.reason.value}): {outcome.message}")
        else:
            print("Mint did not start.")
        return 1
    finally:
        await orch.aclose()


def cmd_mint(args: argparse.Namespace) -> int:
    return asyncio.run(_mint(args))


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="candy-mint",
        description="Inspect a Metaplex candy machine drop and mint from it.",
    )
    p.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    p.add_argument("--rpc-url", default=None, help="Override RPC URL (else use env).")
    p.add_argument(
        "--candy-machine", default=None, help="Override candy machine id (else use env)."
    )
    p.add_argument("--network", default=None, choices=NETWORKS, help="Override network.")
    p.add_argument("--timeout", type=float, default=30.0, help="RPC timeout seconds.")

    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("status", help="Show supply, price and mint eligibility.")
    s.add_argument(
        "--keypair", default=None, help="Keypair file to check balance/eligibility for."
    )
    s.set_defaults(func=cmd_status)

    m = sub.add_parser("mint", help="Mint one item with a local keypair.")
    m.add_argument(
        "--keypair",
        default="~/.config/solana/id.json",
        help="Payer keypair file (Solana CLI JSON format).",
    )
    m.add_argument("--yes", action="store_true", help="Sign without prompting.")
    m.set_defaults(func=cmd_mint)

    return p


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    setup_logging(args.verbose)
    raise SystemExit(args.func(args))
