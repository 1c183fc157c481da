"""
Program ids and fixed parameters for the candy machine mint.

Program ids are mainnet/devnet identical for the Metaplex programs used here.
"""

LAMPORTS_PER_SOL = 1_000_000_000

# Metaplex Candy Machine Core (v3) and Candy Guard
CANDY_MACHINE_PROGRAM_ID = "CndyV3LdqHUfDLmE5naZjVN8rBZz4tqhdefbAnjHG3JR"
CANDY_GUARD_PROGRAM_ID = "Guard1JwRhJkVH6XZhzoYxeBVQe872VH6QggF4BWmS9g"
TOKEN_METADATA_PROGRAM_ID = "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s"

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
SYSVAR_INSTRUCTIONS_ID = "Sysvar1nstructions1111111111111111111111111"
SYSVAR_SLOT_HASHES_ID = "SysvarS1otHashes111111111111111111111111111"

# Measured worst case for a pNFT mint_v2 is ~400k units.
COMPUTE_UNIT_LIMIT = 600_000

# Submissions wait for this tier before reporting success.
CONFIRM_COMMITMENT = "finalized"
CONFIRM_TIMEOUT_S = 90.0
CONFIRM_POLL_INTERVAL_S = 2.0

EXPLORER_TOKEN_URL = "https://solscan.io/token/{mint}"
