"""
Fixed parameters of the token drop.

Every run creates a new mint with these settings. Changing them changes what
recipients receive, so keep them in version control.
"""

# Token precision (base units per token = 10**DECIMALS)
DECIMALS = 6

# Minted once into the operator's own account (raw units)
INITIAL_SUPPLY = 1_000_000 * (10**DECIMALS)

# Sent to every configured recipient (raw units)
RECEIVERS_AMOUNT = 1000 * (10**DECIMALS)

DEFAULT_CLUSTER = "devnet"
DEFAULT_COMMITMENT = "confirmed"

CLUSTER_URLS = {
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
}

EXPLORER_URL = "https://explorer.solana.com"
