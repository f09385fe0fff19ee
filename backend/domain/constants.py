"""
Domain constants used across services/routers.
"""

# Solana program IDs
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
TOKEN_METADATA_PROGRAM_ID = "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s"

# Parsed account program tag returned by jsonParsed RPC encoding
SPL_TOKEN_PROGRAM_TAG = "spl-token"

# Blob key prefixes
IMAGE_PREFIX = "images/"
METADATA_PREFIX = "metadata/"
