"""
Constants for the Polymarket client.
"""

VERSION = "0.1.0"

# API Configuration
DEFAULT_HOST = "https://clob.polymarket.com"
DEFAULT_WS_URL = "wss://ws-subscriptions-clob.polymarket.com/ws/"
DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_MAX_RETRIES = 3
HEALTH_CHECK_TIMEOUT = 5.0
MAX_CONNECTIONS = 100

# Chains
POLYGON = 137
AMOY = 80002

# Exchange contracts per chain: (exchange, neg risk exchange)
EXCHANGE_CONTRACTS = {
    POLYGON: (
        "0x4bFb41d5B3570DeFd03C39a9A4D8dE6Bd8B8982E",
        "0xC5d563A36AE78145C45a50134d48A1215220f80a",
    ),
    AMOY: (
        "0xdFE02Eb6733538f8Ea35D585af8DE5958AD99E40",
        "0xC5d563A36AE78145C45a50134d48A1215220f80a",
    ),
}

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Collateral (USDC) and conditional tokens both use 6 decimals
TOKEN_DECIMALS = 6

# Salt must stay below 2**53 so JSON consumers can hold it in a double
SALT_BITS = 53
SALT_MASK = (1 << SALT_BITS) - 1

# EIP-712 domains
EXCHANGE_DOMAIN_NAME = "Polymarket CTF Exchange"
EXCHANGE_DOMAIN_VERSION = "1"
CLOB_AUTH_DOMAIN_NAME = "ClobAuthDomain"
CLOB_AUTH_DOMAIN_VERSION = "1"
CLOB_AUTH_MESSAGE = "This message attests that I control the given wallet"

# Stream heartbeat frames
PING_FRAME = "PING"
PONG_FRAME = "PONG"

# HTTP Status Codes
SUCCESS_STATUS_CODE = 200
ERROR_STATUS_CODE = 500
