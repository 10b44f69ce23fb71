from solders.pubkey import Pubkey

# ============================================
# PROGRAM IDS
# ============================================
PUMP_PROGRAM = Pubkey.from_string("6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P")
SYSTEM_PROGRAM = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
WSOL_MINT = Pubkey.from_string("So11111111111111111111111111111111111111112")

# Size filter for getProgramAccounts when signature lookups are unavailable
PUMP_ACCOUNT_DATA_SIZE = 165

LAMPORTS_PER_SOL = 1_000_000_000
# pump.fun mints all use 6 decimals
PUMP_TOKEN_DECIMALS = 6

# ============================================
# ENDPOINTS
# ============================================
MAINNET_HTTP_ENDPOINTS = [
    "https://api.mainnet-beta.solana.com",
    "https://solana-api.projectserum.com",
    "https://rpc.ankr.com/solana",
    "https://solana-mainnet.public.blastapi.io",
]
MAINNET_STREAM_ENDPOINTS = [
    "wss://api.mainnet-beta.solana.com",
    "wss://rpc.ankr.com/solana/ws",
    "wss://solana-mainnet.public.blastapi.io",
]
DEVNET_HTTP_ENDPOINTS = ["https://api.devnet.solana.com"]
DEVNET_STREAM_ENDPOINTS = ["wss://api.devnet.solana.com"]

JUPITER_QUOTE_API = "https://quote-api.jup.ag/v6/quote"
JUPITER_SWAP_API = "https://quote-api.jup.ag/v6/swap"
JUPITER_PRICE_API = "https://api.jup.ag/price/v2"

# ============================================
# CREATION EVENTS
# ============================================
UNKNOWN_TOKEN_NAME = "Unknown Token"
UNKNOWN_TOKEN_SYMBOL = "UNKNOWN"

# Cumulative (price multiplier, percent of original holding sold)
DEFAULT_PROFIT_TIERS = [
    (1.3, 15.0),
    (2.0, 50.0),
    (3.0, 65.0),
    (4.0, 80.0),
    (8.0, 85.0),
]

# ============================================
# SAFETY
# ============================================
HIGH_RISK_KEYWORDS = ["scam", "rug", "fake", "honeypot", "ponzi"]
MEDIUM_RISK_KEYWORDS = ["moon", "safe", "gem", "100x", "guaranteed"]
SUSPICIOUS_TOKEN_NAMES = [
    "moon", "safe", "elon", "doge", "shib", "inu", "pepe",
    "100x", "1000x", "gem", "pump", "lambo", "guaranteed",
]
MAX_SYMBOL_LENGTH = 10

# Instructions that let a creator mint, burn or seize balances after launch
DISALLOWED_INSTRUCTIONS = {
    "mintTo", "mintToChecked", "burn", "burnChecked",
    "setAuthority", "freezeAccount", "thawAccount", "closeAccount",
}
SUSPICIOUS_LOG_PATTERNS = ["SetAuthority", "MintTo", "Burn", "CloseAccount", "FreezeAccount"]
