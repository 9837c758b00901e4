# app/config.py
from dotenv import load_dotenv
import os

load_dotenv()

# ------------------------------------------------------------
# Chain / contracts
# ------------------------------------------------------------
CHAIN_ID = int(os.getenv("CHAIN_ID", "80002"))  # Polygon Amoy

RPC_URL = os.getenv(
    "CHAIN_RPC_URL",
    os.getenv("RPC_URL", "https://rpc-amoy.polygon.technology")
)

POOL_ADDRESS = (
    os.getenv("POOL_ADDRESS")
    or os.getenv("ORBITALPOOL_ADDRESS")
    or os.getenv("CONTRACT_ADDRESS")
    or ""
)

SESSION_MANAGER_ADDRESS = os.getenv("SESSION_MANAGER_ADDRESS", "")

TOKEN_ADDRESSES = {
    "PYUSD": os.getenv("PYUSD_ADDRESS", os.getenv("PYUSD", "")),
    "USDC": os.getenv("USDC_ADDRESS", os.getenv("USDC", "")),
}

# ------------------------------------------------------------
# x402 metering
# ------------------------------------------------------------
X402_FACILITATOR_URL = (
    os.getenv("X402_FACILITATOR_URL")
    or os.getenv("FACILITATOR_URL")
    or "https://x402.polygon.technology"
)
PAYMENT_ADDRESS = os.getenv("PAYMENT_ADDRESS", "0x0")
PAYMENT_ASSET = os.getenv("PAYMENT_ASSET", "0x0")

FACILITATOR_PROBE_TIMEOUT = float(os.getenv("FACILITATOR_PROBE_TIMEOUT", "5"))  # seconds
DEFAULT_MAX_UNITS = int(os.getenv("DEFAULT_MAX_UNITS", "5"))
MAX_UNITS_LIMIT = int(os.getenv("MAX_UNITS_LIMIT", "100"))
UNITS_PER_SWAP = int(os.getenv("UNITS_PER_SWAP", "1"))

# ------------------------------------------------------------
# Price feed
# ------------------------------------------------------------
PRICE_FEED_URL = os.getenv(
    "PRICE_FEED_URL",
    "https://hermes.pyth.network/v2/updates/price/latest"
)
PRICE_POLL_INTERVAL = int(os.getenv("PRICE_POLL_INTERVAL", "15"))     # seconds
PRICE_FETCH_TIMEOUT = float(os.getenv("PRICE_FETCH_TIMEOUT", "8"))    # seconds

# ------------------------------------------------------------
# AMM defaults (passed through to clients)
# ------------------------------------------------------------
DEFAULT_SLIPPAGE = os.getenv("DEFAULT_SLIPPAGE", "0.5")   # percent
DEFAULT_DEADLINE = int(os.getenv("DEFAULT_DEADLINE", str(20 * 60)))

print("Config loaded:")
print("  CHAIN_ID:", CHAIN_ID)
print("  POOL:", POOL_ADDRESS or "(not set)")
print("  FACILITATOR:", X402_FACILITATOR_URL)
print("  RPC_URL:", RPC_URL[:48] + "…")
