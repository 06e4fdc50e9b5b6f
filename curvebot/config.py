import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()

# ---- Config / Env ----
TOKEN             = os.getenv("DISCORD_TOKEN")
RPC_URL           = os.getenv("RPC_URL", "https://orchard.rpc.quai.network")
RPC_TIMEOUT_SEC   = int(os.getenv("RPC_TIMEOUT_SEC", "15"))
RPC_CALL_METHOD   = os.getenv("RPC_CALL_METHOD", "quai_call")
EXPLORER_URL      = os.getenv("EXPLORER_URL", "https://orchard.quaiscan.io").rstrip("/")

LOG_LEVEL         = os.getenv("LOG_LEVEL", "INFO").upper()
DISPLAY_TZ        = os.getenv("DISPLAY_TZ", "America/Los_Angeles")

# ---- Valuation ----
BASE_SYMBOL        = os.getenv("BASE_SYMBOL", "QUAI")
SECONDARY_SYMBOL   = os.getenv("SECONDARY_SYMBOL", "WQI")
BASE_USD_RATE      = Decimal(os.getenv("BASE_USD_RATE", "0.052"))
FIXED_TOTAL_SUPPLY = Decimal(os.getenv("FIXED_TOTAL_SUPPLY", "1000000000"))
PROGRESS_SCALE     = Decimal(os.getenv("PROGRESS_SCALE", "10000"))

# ---- Exchange rate oracle ----
EXCHANGE_POOL_ADDRESS = os.getenv("EXCHANGE_POOL_ADDRESS", "").strip()
ORACLE_ENABLED        = os.getenv("ORACLE_ENABLED", "true").lower() != "false" and bool(EXCHANGE_POOL_ADDRESS)
RATE_REFRESH_SECONDS  = 30

# ---- Alerts watcher ----
POLL_SECONDS      = int(os.getenv("POLL_SECONDS", "15"))

# ---- Storage ----
STATE_DIR     = os.getenv("STATE_DIR", "state")
ALERTS_KEY    = "quaipump_price_alerts"
FAVORITES_KEY = "quaipump_favorites"
