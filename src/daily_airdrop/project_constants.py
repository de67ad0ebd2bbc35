"""
Default parameters for the daily airdrop.

These values define the public rules of the distribution.
Every one of them can be overridden from the environment (see config.py).
"""

# Public KYC allow-list (one address per line)
ALLOWLIST_URL = "https://raw.githubusercontent.com/clwkevin/LayerOS/main/addressteasepoliakyc.txt"

# Block explorer prefix for transaction links (Tea Sepolia)
EXPLORER_TX_URL = "https://sepolia.tea.xyz/tx/"
NATIVE_SYMBOL = "TEA"

# Whole tokens sent to each recipient
AMOUNT_PER_RECIPIENT = "1000"

# Below this native balance (whole units) no transfer is attempted
MIN_NATIVE_BALANCE = "0.01"

# Daily cap is drawn uniformly from this inclusive range
DAILY_CAP_MIN = 101
DAILY_CAP_MAX = 110

# Seconds before each transfer / after each confirmed transfer
PRE_SEND_DELAY = (60.0, 300.0)
POST_SEND_DELAY = (20.0, 90.0)

CONFIRMATIONS = 3
CONFIRMATION_TIMEOUT_S = 600.0

# Telegram delivery: attempts and exponential backoff base (2s, 4s)
NOTIFY_ATTEMPTS = 3
NOTIFY_BACKOFF_BASE_S = 2.0

# Up to 3 minutes past UTC midnight
MIDNIGHT_JITTER_MAX_S = 180.0

HTTP_TIMEOUT_S = 15.0

SENT_FILE = "kyc_addresses_sent.txt"
PENDING_FILE = "kyc_addresses_pending.txt"
LAST_CYCLE_FILE = "last_cycle.txt"
LOCK_FILE = "airdrop.lock"
