"""Application constants - centralized configuration values."""

# =============================================================================
# Sessions
# =============================================================================
SESSION_COOKIE_NAME = "gristips_session"
SESSION_MAX_AGE = 30 * 24 * 60 * 60  # 30 days
SESSION_INACTIVITY_TIMEOUT = 2 * 60 * 60  # 2 hours

# =============================================================================
# Encryption
# =============================================================================
ENCRYPTION_KEY_MIN_LENGTH = 32
PBKDF2_ITERATIONS = 100_000
SALT_LENGTH = 64
IV_LENGTH = 16
KEY_LENGTH = 32  # AES-256
MAC_LENGTH = 32  # HMAC-SHA256 tag

# =============================================================================
# Rate limits (per user)
# =============================================================================
GRIST_API_MAX_REQUESTS = 60
GRIST_API_WINDOW = 60.0  # seconds
GRIST_API_RETRY_AFTER = 5.0
GRIST_VALIDATION_MAX_REQUESTS = 10
GRIST_VALIDATION_WINDOW = 60.0
GRIST_VALIDATION_RETRY_AFTER = 10.0

# =============================================================================
# Retry / backoff (in seconds)
# =============================================================================
RETRY_MAX_ATTEMPTS = 3
RETRY_BASE_DELAY = 1.0
RETRY_MAX_DELAY = 30.0
RETRY_JITTER = 0.1  # up to 10% of the delay

# =============================================================================
# ProConnect
# =============================================================================
JWKS_CACHE_TTL = 60 * 60  # 1 hour
JWT_CLOCK_TOLERANCE = 30  # seconds
PROCONNECT_TIMEOUT = 10.0
PUBLIC_AGENT_POPULATION = "agent"
PROCONNECT_USER_AGENT = "Gristips-ProConnect-Integration"

# =============================================================================
# Validation limits
# =============================================================================
AUTOMATION_NAME_MAX_LENGTH = 255
AUTOMATION_NAME_SHORT_LENGTH = 3
AUTOMATION_DESCRIPTION_MAX_LENGTH = 1000
API_KEY_MIN_LENGTH = 10
API_KEY_MAX_LENGTH = 500

# =============================================================================
# HTTP
# =============================================================================
HTTPX_TIMEOUT = 10.0

# =============================================================================
# Database pool
# =============================================================================
DB_POOL_SIZE = 10
DB_MAX_OVERFLOW = 20
DB_POOL_TIMEOUT = 30  # seconds
DB_POOL_RECYCLE = 30 * 60  # seconds
