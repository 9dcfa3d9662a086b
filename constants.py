SPOTIFY_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"
SPOTIFY_AUTHORIZE_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/authorize"
SPOTIFY_TOKEN_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/api/token"

SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"
SPOTIFY_NOW_PLAYING_URL = f"{SPOTIFY_API_BASE_URL}/me/player/currently-playing"

# Persisted client state keys
PKCE_VERIFIER_KEY = "pkce_verifier"
ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
TOKEN_EXPIRES_AT_KEY = "token_expires_at"

TOKEN_STORE_KEYS = (
    PKCE_VERIFIER_KEY,
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    TOKEN_EXPIRES_AT_KEY,
)

# Subtracted from the server-reported lifetime when the expiry is stored.
TOKEN_EXPIRY_MARGIN_SECONDS = 60

DEFAULT_POLL_RETRY_DELAY_MS = 15000
DEFAULT_POLL_END_PADDING_MS = 500
