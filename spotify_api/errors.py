class SpotifyAuthError(RuntimeError):
    """Base class for token lifecycle failures that callers are expected to see."""


class MissingRefreshTokenError(SpotifyAuthError):
    """Raised when a refresh is attempted with no refresh token stored."""


class TokenRequestError(SpotifyAuthError):
    """Raised when the token endpoint could not be reached at all."""
