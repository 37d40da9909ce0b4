from .auth import (
    AsyncAuthentication,
    Authentication,
    authentication_headers,
    authorization_url,
    is_valid_callback_url,
    parse_oauth2_token,
    parse_oauth_token,
)
from .env import load_credential_from_env, load_settings_from_env
from .errors import (
    AuthenticationError,
    DecodingError,
    DiscogsError,
    EncodingError,
    HttpError,
    InvalidInput,
    InvalidResponse,
    InvalidURL,
    NetworkError,
    RateLimitExceeded,
    RequestCancelled,
)
from .executor import DEFAULT_BASE_URL, AsyncRequestExecutor, RequestExecutor
from .policies import RetryPolicy, coerce_retry_config, compute_delay
from .ratelimit import RateLimitSnapshot, RateLimitTracker, parse_rate_limit_headers
from .signing import RequestSigner, percent_encode
from .transports import AiohttpTransport, HttpxTransport, RequestsTransport
from .types import (
    AuthCredential,
    OAuth1Auth,
    OAuth2Token,
    OAuthToken,
    RetryConfig,
    SignedRequest,
    TokenAuth,
    TransportResponse,
)

__all__ = [
    "TokenAuth",
    "OAuth1Auth",
    "AuthCredential",
    "RetryConfig",
    "SignedRequest",
    "TransportResponse",
    "OAuthToken",
    "OAuth2Token",
    "RequestSigner",
    "percent_encode",
    "RateLimitSnapshot",
    "RateLimitTracker",
    "parse_rate_limit_headers",
    "RetryPolicy",
    "compute_delay",
    "coerce_retry_config",
    "RequestExecutor",
    "AsyncRequestExecutor",
    "DEFAULT_BASE_URL",
    "RequestsTransport",
    "HttpxTransport",
    "AiohttpTransport",
    "Authentication",
    "AsyncAuthentication",
    "parse_oauth_token",
    "parse_oauth2_token",
    "authorization_url",
    "is_valid_callback_url",
    "authentication_headers",
    "load_credential_from_env",
    "load_settings_from_env",
    "DiscogsError",
    "InvalidURL",
    "NetworkError",
    "InvalidResponse",
    "HttpError",
    "AuthenticationError",
    "RateLimitExceeded",
    "DecodingError",
    "EncodingError",
    "InvalidInput",
    "RequestCancelled",
]
