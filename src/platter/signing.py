"""Authorization header construction for personal tokens and OAuth 1.0a.

OAuth parameter encoding keeps ``/`` unescaped, matching what the Discogs
server has been verified against so far. RFC 5849 would escape it; pass
``safe=""`` to ``RequestSigner`` to get strict encoding.
"""

import base64
import hashlib
import hmac
import time
import uuid
from collections.abc import Callable, Mapping
from typing import Union
from urllib.parse import quote

from .types import AuthCredential, OAuth1Auth, TokenAuth

# quote() never escapes A-Z a-z 0-9 - . _ ~; this adds "/"
DEFAULT_SAFE = "/"
SIGNATURE_METHOD = "HMAC-SHA1"
OAUTH_VERSION = "1.0"


def percent_encode(value: str, safe: str = DEFAULT_SAFE) -> str:
    return quote(str(value), safe=safe)


def _uuid_nonce() -> str:
    return uuid.uuid4().hex


class RequestSigner:
    """Computes ``Authorization`` header values.

    ``clock`` and ``nonce_factory`` are injectable so signatures can be
    reproduced in tests; by default every call gets the current Unix time and
    a fresh uuid4 hex nonce.
    """

    def __init__(
        self,
        safe: str = DEFAULT_SAFE,
        clock: Callable[[], float] = time.time,
        nonce_factory: Callable[[], str] = _uuid_nonce,
    ):
        self.safe = safe
        self._clock = clock
        self._nonce_factory = nonce_factory

    def encode(self, value: str) -> str:
        return percent_encode(value, self.safe)

    def generate_timestamp(self) -> int:
        return int(self._clock())

    def generate_nonce(self) -> str:
        return self._nonce_factory()

    def encode_parameters(self, params: Mapping[str, str]) -> str:
        pairs = sorted((self.encode(k), self.encode(v)) for k, v in params.items())
        return "&".join(f"{k}={v}" for k, v in pairs)

    def signature(
        self,
        method: str,
        base_url: str,
        params: Mapping[str, str],
        consumer_secret: str,
        token_secret: Union[str, None] = None,
    ) -> str:
        base_string = "&".join(
            [
                method.upper(),
                self.encode(base_url),
                self.encode(self.encode_parameters(params)),
            ]
        )
        key = f"{self.encode(consumer_secret)}&{self.encode(token_secret or '')}"
        digest = hmac.new(key.encode("utf-8"), base_string.encode("utf-8"), hashlib.sha1).digest()
        return base64.b64encode(digest).decode("ascii").rstrip("=")

    def authorization_header(self, oauth_params: Mapping[str, str]) -> str:
        pairs = sorted((self.encode(k), self.encode(v)) for k, v in oauth_params.items())
        return "OAuth " + ", ".join(f'{k}="{v}"' for k, v in pairs)

    def oauth_parameters(
        self, consumer_key: str, token: Union[str, None] = None, **extra: str
    ) -> dict[str, str]:
        params = {
            "oauth_consumer_key": consumer_key,
            "oauth_signature_method": SIGNATURE_METHOD,
            "oauth_timestamp": str(self.generate_timestamp()),
            "oauth_nonce": self.generate_nonce(),
            "oauth_version": OAUTH_VERSION,
        }
        if token is not None:
            params["oauth_token"] = token
        params.update(extra)
        return params

    def sign(
        self,
        credential: Union[AuthCredential, None],
        method: str,
        url: str,
        query_params: Union[Mapping[str, str], None] = None,
    ) -> Union[str, None]:
        """Return the Authorization header value for one request attempt."""
        if credential is None:
            return None
        if isinstance(credential, TokenAuth):
            return f"Discogs token={credential.token}"
        if isinstance(credential, OAuth1Auth):
            oauth = self.oauth_parameters(credential.consumer_key, credential.access_token)
            merged = {**oauth, **{k: str(v) for k, v in (query_params or {}).items()}}
            oauth["oauth_signature"] = self.signature(
                method,
                url.split("?", 1)[0],
                merged,
                credential.consumer_secret,
                credential.access_token_secret,
            )
            return self.authorization_header(oauth)
        raise TypeError(f"unsupported credential type: {type(credential).__name__}")

    def sign_handshake(
        self,
        method: str,
        url: str,
        consumer_key: str,
        consumer_secret: str,
        token: Union[str, None] = None,
        token_secret: Union[str, None] = None,
        **extra_oauth: str,
    ) -> str:
        """Header for the request-token and access-token legs of the OAuth dance."""
        oauth = self.oauth_parameters(consumer_key, token, **extra_oauth)
        oauth["oauth_signature"] = self.signature(
            method, url, oauth, consumer_secret, token_secret
        )
        return self.authorization_header(oauth)
