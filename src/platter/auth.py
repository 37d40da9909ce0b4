import json
import logging
from collections.abc import Mapping
from typing import Any, Union
from urllib.parse import parse_qsl, urlencode, urlsplit

from .errors import DecodingError, DiscogsError, InvalidInput, InvalidResponse, RequestCancelled
from .executor import AsyncRequestExecutor, RequestExecutor, decode_text
from .types import OAuth2Token, OAuthToken

AUTHORIZE_URL = "https://discogs.com/oauth/authorize"
REQUEST_TOKEN_ENDPOINT = "/oauth/request_token"
ACCESS_TOKEN_ENDPOINT = "/oauth/access_token"
IDENTITY_ENDPOINT = "/oauth/identity"
TOKEN_ENDPOINT = "/oauth/token"
# custom app schemes are fine; these are not
REJECTED_CALLBACK_SCHEMES = {"ftp"}

logger = logging.getLogger("platter")


def parse_oauth_token(body: Union[str, bytes]) -> OAuthToken:
    """Parse ``oauth_token=...&oauth_token_secret=...`` from a token endpoint."""
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    fields = dict(parse_qsl(body.strip(), keep_blank_values=True))
    token = fields.get("oauth_token")
    secret = fields.get("oauth_token_secret")
    if token is None or secret is None:
        raise InvalidResponse("OAuth response is missing oauth_token or oauth_token_secret")
    return OAuthToken(
        token=token,
        token_secret=secret,
        callback_confirmed=fields.get("oauth_callback_confirmed", "").lower() == "true",
    )


def parse_oauth2_token(body: Union[bytes, Mapping[str, Any]]) -> OAuth2Token:
    payload = json.loads(body) if isinstance(body, (bytes, str)) else body
    if not isinstance(payload, Mapping):
        raise DecodingError("token response is not a JSON object")
    try:
        return OAuth2Token(
            access_token=payload["access_token"],
            token_type=payload["token_type"],
            expires_in=payload.get("expires_in"),
            refresh_token=payload.get("refresh_token"),
            scope=payload.get("scope"),
        )
    except KeyError as e:
        raise DecodingError(f"token response is missing {e.args[0]!r}") from e


def authorization_url(request_token: str) -> str:
    return f"{AUTHORIZE_URL}?oauth_token={request_token}"


def is_valid_callback_url(url: str) -> bool:
    if not url:
        return False
    scheme = urlsplit(url).scheme.lower()
    return bool(scheme) and scheme not in REJECTED_CALLBACK_SCHEMES


def authentication_headers(token: str, user_agent: str) -> dict[str, str]:
    return {"Authorization": f"Discogs token={token}", "User-Agent": user_agent}


def _refresh_body(refresh_token: str) -> tuple[bytes, dict[str, str]]:
    body = urlencode({"grant_type": "refresh_token", "refresh_token": refresh_token})
    return body.encode("ascii"), {"Content-Type": "application/x-www-form-urlencoded"}


def _oauth2_to_oauth(tok: OAuth2Token) -> OAuthToken:
    return OAuthToken(token=tok.access_token, token_secret=tok.refresh_token or "")


class _AuthenticationBase:
    def __init__(self, executor):
        self.executor = executor
        # Cause of the most recent validate_token() failure; None after a success
        self.last_validation_error: Union[DiscogsError, None] = None

    def _request_token_signer(self, consumer_key: str, consumer_secret: str, callback_url: str):
        if not is_valid_callback_url(callback_url):
            raise InvalidInput(f"invalid callback URL: {callback_url!r}")
        signer = self.executor.signer
        url = self.executor.base_url + REQUEST_TOKEN_ENDPOINT
        return lambda: signer.sign_handshake(
            "GET",
            url,
            consumer_key,
            consumer_secret,
            oauth_callback=callback_url,
        )

    def _access_token_signer(
        self, consumer_key, consumer_secret, request_token, request_token_secret, verifier
    ):
        signer = self.executor.signer
        url = self.executor.base_url + ACCESS_TOKEN_ENDPOINT
        return lambda: signer.sign_handshake(
            "POST",
            url,
            consumer_key,
            consumer_secret,
            token=request_token,
            token_secret=request_token_secret,
            oauth_verifier=verifier,
        )

    def get_authorization_url(self, request_token: str) -> str:
        return authorization_url(request_token)

    def _validation_failed(self, err: DiscogsError) -> bool:
        if isinstance(err, RequestCancelled):
            raise err
        self.last_validation_error = err
        logger.info(f"token validation failed: {err!r}")
        return False


class Authentication(_AuthenticationBase):
    """OAuth 1.0a handshake and token utilities on top of a RequestExecutor."""

    def __init__(self, executor: RequestExecutor):
        super().__init__(executor)

    def get_request_token(
        self, consumer_key: str, consumer_secret: str, callback_url: str
    ) -> OAuthToken:
        authorize = self._request_token_signer(consumer_key, consumer_secret, callback_url)
        body = self.executor.execute(
            REQUEST_TOKEN_ENDPOINT, "GET", authorize=authorize, decoder=decode_text
        )
        return parse_oauth_token(body)

    def get_access_token(
        self,
        consumer_key: str,
        consumer_secret: str,
        request_token: str,
        request_token_secret: str,
        verifier: str,
    ) -> OAuthToken:
        authorize = self._access_token_signer(
            consumer_key, consumer_secret, request_token, request_token_secret, verifier
        )
        body = self.executor.execute(
            ACCESS_TOKEN_ENDPOINT, "POST", authorize=authorize, decoder=decode_text
        )
        return parse_oauth_token(body)

    def validate_token(self, token: str) -> bool:
        """True if the identity endpoint accepts ``token``; any failure yields False."""
        try:
            self.executor.execute(
                IDENTITY_ENDPOINT, "GET", headers={"Authorization": f"Discogs token={token}"}
            )
        except DiscogsError as e:
            return self._validation_failed(e)
        self.last_validation_error = None
        return True

    def refresh_token(self, refresh_token: str) -> OAuthToken:
        body, headers = _refresh_body(refresh_token)
        tok = self.executor.execute(
            TOKEN_ENDPOINT, "POST", body=body, headers=headers, decoder=parse_oauth2_token
        )
        return _oauth2_to_oauth(tok)


class AsyncAuthentication(_AuthenticationBase):
    """Async twin of Authentication for an AsyncRequestExecutor."""

    def __init__(self, executor: AsyncRequestExecutor):
        super().__init__(executor)

    async def get_request_token(
        self, consumer_key: str, consumer_secret: str, callback_url: str
    ) -> OAuthToken:
        authorize = self._request_token_signer(consumer_key, consumer_secret, callback_url)
        body = await self.executor.execute(
            REQUEST_TOKEN_ENDPOINT, "GET", authorize=authorize, decoder=decode_text
        )
        return parse_oauth_token(body)

    async def get_access_token(
        self,
        consumer_key: str,
        consumer_secret: str,
        request_token: str,
        request_token_secret: str,
        verifier: str,
    ) -> OAuthToken:
        authorize = self._access_token_signer(
            consumer_key, consumer_secret, request_token, request_token_secret, verifier
        )
        body = await self.executor.execute(
            ACCESS_TOKEN_ENDPOINT, "POST", authorize=authorize, decoder=decode_text
        )
        return parse_oauth_token(body)

    async def validate_token(self, token: str) -> bool:
        try:
            await self.executor.execute(
                IDENTITY_ENDPOINT, "GET", headers={"Authorization": f"Discogs token={token}"}
            )
        except DiscogsError as e:
            return self._validation_failed(e)
        self.last_validation_error = None
        return True

    async def refresh_token(self, refresh_token: str) -> OAuthToken:
        body, headers = _refresh_body(refresh_token)
        tok = await self.executor.execute(
            TOKEN_ENDPOINT, "POST", body=body, headers=headers, decoder=parse_oauth2_token
        )
        return _oauth2_to_oauth(tok)
