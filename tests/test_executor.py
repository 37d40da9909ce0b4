import json
import re
import threading

import pytest

from platter import (
    AuthenticationError,
    DecodingError,
    EncodingError,
    HttpError,
    InvalidInput,
    InvalidURL,
    NetworkError,
    OAuth1Auth,
    RateLimitExceeded,
    RateLimitSnapshot,
    RequestCancelled,
    RequestExecutor,
    RetryConfig,
    TokenAuth,
    TransportResponse,
)

UA = "platter-tests/1.0"
NO_WAIT = RetryConfig(max_retries=3, base_delay=0.0, max_delay=0.0)
LIMITS = {
    "X-Discogs-Ratelimit": "60",
    "X-Discogs-Ratelimit-Remaining": "0",
    "X-Discogs-Ratelimit-Reset": "0",
}


class FakeTransport:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self.closed = False

    def send(self, request, timeout=None):
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, BaseException):
            raise item
        return item

    def close(self):
        self.closed = True


def ok(payload, headers=None):
    return TransportResponse(200, headers or {}, json.dumps(payload).encode())


def make(transport, credential=None, **kw):
    kw.setdefault("retry_config", NO_WAIT)
    return RequestExecutor(credential or TokenAuth("tok"), UA, transport=transport, **kw)


def test_success_decodes_json_and_sets_headers():
    t = FakeTransport(ok({"id": 1}))
    ex = make(t)
    assert ex.execute("/releases/1") == {"id": 1}
    req = t.requests[0]
    assert req.method == "GET"
    assert req.url == "https://api.discogs.com/releases/1"
    assert req.headers["User-Agent"] == UA
    assert req.headers["Authorization"] == "Discogs token=tok"
    assert req.body is None


def test_query_params_are_percent_encoded():
    t = FakeTransport(ok({}))
    make(t).execute("database/search", params={"q": "sonic youth", "type": "release/master"})
    assert t.requests[0].url == (
        "https://api.discogs.com/database/search?q=sonic%20youth&type=release/master"
    )


def test_header_order_extras_override():
    t = FakeTransport(ok({}))
    make(t).execute("/x", headers={"User-Agent": "override", "X-Extra": "1"})
    headers = t.requests[0].headers
    assert headers["User-Agent"] == "override"
    assert list(headers) == ["User-Agent", "Authorization", "X-Extra"]


def test_json_body_for_post_and_dropped_for_get():
    t = FakeTransport(ok({}))
    ex = make(t)
    ex.execute("/users/me/wants/1", "post", body={"notes": "mint"})
    assert json.loads(t.requests[0].body) == {"notes": "mint"}
    assert t.requests[0].headers["Content-Type"] == "application/json"
    ex.execute("/x", "GET", body={"ignored": True})
    assert t.requests[1].body is None


def test_unserializable_body_is_encoding_error():
    t = FakeTransport(ok({}))
    with pytest.raises(EncodingError):
        make(t).execute("/x", "POST", body={"bad": object()})
    assert t.requests == []


def test_invalid_method_and_url():
    t = FakeTransport(ok({}))
    ex = make(t)
    with pytest.raises(InvalidInput):
        ex.execute("/x", "TRACE")
    with pytest.raises(InvalidURL):
        ex.execute("")
    with pytest.raises(InvalidURL):
        ex.execute("https://evil.example/x")
    with pytest.raises(InvalidURL):
        RequestExecutor(TokenAuth("t"), UA, transport=t, base_url="not a url")
    with pytest.raises(InvalidInput):
        RequestExecutor(TokenAuth("t"), "", transport=t)


def test_always_429_makes_initial_plus_max_retries_attempts():
    t = FakeTransport(TransportResponse(429, {}, b""))
    with pytest.raises(RateLimitExceeded) as info:
        make(t).execute("/x")
    assert len(t.requests) == 4
    assert info.value.attempts == 4


def test_max_retries_zero_means_single_attempt():
    t = FakeTransport(TransportResponse(429, {}, b""))
    with pytest.raises(RateLimitExceeded):
        make(t, retry_config=RetryConfig(max_retries=0)).execute("/x")
    assert len(t.requests) == 1


def test_auto_retry_disabled():
    t = FakeTransport(TransportResponse(429, {}, b""))
    with pytest.raises(RateLimitExceeded):
        make(t, retry_config=RetryConfig(enable_auto_retry=False)).execute("/x")
    assert len(t.requests) == 1


def test_retry_then_success():
    t = FakeTransport(TransportResponse(429, {}, b""), ok({"done": True}))
    assert make(t).execute("/x") == {"done": True}
    assert len(t.requests) == 2


def test_retry_sleeps_for_computed_delay(monkeypatch):
    slept = []
    monkeypatch.setattr("platter.executor.time.sleep", slept.append)
    t = FakeTransport(TransportResponse(429, {}, b""), ok({}))
    make(t, retry_config=RetryConfig(base_delay=1.0)).execute("/x")
    assert len(slept) == 1
    assert 0.8 <= slept[0] <= 1.2


def test_oauth_is_resigned_on_every_attempt():
    cred = OAuth1Auth("ck", "cs", "at", "ats")
    t = FakeTransport(TransportResponse(429, {}, b""), TransportResponse(429, {}, b""), ok({}))
    make(t, credential=cred).execute("/x", params={"page": 2})
    nonces = [re.search(r'oauth_nonce="([^"]+)"', r.headers["Authorization"]).group(1)
              for r in t.requests]
    assert len(set(nonces)) == 3


@pytest.mark.parametrize("status", [301, 400, 404, 500, 503])
def test_other_statuses_fail_without_retry(status):
    t = FakeTransport(TransportResponse(status, {}, b"nope"))
    with pytest.raises(HttpError) as info:
        make(t).execute("/x")
    assert info.value.status_code == status
    assert info.value.body == b"nope"
    assert len(t.requests) == 1


@pytest.mark.parametrize("status", [401, 403])
def test_auth_failures_are_authentication_errors(status):
    t = FakeTransport(TransportResponse(status, {}, b""))
    with pytest.raises(AuthenticationError) as info:
        make(t).execute("/x")
    assert isinstance(info.value, HttpError)
    assert info.value.status_code == status


def test_decode_failure_is_terminal():
    t = FakeTransport(TransportResponse(200, {}, b"{not json"))
    with pytest.raises(DecodingError):
        make(t).execute("/x")
    assert len(t.requests) == 1


def test_custom_decoder():
    t = FakeTransport(TransportResponse(200, {}, b"plain"))
    assert make(t).execute("/x", decoder=lambda b: b.decode().upper()) == "PLAIN"


def test_network_error_is_not_retried():
    t = FakeTransport(NetworkError(ConnectionError("refused")))
    with pytest.raises(NetworkError):
        make(t).execute("/x")
    assert len(t.requests) == 1


def test_raw_oserror_from_custom_transport_is_wrapped():
    t = FakeTransport(TimeoutError("slow"))
    with pytest.raises(NetworkError) as info:
        make(t).execute("/x")
    assert isinstance(info.value.cause, TimeoutError)


def test_rate_limit_updated_from_every_response():
    headers = {**LIMITS, "X-Discogs-Ratelimit-Remaining": "7"}
    t = FakeTransport(TransportResponse(500, headers, b""))
    ex = make(t)
    with pytest.raises(HttpError):
        ex.execute("/x")
    assert ex.rate_limit == RateLimitSnapshot(60, 7, 0)
    assert ex.current_rate_limit() is ex.rate_limit


def test_surfaced_rate_limit_error_carries_snapshot():
    t = FakeTransport(TransportResponse(429, LIMITS, b""))
    with pytest.raises(RateLimitExceeded) as info:
        make(t).execute("/x")
    assert info.value.rate_limit == RateLimitSnapshot(60, 0, 0)


def test_cancel_event_aborts_retry_wait():
    cancel = threading.Event()
    cancel.set()
    t = FakeTransport(TransportResponse(429, {}, b""))
    with pytest.raises(RequestCancelled):
        make(t).execute("/x", cancel_event=cancel)
    assert t.requests == []


def test_cancel_during_sleep():
    cancel = threading.Event()

    class CancellingTransport(FakeTransport):
        def send(self, request, timeout=None):
            cancel.set()
            return super().send(request, timeout)

    t = CancellingTransport(TransportResponse(429, {}, b""))
    ex = make(t, retry_config=RetryConfig(base_delay=30.0))
    with pytest.raises(RequestCancelled):
        ex.execute("/x", cancel_event=cancel)
    assert len(t.requests) == 1


def test_timeout_passed_to_transport():
    seen = []

    class Recording(FakeTransport):
        def send(self, request, timeout=None):
            seen.append(timeout)
            return super().send(request, timeout)

    make(Recording(ok({})), timeout=4.5).execute("/x")
    assert seen == [4.5]


def test_injected_transport_not_closed():
    t = FakeTransport(ok({}))
    with make(t):
        pass
    assert not t.closed


def test_sugar_methods():
    t = FakeTransport(ok({}))
    ex = make(t)
    ex.get("/a", {"p": 1})
    ex.post("/b", body={"x": 1})
    ex.put("/c", body={"x": 2})
    ex.delete("/d")
    assert [r.method for r in t.requests] == ["GET", "POST", "PUT", "DELETE"]
    assert t.requests[0].url.endswith("/a?p=1")


def test_authorize_factory_called_per_attempt():
    calls = []

    def authorize():
        calls.append(1)
        return f"OAuth n={len(calls)}"

    t = FakeTransport(TransportResponse(429, {}, b""), ok({}))
    make(t).execute("/x", authorize=authorize)
    assert [r.headers["Authorization"] for r in t.requests] == ["OAuth n=1", "OAuth n=2"]
