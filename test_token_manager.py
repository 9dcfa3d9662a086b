import os
import unittest
import urllib.parse

import httpx

# Ensure local imports work when running this file directly.
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
if THIS_DIR not in os.sys.path:
    os.sys.path.insert(0, THIS_DIR)

from spotify_api.auth import TokenEndpoint, code_challenge_from_verifier
from spotify_api.browser import BrowserLocation
from spotify_api.errors import MissingRefreshTokenError, TokenRequestError
from spotify_api.token_manager import TokenManager
from spotify_api.token_store import MemoryTokenStore

REDIRECT_URI = "http://127.0.0.1:8888/callback"
NOW = 1_700_000_000_000


class FakeTokenServer:
    """Answers token endpoint POSTs from a queue and records every form it receives."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        form = dict(urllib.parse.parse_qsl(request.content.decode("utf-8")))
        self.requests.append({"url": str(request.url), "form": form, "headers": dict(request.headers)})
        if not self.responses:
            raise AssertionError("Unexpected token request")
        return self.responses.pop(0)


class Clock:
    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now


def make_manager(server: FakeTokenServer, *, store=None, location=None, clock=None) -> TokenManager:
    http_client = httpx.Client(transport=httpx.MockTransport(server))
    return TokenManager(
        client_id="client-123",
        redirect_uri=REDIRECT_URI,
        scopes=["user-read-currently-playing"],
        store=store if store is not None else MemoryTokenStore(),
        location=location or BrowserLocation(opener=lambda url: True),
        token_endpoint=TokenEndpoint(http_client=http_client),
        clock=clock or Clock(),
    )


class TestBeginAuthorization(unittest.TestCase):
    def test_persists_verifier_and_navigates(self):
        opened = []
        store = MemoryTokenStore()
        tm = make_manager(FakeTokenServer(), store=store, location=BrowserLocation(opener=lambda url: opened.append(url) or True))

        tm.begin_authorization()

        verifier = store.get("pkce_verifier")
        self.assertTrue(verifier)
        self.assertEqual(len(opened), 1)
        params = dict(urllib.parse.parse_qsl(urllib.parse.urlparse(opened[0]).query))
        self.assertEqual(params["client_id"], "client-123")
        self.assertEqual(params["response_type"], "code")
        self.assertEqual(params["redirect_uri"], REDIRECT_URI)
        self.assertEqual(params["code_challenge_method"], "S256")
        self.assertEqual(params["code_challenge"], code_challenge_from_verifier(verifier))

    def test_new_attempt_supersedes_verifier(self):
        store = MemoryTokenStore()
        tm = make_manager(FakeTokenServer(), store=store)
        tm.begin_authorization()
        first = store.get("pkce_verifier")
        tm.begin_authorization()
        self.assertNotEqual(first, store.get("pkce_verifier"))


class TestCompleteAuthorization(unittest.TestCase):
    def test_success_persists_tokens_and_strips_code(self):
        server = FakeTokenServer(
            httpx.Response(200, json={"access_token": "at-1", "refresh_token": "rt-1", "expires_in": 3600})
        )
        store = MemoryTokenStore({"pkce_verifier": "verifier-abc"})
        location = BrowserLocation(f"{REDIRECT_URI}?code=the-code", opener=lambda url: True)
        tm = make_manager(server, store=store, location=location)

        self.assertTrue(tm.complete_authorization())

        self.assertEqual(
            server.requests[0]["form"],
            {
                "grant_type": "authorization_code",
                "code": "the-code",
                "redirect_uri": REDIRECT_URI,
                "client_id": "client-123",
                "code_verifier": "verifier-abc",
            },
        )
        self.assertEqual(server.requests[0]["headers"]["content-type"], "application/x-www-form-urlencoded")
        self.assertEqual(store.get("access_token"), "at-1")
        self.assertEqual(store.get("refresh_token"), "rt-1")
        self.assertEqual(store.get("token_expires_at"), str(NOW + 3540 * 1000))
        self.assertIsNone(store.get("pkce_verifier"))
        self.assertEqual(location.href, REDIRECT_URI)

    def test_missing_code_is_a_no_op(self):
        server = FakeTokenServer()
        store = MemoryTokenStore({"pkce_verifier": "verifier-abc", "access_token": "old"})
        location = BrowserLocation(REDIRECT_URI, opener=lambda url: True)
        tm = make_manager(server, store=store, location=location)

        self.assertFalse(tm.complete_authorization())
        self.assertFalse(tm.complete_authorization(f"{REDIRECT_URI}?error=access_denied"))

        self.assertEqual(server.requests, [])
        self.assertEqual(store.snapshot(), {"pkce_verifier": "verifier-abc", "access_token": "old"})
        self.assertEqual(location.href, REDIRECT_URI)

    def test_missing_verifier_is_a_no_op(self):
        server = FakeTokenServer()
        store = MemoryTokenStore()
        tm = make_manager(server, store=store)

        self.assertFalse(tm.complete_authorization(f"{REDIRECT_URI}?code=abc"))
        self.assertEqual(server.requests, [])
        self.assertEqual(store.snapshot(), {})

    def test_http_failure_leaves_state_unchanged(self):
        server = FakeTokenServer(
            httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid authorization code"})
        )
        store = MemoryTokenStore({"pkce_verifier": "verifier-abc"})
        location = BrowserLocation(f"{REDIRECT_URI}?code=bad", opener=lambda url: True)
        tm = make_manager(server, store=store, location=location)

        with self.assertLogs("spotify_api.token_manager", level="ERROR") as logs:
            self.assertFalse(tm.complete_authorization())

        self.assertIn("invalid_grant", "\n".join(logs.output))
        self.assertEqual(store.snapshot(), {"pkce_verifier": "verifier-abc"})
        self.assertEqual(location.href, f"{REDIRECT_URI}?code=bad")

    def test_response_without_refresh_token_is_rejected(self):
        server = FakeTokenServer(httpx.Response(200, json={"access_token": "at", "expires_in": 3600}))
        store = MemoryTokenStore({"pkce_verifier": "v"})
        tm = make_manager(server, store=store)

        with self.assertLogs("spotify_api.token_manager", level="ERROR"):
            self.assertFalse(tm.complete_authorization(f"{REDIRECT_URI}?code=c"))
        self.assertIsNone(store.get("access_token"))

    def test_transport_failure_raises(self):
        def broken(request):
            raise httpx.ConnectError("connection refused", request=request)

        store = MemoryTokenStore({"pkce_verifier": "v"})
        tm = TokenManager(
            client_id="client-123",
            redirect_uri=REDIRECT_URI,
            scopes=[],
            store=store,
            location=BrowserLocation(opener=lambda url: True),
            token_endpoint=TokenEndpoint(http_client=httpx.Client(transport=httpx.MockTransport(broken))),
            clock=Clock(),
        )
        with self.assertRaises(TokenRequestError):
            tm.complete_authorization(f"{REDIRECT_URI}?code=c")
        self.assertEqual(store.snapshot(), {"pkce_verifier": "v"})


class TestRefresh(unittest.TestCase):
    def test_missing_refresh_token_raises(self):
        server = FakeTokenServer()
        tm = make_manager(server)
        with self.assertRaises(MissingRefreshTokenError):
            tm.refresh()
        self.assertEqual(server.requests, [])

    def test_refresh_keeps_original_refresh_token(self):
        server = FakeTokenServer(
            httpx.Response(200, json={"access_token": "at-2", "expires_in": 3600}),
            httpx.Response(200, json={"access_token": "at-3", "refresh_token": "rotated", "expires_in": 1800}),
        )
        clock = Clock()
        store = MemoryTokenStore({"access_token": "at-1", "refresh_token": "rt-1", "token_expires_at": "0"})
        tm = make_manager(server, store=store, clock=clock)

        self.assertTrue(tm.refresh())
        self.assertEqual(store.get("access_token"), "at-2")
        self.assertEqual(store.get("token_expires_at"), str(NOW + 3540 * 1000))
        self.assertEqual(store.get("refresh_token"), "rt-1")

        clock.now = NOW + 10_000
        self.assertTrue(tm.refresh())
        self.assertEqual(store.get("access_token"), "at-3")
        self.assertEqual(store.get("token_expires_at"), str(NOW + 10_000 + 1740 * 1000))
        self.assertEqual(store.get("refresh_token"), "rt-1")

        for request in server.requests:
            self.assertEqual(
                request["form"],
                {"grant_type": "refresh_token", "refresh_token": "rt-1", "client_id": "client-123"},
            )

    def test_refresh_failure_leaves_state_unchanged(self):
        server = FakeTokenServer(httpx.Response(400, json={"error": "invalid_grant"}))
        initial = {"access_token": "at-1", "refresh_token": "rt-1", "token_expires_at": "5"}
        store = MemoryTokenStore(initial)
        tm = make_manager(server, store=store)

        with self.assertLogs("spotify_api.token_manager", level="ERROR"):
            self.assertFalse(tm.refresh())
        self.assertEqual(store.snapshot(), initial)

    def test_non_json_error_body_is_logged(self):
        server = FakeTokenServer(httpx.Response(502, text="Bad Gateway"))
        store = MemoryTokenStore({"refresh_token": "rt-1"})
        tm = make_manager(server, store=store)

        with self.assertLogs("spotify_api.token_manager", level="ERROR") as logs:
            self.assertFalse(tm.refresh())
        self.assertIn("Bad Gateway", "\n".join(logs.output))


class TestGetValidAccessToken(unittest.TestCase):
    def test_returns_stored_token_before_expiry(self):
        server = FakeTokenServer()
        store = MemoryTokenStore({"access_token": "at-1", "refresh_token": "rt-1", "token_expires_at": str(NOW + 1)})
        tm = make_manager(server, store=store)

        self.assertEqual(tm.get_valid_access_token(), "at-1")
        self.assertEqual(server.requests, [])

    def test_refreshes_at_exact_expiry(self):
        server = FakeTokenServer(httpx.Response(200, json={"access_token": "at-2", "expires_in": 3600}))
        store = MemoryTokenStore({"access_token": "at-1", "refresh_token": "rt-1", "token_expires_at": str(NOW)})
        tm = make_manager(server, store=store)

        self.assertEqual(tm.get_valid_access_token(), "at-2")
        self.assertEqual(len(server.requests), 1)

    def test_refreshes_when_no_access_token(self):
        server = FakeTokenServer(httpx.Response(200, json={"access_token": "at-2", "expires_in": 3600}))
        store = MemoryTokenStore({"refresh_token": "rt-1", "token_expires_at": str(NOW + 999_999)})
        tm = make_manager(server, store=store)

        self.assertEqual(tm.get_valid_access_token(), "at-2")

    def test_failed_refresh_returns_stale_token(self):
        server = FakeTokenServer(httpx.Response(500, json={"error": "server_error"}))
        store = MemoryTokenStore({"access_token": "stale", "refresh_token": "rt-1", "token_expires_at": "0"})
        tm = make_manager(server, store=store)

        with self.assertLogs("spotify_api.token_manager", level="ERROR"):
            self.assertEqual(tm.get_valid_access_token(), "stale")

    def test_no_tokens_at_all_raises(self):
        tm = make_manager(FakeTokenServer())
        with self.assertRaises(MissingRefreshTokenError):
            tm.get_valid_access_token()


class TestTokenStateAndSignOut(unittest.TestCase):
    def test_load_state_and_sign_out(self):
        store = MemoryTokenStore({"access_token": "at", "refresh_token": "rt", "token_expires_at": str(NOW + 5)})
        tm = make_manager(FakeTokenServer(), store=store)

        state = tm.load_state()
        self.assertIsNotNone(state)
        assert state is not None
        self.assertEqual(state.to_dict(), {"access_token": "at", "refresh_token": "rt", "expires_at_ms": NOW + 5})
        self.assertFalse(state.is_expired(now=NOW))
        self.assertTrue(state.is_expired(now=NOW + 5))

        tm.sign_out()
        self.assertIsNone(tm.load_state())
        self.assertFalse(tm.has_access_token())

    def test_from_config(self):
        config = {
            "spotify_client_id": " abc ",
            "spotify_redirect_uri": REDIRECT_URI,
            "spotify_scopes": ["user-read-currently-playing"],
        }
        tm = TokenManager.from_config(config, store=MemoryTokenStore(), location=BrowserLocation(opener=lambda url: True))
        self.assertEqual(tm.client_id, "abc")
        self.assertEqual(tm.redirect_uri, REDIRECT_URI)
        self.assertEqual(tm.scopes, ["user-read-currently-playing"])


if __name__ == "__main__":
    unittest.main(verbosity=2)
