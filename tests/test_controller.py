"""
Tests for ConnectController — the connect / callback / remove flow.
"""

from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import pytest

from connectors.base import Connection, ConnectionKey
from connectors.controller import ConnectController
from connectors.exceptions import (
    MissingRequestTokenError,
    ProviderExchangeError,
    UnknownProviderError,
    UnsupportedProviderError,
)
from connectors.interceptors import ConnectInterceptor
from connectors.oauth1 import OAuth1Version
from connectors.oauth2 import GrantType
from connectors.registry import ConnectionFactoryRegistry
from connectors.session_store import (
    AUTHORIZATION_ERROR_KEY,
    DUPLICATE_CONNECTION_KEY,
    OAUTH_TOKEN_KEY,
)
from fakes import (
    FakeCustomFactory,
    FakeOAuth1Factory,
    FakeOAuth1Operations,
    RecordingInterceptor,
)


def _connection(provider_id: str, provider_user_id: str) -> Connection:
    return Connection(key=ConnectionKey(provider_id, provider_user_id), access_token="t")


class TestConnectionStatus:
    @pytest.mark.asyncio
    async def test_not_connected_view(self, controller, repository, connect_request):
        view = await controller.connection_status("twitter", repository, connect_request)
        assert view.view_name == "connect/twitterConnect"
        assert "connections" not in view.model

    @pytest.mark.asyncio
    async def test_connected_view_lists_connections(self, controller, repository, connect_request):
        first = _connection("twitter", "1")
        second = _connection("twitter", "2")
        repository.connections = [first, _connection("github", "7"), second]

        view = await controller.connection_status("twitter", repository, connect_request)

        assert view.view_name == "connect/twitterConnected"
        assert view.model["connections"] == [first, second]

    @pytest.mark.asyncio
    async def test_duplicate_flag_shown_once(self, controller, repository, connect_request, session_data):
        session_data[DUPLICATE_CONNECTION_KEY] = True

        first = await controller.connection_status("twitter", repository, connect_request)
        second = await controller.connection_status("twitter", repository, connect_request)

        assert first.model[DUPLICATE_CONNECTION_KEY] is True
        assert DUPLICATE_CONNECTION_KEY not in second.model
        assert DUPLICATE_CONNECTION_KEY not in session_data

    @pytest.mark.asyncio
    async def test_authorization_error_shown_once(self, controller, repository, connect_request, session_data):
        session_data[AUTHORIZATION_ERROR_KEY] = "access_denied"

        first = await controller.connection_status("github", repository, connect_request)
        second = await controller.connection_status("github", repository, connect_request)

        assert first.model[AUTHORIZATION_ERROR_KEY] == "access_denied"
        assert AUTHORIZATION_ERROR_KEY not in second.model

    @pytest.mark.asyncio
    async def test_all_connection_status_covers_every_provider(self, controller, repository, connect_request):
        gh = _connection("github", "7")
        repository.connections = [gh]

        view = await controller.all_connection_status(repository, connect_request)

        assert view.view_name == "connect/status"
        assert view.model["connection_map"] == {"twitter": [], "github": [gh]}


class TestConnect:
    @pytest.mark.asyncio
    async def test_unknown_provider(self, controller, connect_request):
        with pytest.raises(UnknownProviderError):
            await controller.connect("myspace", connect_request)

    @pytest.mark.asyncio
    async def test_oauth1_revision_a(self, controller, twitter_factory, connect_request, session_data):
        url = await controller.connect("twitter", connect_request)

        ops = twitter_factory.oauth_operations
        assert url == "https://api.twitter.com/oauth/authorize?oauth_token=abc123"
        assert ops.fetch_calls == ["https://app.example.com/connect/twitter"]
        assert ops.authorize_calls == [("abc123", {})]
        assert session_data[OAUTH_TOKEN_KEY]["value"] == "abc123"
        assert session_data[OAUTH_TOKEN_KEY]["secret"] == "request-secret"
        assert session_data[OAUTH_TOKEN_KEY]["provider_id"] == "twitter"

    @pytest.mark.asyncio
    async def test_oauth1_legacy_puts_callback_on_authorize_url(self, connect_request, session_data):
        ops = FakeOAuth1Operations(
            version=OAuth1Version.CORE_10,
            authorize_url="https://legacy.example.com/authorize",
        )
        registry = ConnectionFactoryRegistry()
        registry.register(FakeOAuth1Factory("legacy", "legacy", ops))
        controller = ConnectController("https://app.example.com/", registry)

        url = await controller.connect("legacy", connect_request)

        assert ops.fetch_calls == [None]
        query = parse_qs(urlparse(url).query)
        assert query["oauth_callback"] == ["https://app.example.com/connect/legacy"]
        assert query["oauth_token"] == ["abc123"]
        assert session_data[OAUTH_TOKEN_KEY]["value"] == "abc123"

    @pytest.mark.asyncio
    async def test_oauth2_uses_callback_and_scope(self, controller, github_factory, connect_request, session_data):
        connect_request.params = {"scope": "repo"}

        url = await controller.connect("github", connect_request)

        grant_type, params = github_factory.oauth_operations.authorize_calls[0]
        assert grant_type is GrantType.AUTHORIZATION_CODE
        assert params == {
            "redirect_uri": "https://app.example.com/connect/github",
            "scope": "repo",
        }
        assert parse_qs(urlparse(url).query)["response_type"] == ["code"]
        assert OAUTH_TOKEN_KEY not in session_data

    @pytest.mark.asyncio
    async def test_oauth2_without_scope(self, controller, github_factory, connect_request):
        await controller.connect("github", connect_request)
        _, params = github_factory.oauth_operations.authorize_calls[0]
        assert params["scope"] is None

    @pytest.mark.asyncio
    async def test_custom_provider_unsupported_by_default(self, factory_registry, connect_request):
        factory_registry.register(FakeCustomFactory())
        controller = ConnectController("https://app.example.com", factory_registry)

        with pytest.raises(UnsupportedProviderError, match="ldap"):
            await controller.connect("ldap", connect_request)

    @pytest.mark.asyncio
    async def test_custom_provider_handler(self, factory_registry, connect_request):
        factory_registry.register(FakeCustomFactory())
        controller = ConnectController("https://app.example.com", factory_registry)
        seen = []

        async def handler(factory, request):
            seen.append(factory.provider_id)
            return "https://sso.example.com/login"

        controller.register_custom_auth_handler("ldap", handler)
        url = await controller.connect("ldap", connect_request)

        assert url == "https://sso.example.com/login"
        assert seen == ["ldap"]

    @pytest.mark.asyncio
    async def test_connect_does_not_create_connection(self, controller, repository, connect_request):
        await controller.connect("twitter", connect_request)
        assert repository.connections == []


class TestOAuth1Callback:
    @pytest.mark.asyncio
    async def test_twitter_round_trip(self, controller, twitter_factory, repository, connect_request, session_data):
        await controller.connect("twitter", connect_request)

        target = await controller.oauth1_callback(
            "twitter", "abc123", "xyz", repository, connect_request
        )

        assert target == "/connect/twitter"
        authorized = twitter_factory.oauth_operations.exchange_calls[0]
        assert authorized.value == "abc123"
        assert authorized.secret == "request-secret"
        assert authorized.verifier == "xyz"
        assert [c.key for c in repository.connections] == [ConnectionKey("twitter", "12345")]
        assert repository.connections[0].secret == "access-secret"
        assert OAUTH_TOKEN_KEY not in session_data

    @pytest.mark.asyncio
    async def test_request_token_removed_when_exchange_fails(
        self, controller, twitter_factory, repository, connect_request, session_data
    ):
        await controller.connect("twitter", connect_request)
        twitter_factory.oauth_operations.exchange_error = ProviderExchangeError("twitter", "rejected")

        with pytest.raises(ProviderExchangeError):
            await controller.oauth1_callback("twitter", "abc123", "xyz", repository, connect_request)

        assert OAUTH_TOKEN_KEY not in session_data
        assert repository.connections == []

    @pytest.mark.asyncio
    async def test_missing_request_token(self, controller, twitter_factory, repository, connect_request):
        with pytest.raises(MissingRequestTokenError):
            await controller.oauth1_callback("twitter", "abc123", "xyz", repository, connect_request)
        assert twitter_factory.oauth_operations.exchange_calls == []

    @pytest.mark.asyncio
    async def test_request_token_of_other_provider_rejected(
        self, factory_registry, repository, connect_request, session_data
    ):
        other = FakeOAuth1Factory("tumblr", "tumblr")
        factory_registry.register(other)
        controller = ConnectController("https://app.example.com", factory_registry)
        await controller.connect("twitter", connect_request)

        with pytest.raises(MissingRequestTokenError):
            await controller.oauth1_callback("tumblr", "abc123", None, repository, connect_request)

        assert other.oauth_operations.exchange_calls == []
        assert OAUTH_TOKEN_KEY not in session_data

    @pytest.mark.asyncio
    async def test_oauth1_callback_for_oauth2_provider(self, controller, repository, connect_request):
        with pytest.raises(UnsupportedProviderError):
            await controller.oauth1_callback("github", "abc123", None, repository, connect_request)

    @pytest.mark.asyncio
    async def test_legacy_callback_without_verifier(self, factory_registry, repository, connect_request):
        ops = FakeOAuth1Operations(version=OAuth1Version.CORE_10)
        factory_registry.register(FakeOAuth1Factory("legacy", "legacy", ops))
        controller = ConnectController("https://app.example.com", factory_registry)
        await controller.connect("legacy", connect_request)

        await controller.oauth1_callback("legacy", "abc123", None, repository, connect_request)

        assert ops.exchange_calls[0].verifier is None
        assert repository.connections[0].provider_id == "legacy"


class TestOAuth2Callback:
    @pytest.mark.asyncio
    async def test_exchange_and_store(self, controller, github_factory, repository, connect_request):
        target = await controller.oauth2_callback("github", "the-code", repository, connect_request)

        assert target == "/connect/github"
        assert github_factory.oauth_operations.exchange_calls == [
            ("the-code", "https://app.example.com/connect/github", None)
        ]
        assert repository.connections[0].key == ConnectionKey("github", "9001")
        assert repository.connections[0].access_token == "oauth2-access-token"

    @pytest.mark.asyncio
    async def test_duplicate_sets_flash_and_keeps_single_entry(
        self, controller, repository, connect_request, session_data
    ):
        await controller.oauth2_callback("github", "code-1", repository, connect_request)
        target = await controller.oauth2_callback("github", "code-2", repository, connect_request)

        assert target == "/connect/github"
        assert len(repository.connections) == 1
        assert session_data[DUPLICATE_CONNECTION_KEY] is True

        view = await controller.connection_status("github", repository, connect_request)
        assert view.model[DUPLICATE_CONNECTION_KEY] is True
        view = await controller.connection_status("github", repository, connect_request)
        assert DUPLICATE_CONNECTION_KEY not in view.model

    @pytest.mark.asyncio
    async def test_oauth2_callback_for_oauth1_provider(self, controller, repository, connect_request):
        with pytest.raises(UnsupportedProviderError):
            await controller.oauth2_callback("twitter", "code", repository, connect_request)

    @pytest.mark.asyncio
    async def test_authorization_error(self, controller, repository, connect_request, session_data):
        target = await controller.authorization_error_callback(
            "github", "access_denied", connect_request
        )
        assert target == "/connect/github"
        assert session_data[AUTHORIZATION_ERROR_KEY] == "access_denied"
        assert repository.connections == []


class TestRemoval:
    @pytest.mark.asyncio
    async def test_remove_all_is_idempotent(self, controller, repository):
        repository.connections = [
            _connection("twitter", "1"),
            _connection("twitter", "2"),
            _connection("github", "3"),
        ]

        assert await controller.remove_connections("twitter", repository) == "/connect/twitter"
        assert await controller.remove_connections("twitter", repository) == "/connect/twitter"

        assert [c.provider_id for c in repository.connections] == ["github"]

    @pytest.mark.asyncio
    async def test_remove_one_is_idempotent(self, controller, repository):
        keep = _connection("twitter", "2")
        repository.connections = [_connection("twitter", "1"), keep]

        await controller.remove_connection("twitter", "1", repository)
        target = await controller.remove_connection("twitter", "1", repository)

        assert target == "/connect/twitter"
        assert repository.connections == [keep]


class TestInterceptors:
    @pytest.mark.asyncio
    async def test_pre_and_post_connect_in_registration_order(self, controller, repository, connect_request):
        log = []
        controller.add_interceptor("twitter", RecordingInterceptor("first", log))
        controller.add_interceptor("twitter", RecordingInterceptor("second", log))

        await controller.connect("twitter", connect_request)
        await controller.oauth1_callback("twitter", "abc123", "xyz", repository, connect_request)

        assert log == [
            ("first", "pre", "twitter"),
            ("second", "pre", "twitter"),
            ("first", "post", "twitter"),
            ("second", "post", "twitter"),
        ]

    @pytest.mark.asyncio
    async def test_only_matching_api_type_fires(self, controller, repository, connect_request):
        log = []
        controller.add_interceptor("twitter", RecordingInterceptor("tw", log))

        await controller.connect("github", connect_request)
        await controller.oauth2_callback("github", "code", repository, connect_request)

        assert log == []

    @pytest.mark.asyncio
    async def test_pre_connect_runs_before_request_token_fetch(
        self, controller, twitter_factory, connect_request
    ):
        seen = []

        class FetchWatcher(RecordingInterceptor):
            async def pre_connect(self, factory, request):
                seen.append(list(factory.oauth_operations.fetch_calls))
                request.attributes["pre_connect_seen"] = True

        controller.add_interceptor("twitter", FetchWatcher("watcher", []))
        await controller.connect("twitter", connect_request)

        assert seen == [[]]
        assert connect_request.attributes["pre_connect_seen"] is True

    @pytest.mark.asyncio
    async def test_no_post_connect_on_duplicate(self, controller, repository, connect_request):
        log = []
        controller.add_interceptor("github", RecordingInterceptor("gh", log))
        repository.connections = [_connection("github", "9001")]

        await controller.oauth2_callback("github", "code", repository, connect_request)

        assert log == []

    @pytest.mark.asyncio
    async def test_interceptor_on_shared_api_type_fires_for_both_factories(
        self, factory_registry, repository, connect_request
    ):
        factory_registry.register(
            FakeOAuth1Factory("twitter-eu", "twitter", FakeOAuth1Operations())
        )
        controller = ConnectController("https://app.example.com", factory_registry)
        log = []
        controller.add_interceptor("twitter", RecordingInterceptor("tw", log))

        await controller.connect("twitter", connect_request)
        await controller.connect("twitter-eu", connect_request)

        assert log == [("tw", "pre", "twitter"), ("tw", "pre", "twitter-eu")]

    @pytest.mark.asyncio
    async def test_post_connect_receives_stored_connection(self, controller, repository, connect_request):
        interceptor = ConnectInterceptor()
        interceptor.post_connect = AsyncMock()
        controller.add_interceptor("github", interceptor)

        await controller.oauth2_callback("github", "code", repository, connect_request)

        interceptor.post_connect.assert_awaited_once_with(repository.connections[0], connect_request)
