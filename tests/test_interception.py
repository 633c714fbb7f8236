"""Tests for nestlogin.interception -- reducer rules, completion, engine policy."""

from __future__ import annotations

import asyncio
import itertools
from types import SimpleNamespace
from urllib.parse import unquote

import pytest

from fakes import FakeContext, FakePage
from nestlogin.browser.session import SessionStop
from nestlogin.exceptions import DescriptorError
from nestlogin.interception import (
    InterceptionEngine,
    build_descriptor,
    is_complete,
    is_terminal_failure,
    reduce,
    serialize_cookies,
)
from nestlogin.models import Artifacts, Cookie, LoginSettings, RequestEvent, ResponseEvent


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


COOKIE_EVENT = ResponseEvent(
    url="https://accounts.google.com/CheckCookie?continue=x",
    cookies=(Cookie(name="SID", value="s1"), Cookie(name="HSID", value="h1")),
)
CHALLENGE_EVENT = RequestEvent(
    url="https://accounts.google.com/_/signin/challenge?hl=en",
    post_data="client_id=abc&f.req=zzz",
)
CONSENT_EVENT = ResponseEvent(
    url="https://accounts.google.com/signin/oauth/consent?authuser=0",
    headers={"Location": "https://accounts.google.com/o/oauth2?login_hint=user%40x.example&x=1"},
)
ISSUE_JWT_EVENT = RequestEvent(
    url="https://nestauthproxyservice-pa.googleapis.com/v1/issue_jwt",
    headers={"X-Goog-Api-Key": "K1", "Referer": "https://x.example/path"},
)
OWNED_DEVICES_EVENT = RequestEvent(
    url="https://home.nest.com/api/cameras.get_owned_and_member_of_with_properties"
)

ALL_EVENTS = [COOKIE_EVENT, CHALLENGE_EVENT, CONSENT_EVENT, ISSUE_JWT_EVENT]


def _fold(events) -> Artifacts:
    artifacts = Artifacts()
    for event in events:
        artifacts = reduce(artifacts, event)
    return artifacts


def _run_engine(events, settings=None):
    """Feed *events* to a fresh engine; return (engine, stop, descriptors, failures)."""
    descriptors: list = []
    failures: list = []

    async def scenario():
        stop = SessionStop()
        engine = InterceptionEngine(
            settings or LoginSettings(),
            stop,
            on_descriptor=descriptors.append,
            on_failure=failures.append,
        )
        for event in events:
            await engine.handle(event)
        return engine, stop

    engine, stop = asyncio.run(scenario())
    return engine, stop, descriptors, failures


# ---------------------------------------------------------------------------
# Reducer rules
# ---------------------------------------------------------------------------


class TestReduce:
    def test_cookie_check_captures_serialized_cookies(self) -> None:
        artifacts = reduce(Artifacts(), COOKIE_EVENT)
        assert artifacts.session_cookies == "SID=s1; HSID=h1"

    def test_cookie_check_without_cookies_is_ignored(self) -> None:
        event = ResponseEvent(url="https://accounts.google.com/CheckCookie")
        assert reduce(Artifacts(), event) == Artifacts()

    def test_challenge_request_captures_client_id(self) -> None:
        assert reduce(Artifacts(), CHALLENGE_EVENT).client_id == "abc"

    def test_challenge_without_body_is_ignored(self) -> None:
        event = RequestEvent(url="https://accounts.google.com/challenge?x")
        assert reduce(Artifacts(), event).client_id == ""

    def test_consent_response_captures_login_hint(self) -> None:
        assert reduce(Artifacts(), CONSENT_EVENT).login_hint == "user@x.example"

    def test_issue_jwt_captures_api_key_and_origin(self) -> None:
        artifacts = reduce(Artifacts(), ISSUE_JWT_EVENT)
        assert artifacts.api_key == "K1"
        assert artifacts.origin_domain == "https://x.example"

    def test_issue_jwt_without_api_key_is_ignored(self) -> None:
        event = RequestEvent(
            url="https://x/issue_jwt", headers={"referer": "https://x.example/"}
        )
        assert reduce(Artifacts(), event) == Artifacts()

    def test_origin_trailing_slash_stripped(self) -> None:
        event = RequestEvent(
            url="https://x/issue_jwt",
            headers={"x-goog-api-key": "K", "referer": "https://home.nest.com/"},
        )
        assert reduce(Artifacts(), event).origin_domain == "https://home.nest.com"

    def test_empty_value_never_erases_captured_value(self) -> None:
        artifacts = reduce(Artifacts(), CHALLENGE_EVENT)
        empty = RequestEvent(
            url="https://accounts.google.com/challenge?x", post_data="client_id="
        )
        assert reduce(artifacts, empty).client_id == "abc"

    def test_unrelated_event_returns_same_object(self) -> None:
        artifacts = Artifacts(client_id="abc")
        event = RequestEvent(url="https://home.nest.com/session")
        assert reduce(artifacts, event) is artifacts

    def test_reduce_does_not_mutate_input(self) -> None:
        artifacts = Artifacts()
        reduce(artifacts, CHALLENGE_EVENT)
        assert artifacts.client_id == ""

    def test_header_names_are_case_insensitive(self) -> None:
        assert ISSUE_JWT_EVENT.headers["x-goog-api-key"] == "K1"

    def test_serialize_cookies(self) -> None:
        assert serialize_cookies([Cookie(name="a", value="1")]) == "a=1"


# ---------------------------------------------------------------------------
# Completion and failure predicates
# ---------------------------------------------------------------------------


class TestPredicates:
    def test_complete_requires_all_four(self) -> None:
        for missing in range(len(ALL_EVENTS)):
            events = [e for i, e in enumerate(ALL_EVENTS) if i != missing]
            assert not is_complete(_fold(events))
        assert is_complete(_fold(ALL_EVENTS))

    def test_origin_is_not_required(self) -> None:
        artifacts = Artifacts(
            client_id="a", login_hint="b", session_cookies="c", api_key="d"
        )
        assert is_complete(artifacts)

    def test_owned_devices_request_is_terminal(self) -> None:
        assert is_terminal_failure(OWNED_DEVICES_EVENT)

    def test_owned_devices_response_is_not_terminal(self) -> None:
        assert not is_terminal_failure(ResponseEvent(url=OWNED_DEVICES_EVENT.url))


# ---------------------------------------------------------------------------
# Descriptor assembly
# ---------------------------------------------------------------------------


class TestBuildDescriptor:
    def test_example_values(self) -> None:
        descriptor = build_descriptor(_fold(ALL_EVENTS), LoginSettings())
        assert "client_id=abc" in descriptor.issue_token
        assert "login_hint=user%40x.example" in descriptor.issue_token
        assert "origin=https%3A%2F%2Fx.example" in descriptor.issue_token
        assert "ss_domain=https%3A%2F%2Fx.example" in descriptor.issue_token
        assert descriptor.api_key == "K1"
        assert descriptor.cookies == "SID=s1; HSID=h1"

    def test_serializes_with_camel_case_keys(self) -> None:
        descriptor = build_descriptor(_fold(ALL_EVENTS), LoginSettings())
        data = descriptor.model_dump(by_alias=True)
        assert set(data) == {"issueToken", "cookies", "apiKey"}
        assert data["issueToken"].startswith(
            "https://accounts.google.com/o/oauth2/iframerpc?action=issueToken"
        )

    def test_already_encoded_hint_is_not_double_encoded(self) -> None:
        descriptor = build_descriptor(_fold(ALL_EVENTS), LoginSettings())
        assert "%2540" not in descriptor.issue_token
        assert "user@x.example" in unquote(descriptor.issue_token)

    def test_incomplete_artifacts_raise(self) -> None:
        with pytest.raises(DescriptorError):
            build_descriptor(Artifacts(client_id="abc"), LoginSettings())


# ---------------------------------------------------------------------------
# Engine policy
# ---------------------------------------------------------------------------


class TestInterceptionEngine:
    @pytest.mark.parametrize("order", list(itertools.permutations(range(4))))
    def test_any_order_yields_one_descriptor(self, order) -> None:
        events = [ALL_EVENTS[i] for i in order]
        engine, stop, descriptors, failures = _run_engine(events)
        assert len(descriptors) == 1
        assert failures == []
        assert stop.is_set and stop.succeeded
        assert engine.descriptor == descriptors[0]

    def test_duplicates_after_completion_are_ignored(self) -> None:
        events = ALL_EVENTS + ALL_EVENTS + [OWNED_DEVICES_EVENT]
        engine, stop, descriptors, failures = _run_engine(events)
        assert len(descriptors) == 1
        assert failures == []
        assert stop.succeeded

    def test_duplicates_before_completion_do_not_change_result(self) -> None:
        events = [CHALLENGE_EVENT, CHALLENGE_EVENT, COOKIE_EVENT, COOKIE_EVENT,
                  CONSENT_EVENT, ISSUE_JWT_EVENT]
        _, _, descriptors, _ = _run_engine(events)
        assert len(descriptors) == 1
        assert "client_id=abc" in descriptors[0].issue_token

    def test_terminal_failure_before_completion(self) -> None:
        events = [COOKIE_EVENT, CHALLENGE_EVENT, OWNED_DEVICES_EVENT, CONSENT_EVENT,
                  ISSUE_JWT_EVENT]
        engine, stop, descriptors, failures = _run_engine(events)
        assert descriptors == []
        assert len(failures) == 1
        assert isinstance(engine.failure, DescriptorError)
        assert str(engine.failure) == "Could not generate authentication object."
        assert stop.is_set and not stop.succeeded
        assert stop.error is engine.failure
        assert engine.descriptor is None

    def test_attach_subscribes_to_page_events(self) -> None:
        page = FakePage()
        engine = InterceptionEngine(LoginSettings(), SessionStop())
        engine.attach(page)
        assert len(page.handlers["request"]) == 1
        assert len(page.handlers["response"]) == 1

    def test_page_events_drive_engine(self) -> None:
        class Request:
            def __init__(self, url, headers=None, post_data=None):
                self.url = url
                self.headers = headers or {}
                self.post_data = post_data

        class Response:
            def __init__(self, url, headers=None):
                self.url = url
                self.headers = headers or {}
                self.request = Request(url)

        page = FakePage()
        page.url = "https://accounts.google.com/signin"
        page.context = FakeContext([{"name": "SID", "value": "s1", "domain": ".google.com"}])
        descriptors: list = []

        async def scenario():
            stop = SessionStop()
            engine = InterceptionEngine(LoginSettings(), stop, on_descriptor=descriptors.append)
            engine.attach(page)
            await page.emit("request", Request(CHALLENGE_EVENT.url, post_data="client_id=abc"))
            await page.emit("response", Response("https://accounts.google.com/CheckCookie"))
            await page.emit(
                "response",
                Response(CONSENT_EVENT.url, {"location": "https://a/b?login_hint=u%40x"}),
            )
            await page.emit(
                "request",
                Request(ISSUE_JWT_EVENT.url, {"x-goog-api-key": "K1", "referer": "https://x/"}),
            )
            return stop

        stop = asyncio.run(scenario())
        assert stop.succeeded
        assert descriptors[0].cookies == "SID=s1"
        assert descriptors[0].api_key == "K1"

    def test_cookies_limited_to_current_page(self) -> None:
        check = SimpleNamespace(
            url="https://accounts.google.com/CheckCookie?continue=x",
            headers={},
            request=SimpleNamespace(url="https://accounts.google.com/CheckCookie?continue=x"),
        )
        page = FakePage()
        page.url = "https://accounts.google.com/signin/v2"
        page.context = FakeContext(
            [
                {"name": "SID", "value": "g", "domain": ".google.com"},
                {"name": "SID", "value": "nest", "domain": "home.nest.com"},
                {"name": "_ga", "value": "x", "domain": ".nest.com"},
            ]
        )
        engine = InterceptionEngine(LoginSettings(), SessionStop())
        engine.attach(page)

        asyncio.run(page.emit("response", check))

        assert engine.artifacts.session_cookies == "SID=g"
