import re

import pytest

from messengerbot.context import Context
from messengerbot.dispatch import Dispatcher, MatchOutcome, _TextRoute
from messengerbot.model import parse_event
from tests.factories import attachment, message_event, postback_event
from tests.messenger_fakes import _FakeClient


def _ctx(event: dict) -> Context:
    return Context(_FakeClient(), parse_event(event))


def _recorder(calls: list[str], name: str):
    async def _handler(ctx) -> None:
        calls.append(name)

    return _handler


class TestTextRoute:
    def test_exact_string_requires_full_equality(self) -> None:
        route = _TextRoute(("/start",), lambda ctx: None, exact=True)

        assert route.match("/start") is MatchOutcome.MATCHED
        assert route.match("/start now") is MatchOutcome.NO_MATCH

    def test_substring_match_for_patterns(self) -> None:
        route = _TextRoute(("hi",), lambda ctx: None, exact=False)

        assert route.match("oh hi there") is MatchOutcome.MATCHED

    def test_regex_trigger_searches(self) -> None:
        route = _TextRoute((re.compile(r"yes", re.I),), lambda ctx: None, exact=True)

        assert route.match("well, YES please") is MatchOutcome.MATCHED

    def test_missing_text(self) -> None:
        route = _TextRoute(("hi",), lambda ctx: None, exact=False)

        assert route.match(None) is MatchOutcome.NO_TEXT
        assert route.match("") is MatchOutcome.NO_TEXT


@pytest.mark.anyio
async def test_command_exact_match_runs_once() -> None:
    calls: list[str] = []
    dispatcher = Dispatcher()
    dispatcher.command("/start", _recorder(calls, "start"))
    dispatcher.command(["/start", "/help"], _recorder(calls, "multi"))

    result = await dispatcher.dispatch(_ctx(message_event("/start")))

    assert calls == ["start"]
    assert result.matched == "command"


@pytest.mark.anyio
async def test_command_stops_at_first_matching_regex() -> None:
    calls: list[str] = []
    dispatcher = Dispatcher()
    dispatcher.command(re.compile(r"^/test", re.I), _recorder(calls, "regex"))
    dispatcher.command("/TEST", _recorder(calls, "literal"))

    await dispatcher.dispatch(_ctx(message_event("/TEST")))

    assert calls == ["regex"]


@pytest.mark.anyio
async def test_hears_and_generic_handler_both_fire() -> None:
    calls: list[str] = []
    dispatcher = Dispatcher()
    dispatcher.hears("hi", _recorder(calls, "hears"))
    dispatcher.on("message", _recorder(calls, "log"))

    result = await dispatcher.dispatch(_ctx(message_event("hi there")))

    assert calls == ["hears", "log"]
    assert result.matched == "pattern"
    assert result.generic_handlers == 1


@pytest.mark.anyio
async def test_generic_handlers_all_run_in_order() -> None:
    calls: list[str] = []
    dispatcher = Dispatcher()
    dispatcher.on("message", _recorder(calls, "one"))
    dispatcher.on("message", _recorder(calls, "two"))

    result = await dispatcher.dispatch(_ctx(message_event("anything")))

    assert calls == ["one", "two"]
    assert result.matched is None
    assert result.handled


@pytest.mark.anyio
async def test_generic_after_match_toggle_restores_first_match_policy() -> None:
    calls: list[str] = []
    dispatcher = Dispatcher(generic_after_match=False)
    dispatcher.hears("hi", _recorder(calls, "hears"))
    dispatcher.on("message", _recorder(calls, "log"))

    await dispatcher.dispatch(_ctx(message_event("hi")))
    await dispatcher.dispatch(_ctx(message_event("bye")))

    assert calls == ["hears", "log"]


@pytest.mark.anyio
async def test_command_takes_precedence_over_pattern() -> None:
    calls: list[str] = []
    dispatcher = Dispatcher()
    dispatcher.hears("help", _recorder(calls, "hears"))
    dispatcher.command("/help", _recorder(calls, "command"))

    await dispatcher.dispatch(_ctx(message_event("/help")))

    assert calls == ["command"]


@pytest.mark.anyio
async def test_quick_reply_action_wins_over_command() -> None:
    calls: list[str] = []
    dispatcher = Dispatcher()
    dispatcher.command("Yes", _recorder(calls, "command"))
    dispatcher.action("YES", _recorder(calls, "action"))

    result = await dispatcher.dispatch(_ctx(message_event("Yes", quick_reply="YES")))

    assert calls == ["action"]
    assert result.matched == "action"


@pytest.mark.anyio
async def test_postback_runs_action_then_generic_postback_handlers() -> None:
    calls: list[str] = []
    dispatcher = Dispatcher()
    dispatcher.action(["BTN_1", "BTN_2"], _recorder(calls, "action"))
    dispatcher.on("postback", _recorder(calls, "postback"))
    dispatcher.on("message", _recorder(calls, "message"))

    result = await dispatcher.dispatch(_ctx(postback_event("BTN_2")))

    assert calls == ["action", "postback"]
    assert result.kind == "postback"


@pytest.mark.anyio
async def test_action_registration_last_write_wins() -> None:
    calls: list[str] = []
    dispatcher = Dispatcher()
    dispatcher.action("GO", _recorder(calls, "first"))
    dispatcher.action("GO", _recorder(calls, "second"))

    await dispatcher.dispatch(_ctx(postback_event("GO")))

    assert calls == ["second"]


@pytest.mark.anyio
async def test_unknown_postback_payload_only_runs_generic() -> None:
    calls: list[str] = []
    dispatcher = Dispatcher()
    dispatcher.action("KNOWN", _recorder(calls, "action"))
    dispatcher.on("postback", _recorder(calls, "postback"))

    result = await dispatcher.dispatch(_ctx(postback_event("OTHER")))

    assert calls == ["postback"]
    assert result.matched is None


@pytest.mark.anyio
async def test_text_handlers_skip_messages_without_text() -> None:
    calls: list[str] = []
    dispatcher = Dispatcher()
    dispatcher.hears(re.compile(".*"), _recorder(calls, "hears"))
    dispatcher.on_photo(_recorder(calls, "photo"))

    event = message_event(attachments=[attachment("image", "https://x/a.jpg")])
    await dispatcher.dispatch(_ctx(event))

    assert calls == ["photo"]


@pytest.mark.anyio
async def test_attachment_helpers_filter_by_kind() -> None:
    calls: list[str] = []
    dispatcher = Dispatcher()
    dispatcher.on_photo(_recorder(calls, "photo"))
    dispatcher.on_document(_recorder(calls, "document"))
    dispatcher.on_location(_recorder(calls, "location"))
    dispatcher.on_contact(_recorder(calls, "contact"))

    event = message_event(
        attachments=[attachment("audio", "https://x/a.mp3"), attachment("location")]
    )
    await dispatcher.dispatch(_ctx(event))

    assert calls == ["document", "location"]


@pytest.mark.anyio
async def test_on_update_sees_messages_and_postbacks() -> None:
    calls: list[str] = []
    dispatcher = Dispatcher()
    dispatcher.on_update(_recorder(calls, "update"))

    await dispatcher.dispatch(_ctx(message_event("hello")))
    await dispatcher.dispatch(_ctx(postback_event("X")))

    assert calls == ["update", "update"]


@pytest.mark.anyio
async def test_sync_handlers_are_supported() -> None:
    calls: list[str] = []
    dispatcher = Dispatcher()
    dispatcher.command("/sync", lambda ctx: calls.append("sync"))

    await dispatcher.dispatch(_ctx(message_event("/sync")))

    assert calls == ["sync"]


@pytest.mark.anyio
async def test_extend_context_runs_for_messages() -> None:
    dispatcher = Dispatcher()
    dispatcher.extend_context(lambda ctx: ctx.extend("locale", "en"))
    ctx = _ctx(message_event("hello"))

    await dispatcher.dispatch(ctx)

    assert ctx.locale == "en"


def test_unknown_event_type_is_ignored() -> None:
    dispatcher = Dispatcher()
    dispatcher.on("delivery", lambda ctx: None)

    assert "delivery" not in dispatcher._handlers


def test_invalid_trigger_type_raises() -> None:
    dispatcher = Dispatcher()

    with pytest.raises(TypeError):
        dispatcher.command(42, lambda ctx: None)  # type: ignore[arg-type]
