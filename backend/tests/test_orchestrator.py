"""
Orchestrator tests: validation, fan-out, per-language isolation, publishing and usage.
"""

import base64
import json

import httpx
import pytest

from linguaroom.contracts import TranslationRequest
from linguaroom.errors import AuthorizationError, ConfigurationError, RequestValidationFailed, UpstreamError
from linguaroom.state import build_state

from conftest import drain, events


def make_request(**overrides) -> TranslationRequest:
    fields = {
        "audio": b"\x1a\x45\xdf\xa3fake-webm",
        "mime_type": "audio/webm",
        "passcode": "abc",
        "target_languages": ("English",),
        "room": "r1",
    }
    fields.update(overrides)
    return TranslationRequest(**fields)


@pytest.fixture
def session(settings, fake_openai):
    return build_state(settings, transport=fake_openai.transport)


@pytest.fixture
def orchestrator(session):
    return session.orchestrator


async def test_one_result_per_language_in_request_order(orchestrator, fake_openai):
    fake_openai.refined = "Hello everyone."
    languages = ("English", "Cantonese", "Spanish")

    outcome = await orchestrator.process(make_request(target_languages=languages))

    assert outcome.transcript == "Hello everyone."
    assert [result.language for result in outcome.results] == list(languages)
    cantonese = outcome.results[1]
    assert cantonese.translation == "[Cantonese (Traditional Chinese, Cantonese phrasing)] Hello everyone."
    assert len(fake_openai.calls_to("/audio/transcriptions")) == 1
    # one refinement + one translation per language
    assert len(fake_openai.calls_to("/chat/completions")) == 4


@pytest.mark.parametrize("mode, wants_audio", [("text", False), ("audio", True), ("both", True)])
async def test_audio_present_only_when_requested(orchestrator, fake_openai, mode, wants_audio):
    outcome = await orchestrator.process(make_request(output_mode=mode, target_languages=("English", "German")))

    for result in outcome.results:
        assert (result.audio_base64 is not None) == wants_audio
        if wants_audio:
            assert base64.b64decode(result.audio_base64) == b"ID3-fake-mp3"
    assert len(fake_openai.calls_to("/audio/speech")) == (2 if wants_audio else 0)


async def test_speech_failure_is_isolated_to_its_language(orchestrator, session, fake_openai):
    fake_openai.speech_failures.add("[Spanish]")
    listener = session.broadcaster.new_listener()
    session.broadcaster.subscribe("r1:cantonese", listener)
    drain(listener)

    outcome = await orchestrator.process(make_request(output_mode="audio", target_languages=("Cantonese", "Spanish")))

    cantonese, spanish = outcome.results
    assert cantonese.audio_base64 is not None and cantonese.error is None
    assert spanish.translation.startswith("[Spanish]")
    assert spanish.audio_base64 is None
    assert "500" in spanish.error
    assert [event["language"] for event in events(listener)] == ["Cantonese"]


async def test_results_are_published_per_language_channel(orchestrator, session):
    broadcaster = session.broadcaster
    cantonese, english, elsewhere = (broadcaster.new_listener() for _ in range(3))
    broadcaster.subscribe("r1:cantonese", cantonese)
    broadcaster.subscribe("r1:english", english)
    broadcaster.subscribe("r2:cantonese", elsewhere)
    for listener in (cantonese, english, elsewhere):
        drain(listener)

    await orchestrator.process(make_request(target_languages=("Cantonese",), context="earlier line"))

    (event,) = events(cantonese)
    assert event["type"] == "translation"
    assert event["room"] == "r1"
    assert event["language"] == "Cantonese"
    assert event["transcript"] == "hello everyone"
    assert event["translation"]
    assert event["audioBase64"] is None
    assert events(english) == []
    assert events(elsewhere) == []


async def test_usage_from_refinement_and_every_branch_is_recorded(orchestrator, session, fake_openai):
    fake_openai.scripted["german"] = ["", "Hallo zusammen"]

    outcome = await orchestrator.process(make_request(target_languages=("English", "German")))

    # refine + English + German twice, 15 tokens each
    assert session.usage.total_tokens == 60
    assert outcome.usage["total_tokens"] == 60
    assert outcome.usage["model"] == "gpt-4o-mini"
    assert outcome.usage["cost"] == pytest.approx((40 / 1000) * 0.00015 + (20 / 1000) * 0.0006)
    assert outcome.results[1].translation == "Hallo zusammen"


async def test_usage_accumulates_across_requests(orchestrator, session):
    await orchestrator.process(make_request())
    await orchestrator.process(make_request())
    assert session.usage.total_tokens == 60


async def test_missing_api_key_is_a_configuration_error(settings, fake_openai):
    session = build_state(settings.model_copy(update={"openai_api_key": ""}), transport=fake_openai.transport)
    with pytest.raises(ConfigurationError):
        await session.orchestrator.process(make_request())
    assert fake_openai.calls == []
    assert "r1" not in session.rooms


@pytest.mark.parametrize(
    "overrides",
    [
        {"passcode": ""},
        {"audio": b""},
        {"output_mode": "video"},
    ],
)
async def test_invalid_requests_make_no_calls(orchestrator, session, fake_openai, overrides):
    with pytest.raises(RequestValidationFailed):
        await orchestrator.process(make_request(**overrides))
    assert fake_openai.calls == []
    assert "r1" not in session.rooms


async def test_passcode_mismatch_has_no_side_effects(orchestrator, session, fake_openai):
    await orchestrator.process(make_request(passcode="abc"))
    listener = session.broadcaster.new_listener()
    session.broadcaster.subscribe("r1:english", listener)
    drain(listener)
    calls_before = len(fake_openai.calls)
    tokens_before = session.usage.total_tokens

    with pytest.raises(AuthorizationError):
        await orchestrator.process(make_request(passcode="xyz"))

    assert len(fake_openai.calls) == calls_before
    assert session.usage.total_tokens == tokens_before
    assert events(listener) == []


async def test_translation_failure_fails_the_request(orchestrator, session, fake_openai):
    fake_openai.failures["/chat/completions"] = (502, "bad gateway")

    with pytest.raises(UpstreamError) as excinfo:
        await orchestrator.process(make_request(target_languages=("French",)))
    assert excinfo.value.upstream_status == 502


async def test_transcription_failure_propagates(orchestrator, fake_openai):
    fake_openai.failures["/audio/transcriptions"] = (400, "unsupported file")
    with pytest.raises(UpstreamError) as excinfo:
        await orchestrator.process(make_request())
    assert "unsupported file" in excinfo.value.message
    assert fake_openai.calls_to("/chat/completions") == []


async def test_silent_audio_yields_empty_results_without_translation(orchestrator, session, fake_openai):
    fake_openai.transcript = ""
    listener = session.broadcaster.new_listener()
    session.broadcaster.subscribe("r1:english", listener)
    drain(listener)

    outcome = await orchestrator.process(make_request(output_mode="both", target_languages=("English", "Spanish")))

    assert [(r.language, r.translation, r.audio_base64) for r in outcome.results] == [
        ("English", "", None),
        ("Spanish", "", None),
    ]
    assert fake_openai.calls_to("/chat/completions") == []
    assert events(listener) == []


async def test_languages_are_deduplicated_case_insensitively(orchestrator, session, fake_openai):
    listener = session.broadcaster.new_listener()
    session.broadcaster.subscribe("r1:english", listener)
    drain(listener)

    outcome = await orchestrator.process(
        make_request(target_languages=("English", "english", " ENGLISH ", "Spanish", "spanish"))
    )

    assert [result.language for result in outcome.results] == ["English", "Spanish"]
    # one refinement + one translation per unique language
    assert len(fake_openai.calls_to("/chat/completions")) == 3
    assert len(events(listener)) == 1


def test_request_defaults_to_english_when_no_language_given():
    assert make_request(target_languages=()).target_languages == ("English",)
    assert make_request(target_languages=(" ", "")).target_languages == ("English",)


async def test_non_json_refinement_body_falls_back_to_raw_transcript(settings):
    def handler(request):
        if request.url.path.endswith("/audio/transcriptions"):
            return httpx.Response(200, json={"text": "hello everyone"})
        body = json.loads(request.content)
        if body["messages"][0]["content"].startswith("You clean ASR"):
            return httpx.Response(200, text="<html>upstream proxy error</html>")
        return httpx.Response(200, json={"choices": [{"message": {"content": "hola a todos"}}]})

    session = build_state(settings, transport=httpx.MockTransport(handler))

    outcome = await session.orchestrator.process(make_request(target_languages=("Spanish",)))

    assert outcome.transcript == "hello everyone"
    assert outcome.results[0].translation == "hola a todos"
