import httpx
import pytest

from quizgen.core.exceptions import (
    GeneratorBusyError,
    GeneratorNotFoundError,
    GeneratorServerError,
    GeneratorUnavailableError,
    UnsupportedContentError,
)
from quizgen.services.generation.client import GenerationFallback, classify_status, get_generator_client


def test_generate_returns_questions_for_each_shape(generator, sample_questions):
    generator.queue(
        (200, sample_questions),
        (200, {"questions": sample_questions}),
        (200, {"output": {"questions": sample_questions}}),
        (200, [{"output": {"questions": sample_questions}}]),
    )
    client = generator.client()

    results = [client.generate({"questionCount": 2}) for _ in range(4)]

    assert all(result == sample_questions for result in results)
    assert generator.requests[0] == {"questionCount": 2}


def test_api_key_is_sent_as_header(generator, sample_questions):
    generator.queue((200, sample_questions))
    generator.client(api_key="secret-key").generate({})

    assert generator.headers[0]["X-API-Key"] == "secret-key"


@pytest.mark.parametrize(
    ("outcome", "reason"),
    [
        ((504, "Gateway Timeout"), "gateway_timeout"),
        ((200, ""), "empty_body"),
        ((200, "   "), "empty_body"),
        ((200, "<html>not json</html>"), "unparsable_body"),
        ((200, {"status": "ok"}), "no_questions"),
        ((200, {"error": "upstream timed out", "statusCode": 504}), "gateway_timeout"),
        (httpx.ReadTimeout("timed out"), "network"),
        (httpx.ConnectError("connection refused"), "network"),
    ],
)
def test_generate_falls_back_on_unusable_responses(generator, outcome, reason):
    generator.queue(outcome)

    with pytest.raises(GenerationFallback) as exc_info:
        generator.client().generate({})

    assert exc_info.value.reason == reason


@pytest.mark.parametrize(
    ("outcome", "error_type"),
    [
        ((404, "not found"), GeneratorNotFoundError),
        ((429, "slow down"), GeneratorBusyError),
        ((503, ""), GeneratorBusyError),
        ((422, "bad document"), UnsupportedContentError),
        ((500, "boom"), GeneratorServerError),
        ((200, {"error": "model crashed"}), GeneratorServerError),
        ((200, {"error": "too many requests", "statusCode": 429}), GeneratorBusyError),
    ],
)
def test_generate_raises_typed_errors(generator, outcome, error_type):
    generator.queue(outcome)

    with pytest.raises(error_type):
        generator.client().generate({})


def test_classify_status_maps_codes_to_http_statuses():
    assert classify_status(404).status_code == 502
    assert classify_status(429).status_code == 503
    assert classify_status(400, "bad input").status_code == 422
    assert "bad input" in classify_status(400, "bad input").message
    assert classify_status(502).status_code == 502


def test_acknowledge_retries_transport_errors(generator):
    generator.queue(httpx.ConnectError("refused"), httpx.ConnectTimeout("slow"), (200, {"status": "accepted"}))

    generator.client().acknowledge({"jobId": "job-1"})

    assert len(generator.requests) == 3


def test_acknowledge_gives_up_after_max_attempts(generator):
    generator.queue(*[httpx.ConnectError("refused") for _ in range(3)])

    with pytest.raises(GeneratorUnavailableError):
        generator.client(ack_max_attempts=3).acknowledge({"jobId": "job-1"})

    assert len(generator.requests) == 3


def test_acknowledge_does_not_retry_rejections(generator):
    generator.queue((500, "internal error"))

    with pytest.raises(GeneratorUnavailableError) as exc_info:
        generator.client().acknowledge({"jobId": "job-1"})

    assert exc_info.value.details["status_code"] == 500
    assert len(generator.requests) == 1


def test_no_client_without_webhook_url(monkeypatch):
    from quizgen.core.config import get_settings

    monkeypatch.setattr(get_settings(), "generator_webhook_url", "")
    assert get_generator_client() is None

    monkeypatch.setattr(get_settings(), "generator_webhook_url", "http://generator.test/webhook")
    client = get_generator_client()
    assert client is not None
    assert client.webhook_url == "http://generator.test/webhook"
