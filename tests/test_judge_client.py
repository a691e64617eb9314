import asyncio

import pytest
from aiohttp import test_utils, web

from code_arena.errors import EvaluationTransportError, UnsupportedLanguage
from code_arena.services.judge_client import (
    FailureKind,
    JudgeClient,
    JudgeRequest,
    classify_status,
    language_id_for,
)


def _request(**overrides) -> JudgeRequest:
    fields = dict(source_code="print(sum(map(int, input().split())))", language_id=71, stdin="1 2", expected_output="3\n")
    fields.update(overrides)
    return JudgeRequest(**fields)


def _run_against(handler, check, **client_kwargs):
    """Start a throwaway judge app serving ``handler`` and run ``check(judge)`` against it."""
    async def _main():
        app = web.Application()
        app.router.add_post("/submissions", handler)
        server = test_utils.TestServer(app)
        await server.start_server()
        try:
            async with JudgeClient(f"http://{server.host}:{server.port}/", **client_kwargs) as judge:
                return await check(judge)
        finally:
            await server.close()

    return asyncio.run(_main())


def test_accepted_run_is_parsed():
    received = []

    async def handler(request: web.Request) -> web.Response:
        received.append((dict(request.query), await request.json(), request.headers.get("X-RapidAPI-Key")))
        return web.json_response({
            "status": {"id": 3, "description": "Accepted"},
            "stdout": "3\n",
            "stderr": None,
            "time": "0.012",
            "memory": 3200,
        })

    async def check(judge):
        return await judge.execute(_request(cpu_time_limit=2.0, memory_limit=262144))

    response = _run_against(handler, check, api_key="secret", timeout=5)

    assert response.passed
    assert response.verdict_id == 3
    assert response.status_description == "Accepted"
    assert response.stdout == "3"
    assert response.time_used == pytest.approx(0.012)
    assert response.memory_used == 3200

    query, payload, api_key = received[0]
    assert query == {"base64_encoded": "false", "wait": "true"}
    assert payload == {
        "source_code": "print(sum(map(int, input().split())))",
        "language_id": 71,
        "stdin": "1 2",
        "expected_output": "3",
        "cpu_time_limit": 2.0,
        "memory_limit": 262144,
    }
    assert api_key == "secret"


def test_api_key_header_is_omitted_without_a_key():
    seen_keys = []

    async def handler(request: web.Request) -> web.Response:
        seen_keys.append("X-RapidAPI-Key" in request.headers)
        return web.json_response({"status": {"id": 4, "description": "Wrong Answer"}, "stdout": "4"})

    async def check(judge):
        return await judge.execute(_request())

    response = _run_against(handler, check, api_key="", timeout=5)

    assert not response.passed
    assert response.verdict_id == 4
    assert seen_keys == [False]


def test_compile_output_is_reported_as_error_text():
    async def handler(request: web.Request) -> web.Response:
        return web.json_response({
            "status": {"id": 6, "description": "Compilation Error"},
            "stdout": None,
            "compile_output": "main.cpp:1: error: expected ';'",
        })

    async def check(judge):
        return await judge.execute(_request(language_id=54))

    response = _run_against(handler, check, timeout=5)

    assert response.stdout == ""
    assert response.error_text == "main.cpp:1: error: expected ';'"


@pytest.mark.parametrize(
    "make_response",
    [
        lambda: web.Response(status=500, text="internal error"),
        lambda: web.Response(text="<html>bad gateway</html>", content_type="text/html"),
        lambda: web.json_response({"stdout": "3"}),
        lambda: web.json_response(["not", "an", "object"]),
        lambda: web.json_response({"status": {"id": 3}, "time": "fast"}),
    ],
)
def test_unusable_responses_raise_transport_errors(make_response):
    async def handler(request: web.Request) -> web.Response:
        return make_response()

    async def check(judge):
        with pytest.raises(EvaluationTransportError) as info:
            await judge.execute(_request())
        return info.value

    error = _run_against(handler, check, timeout=5)
    assert not error.timed_out


def test_slow_judge_times_out():
    async def handler(request: web.Request) -> web.Response:
        await asyncio.sleep(1)
        return web.json_response({"status": {"id": 3, "description": "Accepted"}})

    async def check(judge):
        with pytest.raises(EvaluationTransportError) as info:
            await judge.execute(_request())
        return info.value

    error = _run_against(handler, check, timeout=0.1)
    assert error.timed_out


def test_unreachable_judge_raises_transport_error():
    async def main():
        async with JudgeClient("http://127.0.0.1:1", timeout=2) as judge:
            with pytest.raises(EvaluationTransportError) as info:
                await judge.execute(_request())
            return info.value

    error = asyncio.run(main())
    assert not error.timed_out


@pytest.mark.parametrize(
    "language,expected",
    [("javascript", 63), ("python", 71), ("java", 62), ("cpp", 54), ("c", 50), (" Python ", 71)],
)
def test_language_ids(language, expected):
    assert language_id_for(language) == expected


@pytest.mark.parametrize("language", ["cobol", "", "c++"])
def test_unknown_language_is_rejected(language):
    with pytest.raises(UnsupportedLanguage):
        language_id_for(language)


@pytest.mark.parametrize(
    "status_id,kind",
    [
        (3, None),
        (4, FailureKind.WRONG_ANSWER),
        (5, FailureKind.TIME_LIMIT),
        (6, FailureKind.COMPILATION),
        (7, FailureKind.RUNTIME),
        (12, FailureKind.RUNTIME),
        (13, FailureKind.JUDGE_ERROR),
        (1, FailureKind.JUDGE_ERROR),
    ],
)
def test_classify_status(status_id, kind):
    assert classify_status(status_id) == kind
