"""Tests for structlog configuration and run context."""

import asyncio
import io
import json
import logging
from collections.abc import Iterator

import pytest
import structlog

from property_dedupe.logging import configure_logging, run_context


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


def _lines(stream: io.StringIO) -> list[dict[str, object]]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


class TestConfigureLogging:
    def test_json_output(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)

        structlog.get_logger("test").info("pair_dropped", pair="a|b", basic_score=12.5)

        [entry] = _lines(stream)
        assert entry["event"] == "pair_dropped"
        assert entry["pair"] == "a|b"
        assert entry["level"] == "info"
        assert "timestamp" in entry

    def test_level_filter(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, level=logging.WARNING, stream=stream)

        log = structlog.get_logger("test")
        log.debug("pair_forwarded")
        log.warning("deep_analysis_fallback", reason="timeout")

        assert [e["event"] for e in _lines(stream)] == ["deep_analysis_fallback"]

    def test_console_output(self) -> None:
        stream = io.StringIO()
        configure_logging(stream=stream)

        structlog.get_logger("test").info("duplicate_detection_started", record_count=3)

        assert "duplicate_detection_started" in stream.getvalue()
        assert "record_count=3" in stream.getvalue()


class TestRunContext:
    def test_events_tagged_with_run_id(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)
        log = structlog.get_logger("test")

        with run_context("run-1", owner_id="owner-9") as run_id:
            log.info("inside")
        log.info("outside")

        inside, outside = _lines(stream)
        assert run_id == "run-1"
        assert inside["run_id"] == "run-1"
        assert inside["owner_id"] == "owner-9"
        assert "run_id" not in outside

    def test_generates_run_id(self) -> None:
        with run_context() as first, run_context() as second:
            assert first
            assert first != second

    async def test_concurrent_runs_isolated(self) -> None:
        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)
        log = structlog.get_logger("test")

        async def _run(name: str) -> None:
            with run_context(name):
                await asyncio.sleep(0)
                log.info("tick", name=name)

        await asyncio.gather(_run("run-a"), _run("run-b"))

        for entry in _lines(stream):
            assert entry["run_id"] == entry["name"]
