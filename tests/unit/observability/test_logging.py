"""
playground-sandbox: unit tests for observability logging

Purpose
- Validate structured JSON logging with redaction, correlation metadata, and queue-backed delivery.
- Guarantee that submitted source text never reaches a log sink.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest

from playground_sandbox.observability.logging import (
    LoggingConfig,
    correlation_scope,
    logging_config_from,
    setup_structured_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _logger_name() -> str:
    return f"playground_sandbox.tests.logging.{uuid4().hex}"


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_json_logging_redacts_secrets_and_source(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(session_id="session-redaction", log_dir=tmp_path, logger_name=logger_name)
    )
    logger = logging.getLogger(logger_name)

    with correlation_scope(request_id="req-1", operation="execute"):
        logger.info(
            "pulling image with token=tok-FAKE",
            extra={
                "code": 'fn main() { println!("private"); }',
                "nested": {"password": "hunter2", "safe": "ok"},
                "argv": ["docker", "run", "--net", "none"],
            },
        )
    shutdown_logging(handle)

    assert handle.log_path == tmp_path / "sandbox.jsonl"
    (event,) = _read_json_lines(handle.log_path)
    assert event["session_id"] == "session-redaction"
    assert event["request_id"] == "req-1"
    assert event["operation"] == "execute"
    assert event["level"] == "INFO"
    assert "tok-FAKE" not in event["message"]
    fields = event["fields"]
    assert isinstance(fields, dict)
    assert fields["code"] == "***REDACTED***"
    assert fields["nested"] == {"password": "***REDACTED***", "safe": "ok"}
    assert fields["argv"] == ["docker", "run", "--net", "none"]
    assert "private" not in handle.log_path.read_text(encoding="utf-8")


def test_source_is_masked_even_when_secret_redaction_is_off(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            session_id="session-plain",
            log_dir=tmp_path,
            logger_name=logger_name,
            redact_secrets=False,
        )
    )
    logging.getLogger(logger_name).info(
        "token=visible", extra={"source": "fn main() {}", "password": "shown"}
    )
    shutdown_logging(handle)

    (event,) = _read_json_lines(handle.log_path)
    assert event["message"] == "token=visible"
    assert event["fields"] == {"source": "***REDACTED***", "password": "shown"}


def test_operation_passed_via_extra_is_promoted_to_correlation(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(session_id="session-extra", log_dir=tmp_path, logger_name=logger_name)
    )
    logging.getLogger(logger_name).info(
        "sandbox_invocation_finished", extra={"operation": "lint", "returncode": 0}
    )
    shutdown_logging(handle)

    (event,) = _read_json_lines(handle.log_path)
    assert event["operation"] == "lint"
    assert event["fields"] == {"returncode": 0}


def test_level_filtering_and_exception_capture(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            session_id="session-level",
            log_dir=tmp_path,
            logger_name=logger_name,
            level="WARNING",
        )
    )
    logger = logging.getLogger(logger_name)
    logger.info("dropped")
    try:
        raise RuntimeError("engine exploded")
    except RuntimeError:
        logger.exception("invocation_failed")
    shutdown_logging(handle)

    events = _read_json_lines(handle.log_path)
    assert [event["level"] for event in events] == ["ERROR"]
    assert events[0]["message"] == "invocation_failed"
    assert "engine exploded" in events[0]["exception"]


def test_multithreaded_logging_is_line_atomic(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(session_id="session-threads", log_dir=tmp_path, logger_name=logger_name)
    )
    logger = logging.getLogger(logger_name)

    def worker(index: int) -> None:
        with correlation_scope(request_id=f"req-{index}"):
            for item in range(25):
                logger.info("tick", extra={"item": item})

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    shutdown_logging(handle)

    events = _read_json_lines(handle.log_path)
    assert len(events) == 100 - handle.dropped_records
    assert {event["request_id"] for event in events} <= {f"req-{index}" for index in range(4)}


def test_setup_replaces_previous_handle_and_restores_propagation(tmp_path: Path) -> None:
    logger_name = _logger_name()
    first = setup_structured_logging(
        LoggingConfig(session_id="first", log_dir=tmp_path / "a", logger_name=logger_name)
    )
    second = setup_structured_logging(
        LoggingConfig(session_id="second", log_dir=tmp_path / "b", logger_name=logger_name)
    )

    assert first.is_shutdown
    assert not second.is_shutdown
    assert len(logging.getLogger(logger_name).handlers) == 1

    shutdown_logging()

    assert second.is_shutdown
    assert logging.getLogger(logger_name).handlers == []
    assert logging.getLogger(logger_name).propagate is True


def test_log_dir_none_disables_file_sink(tmp_path: Path) -> None:
    handle = setup_structured_logging(
        LoggingConfig(session_id="no-file", log_dir=None, logger_name=_logger_name())
    )

    assert handle.log_path is None
    assert list(tmp_path.iterdir()) == []


def test_correlation_scope_nests_and_unbinds(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(session_id="session-scope", log_dir=tmp_path, logger_name=logger_name)
    )
    logger = logging.getLogger(logger_name)

    with correlation_scope(request_id="outer", operation="compile"):
        with correlation_scope(operation=None):
            logger.info("inner")
        logger.info("outer")
    logger.info("unscoped")
    shutdown_logging(handle)

    inner, outer, unscoped = _read_json_lines(handle.log_path)
    assert inner["request_id"] == "outer"
    assert "operation" not in inner
    assert (outer["request_id"], outer["operation"]) == ("outer", "compile")
    assert "request_id" not in unscoped
    assert unscoped["session_id"] == "session-scope"


def test_correlation_scope_rejects_blank_values() -> None:
    with pytest.raises(ValueError), correlation_scope(request_id="   "):
        pass


@pytest.mark.parametrize(
    "overrides",
    [
        {"session_id": "  "},
        {"queue_size": 0},
        {"log_filename": "nested/sandbox.jsonl"},
        {"level": "CHATTY"},
    ],
)
def test_invalid_logging_config_is_rejected(tmp_path: Path, overrides: dict[str, object]) -> None:
    fields: dict[str, object] = {"session_id": "s", "log_dir": tmp_path}
    fields.update(overrides)

    with pytest.raises(ValueError):
        setup_structured_logging(LoggingConfig(**fields))  # type: ignore[arg-type]


def test_logging_config_from_observability_section(tmp_path: Path) -> None:
    config = logging_config_from(
        {
            "log_level": "DEBUG",
            "log_dir": str(tmp_path),
            "log_to_console": True,
            "redact_secrets": False,
        },
        session_id="abc",
    )

    assert config.level == "DEBUG"
    assert config.log_dir == str(tmp_path)
    assert config.log_to_console is True
    assert config.redact_secrets is False
    assert logging_config_from({}, session_id="abc", log_dir=tmp_path).log_dir == tmp_path
