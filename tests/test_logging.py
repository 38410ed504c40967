import json
import logging

import pytest
import structlog

from key_directory.config import RetryPolicy, RotationSteps
from key_directory.logging import bound_context, component_for, configure_logging
from key_directory.services.rotation import RotationWorkflow
from key_directory.storage import MemoryStepJournal

from helpers import no_sleep


@pytest.fixture
def json_logs(capsys):
    def configure(level: str) -> None:
        configure_logging(level)
        # cached loggers would outlive this test's configuration
        structlog.configure(cache_logger_on_first_use=False)

    def lines():
        return [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.startswith("{")]

    yield configure, lines
    structlog.reset_defaults()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


def test_configure_logging_emits_json_lines(json_logs):
    configure, lines = json_logs
    configure("info")
    structlog.get_logger("key_directory.services.rotation").info("rotation.step.completed", step="sweep")
    payload = lines()[-1]
    assert payload["msg"] == "rotation.step.completed"
    assert payload["level"] == "info"
    assert payload["component"] == "services.rotation"
    assert payload["step"] == "sweep"
    assert "ts" in payload


def test_configure_logging_filters_below_level(json_logs):
    configure, lines = json_logs
    configure("error")
    structlog.get_logger("key_directory.services.key_manager").info("noise")
    assert lines() == []


@pytest.mark.parametrize(
    "name,expected",
    [
        ("key_directory.storage.filesystem", "storage.filesystem"),
        ("key_directory", "key_directory"),
        (None, "key_directory"),
        ("uvicorn.error", "uvicorn.error"),
    ],
)
def test_component_is_derived_from_logger_name(name, expected):
    assert component_for(name) == expected


def test_bound_context_rejects_unknown_keys():
    with pytest.raises(ValueError):
        bound_context(token="secret")


def test_bound_context_is_merged_into_lines(json_logs):
    configure, lines = json_logs
    configure("info")
    with bound_context(run_id="r-1"):
        structlog.get_logger("key_directory.services.retry").warning("retry.scheduled", step="sweep")
    structlog.get_logger("key_directory.services.retry").warning("retry.scheduled", step="sweep")
    inside, outside = lines()[-2:]
    assert inside["run_id"] == "r-1"
    assert "run_id" not in outside


@pytest.mark.asyncio
async def test_rotation_run_tags_mint_lines_with_run_and_purpose(json_logs, minter, lifecycle, clock):
    configure, lines = json_logs
    configure("info")
    fast = RetryPolicy(limit=0, delay_seconds=0, timeout_seconds=5)
    workflow = RotationWorkflow(
        minter,
        lifecycle,
        MemoryStepJournal(clock=clock),
        RotationSteps(mint_encryption_key=fast, mint_signature_key=fast, sweep=fast),
        sleep=no_sleep,
    )
    await workflow.run("run-42")

    minted = [line for line in lines() if line["msg"] == "mint.completed"]
    assert {line["purpose"] for line in minted} == {"encryption", "signature"}
    assert all(line["run_id"] == "run-42" for line in minted)
    assert all(line["component"] == "services.key_manager" for line in minted)
