import os

import pytest

from deploykit.exceptions import CredentialError
from deploykit.prompts import InteractiveInput, NonInteractiveInput, detect_input_source

from conftest import log_text


@pytest.fixture
def pipe():
    read_fd, write_fd = os.pipe()
    reader = os.fdopen(read_fd, "r")
    writer = os.fdopen(write_fd, "w")
    yield reader, writer
    reader.close()
    if not writer.closed:
        writer.close()


def test_non_interactive_returns_defaults(logger):
    inputs = NonInteractiveInput(logger)

    assert inputs.ask("Stage: ", "dev") == "dev"
    assert inputs.confirm("Reinstall?", default=False) is False
    assert inputs.choose("Pick", ["a", "b", "c"], default=3) == 3
    assert "using default value 'dev'" in log_text(logger)


def test_non_interactive_refuses_secrets(logger):
    with pytest.raises(CredentialError):
        NonInteractiveInput(logger).ask_secret("Secret: ")


def test_interactive_reads_answer(logger, pipe):
    reader, writer = pipe
    writer.write("2\n")
    writer.flush()

    inputs = InteractiveInput(logger, stream=reader)

    assert inputs.choose("Pick", ["a", "b", "c"]) == 2


def test_interactive_blank_answer_uses_default(logger, pipe):
    reader, writer = pipe
    writer.write("\n")
    writer.flush()

    assert InteractiveInput(logger, stream=reader).ask("Region: ", "eu-central-1") == "eu-central-1"


def test_interactive_timeout_uses_default(logger, pipe):
    reader, _ = pipe

    assert InteractiveInput(logger, stream=reader).ask("Stage: ", "dev", timeout=1) == "dev"
    assert "Input timeout after 1s, using default: dev" in log_text(logger)


def test_out_of_range_choice_is_invalid(logger, pipe):
    reader, writer = pipe
    writer.write("7\n")
    writer.flush()

    assert InteractiveInput(logger, stream=reader).choose("Pick", ["a", "b"]) == 0


def test_secret_timeout_raises(logger, pipe):
    reader, _ = pipe

    with pytest.raises(CredentialError, match="Timeout"):
        InteractiveInput(logger, stream=reader).ask_secret("Secret: ", timeout=1)


def test_secret_is_not_logged(logger, pipe):
    reader, writer = pipe
    writer.write("hunter2\n")
    writer.flush()

    assert InteractiveInput(logger, stream=reader).ask_secret("Secret: ") == "hunter2"
    assert "hunter2" not in log_text(logger)


def test_detect_input_source_honors_flag(logger):
    assert not detect_input_source(logger, non_interactive=True).interactive


def test_pasted_answers_are_consumed_one_per_prompt(logger, pipe):
    reader, writer = pipe
    writer.write("3\nstaging\n")
    writer.flush()

    inputs = InteractiveInput(logger, stream=reader)

    assert inputs.choose("Pick", ["a", "b", "c"], timeout=1) == 3
    assert inputs.ask("Stage: ", "dev", timeout=1) == "staging"
