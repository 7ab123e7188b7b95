"""Shared fixtures: a scaffolded project and a fake agent that replays stream-json."""

import json
from contextlib import contextmanager

import pytest

from milhouse.commands.init import scaffold
from milhouse.lib.config import Config
from milhouse.phases.base import PhaseContext
from milhouse.prd.paths import store_path


def text_event(text, input_tokens=None, output_tokens=None):
    """An assistant event carrying one text block and optional usage."""
    message = {"content": [{"type": "text", "text": text}]}
    if input_tokens is not None or output_tokens is not None:
        message["usage"] = {"input_tokens": input_tokens or 0, "output_tokens": output_tokens or 0}
    return json.dumps({"type": "assistant", "message": message})


def usage_event(input_tokens, output_tokens, cache_read=0):
    return json.dumps({
        "type": "assistant",
        "message": {
            "content": [],
            "usage": {
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "cache_read_input_tokens": cache_read,
            },
        },
    })


def delta_event(text):
    return json.dumps({"type": "content_block_delta", "delta": {"type": "text_delta", "text": text}})


def result_event(text, usage=None):
    event = {"type": "result", "result": text}
    if usage:
        event["usage"] = usage
    return json.dumps(event)


class FakeStream:
    """Stands in for StreamProcess; stops yielding once killed."""

    def __init__(self, lines):
        self._lines = list(lines)
        self.killed = False
        self.kill_count = 0
        self.consumed = 0
        self.returncode = 0

    @property
    def lines(self):
        for line in self._lines:
            if self.killed:
                return
            self.consumed += 1
            yield line + "\n"

    def kill(self):
        self.kill_count += 1
        self.killed = True


class FakeAgent:
    """Replays one canned list of lines per invocation.

    `before_stream`, if set, is called with the ExecuteOptions before any
    output is produced; tests use it to simulate the agent editing files.
    """

    def __init__(self, *outputs, binary="claude"):
        self.binary = binary
        self.outputs = list(outputs)
        self.calls = []
        self.streams = []
        self.closed = 0
        self.before_stream = None

    @contextmanager
    def open_stream(self, options):
        self.calls.append(options)
        if self.before_stream:
            self.before_stream(options)
        stream = FakeStream(self.outputs.pop(0) if self.outputs else [])
        self.streams.append(stream)
        try:
            yield stream
        finally:
            self.closed += 1


def make_record(record_id, priority=1, passes=False, **extra):
    record = {
        "id": record_id,
        "description": f"Requirement {record_id}",
        "acceptanceCriteria": [f"{record_id} works"],
        "priority": priority,
        "passes": passes,
        "notes": "",
    }
    record.update(extra)
    return record


def write_records(base_path, *records):
    store_path(base_path).write_text(json.dumps({"prds": list(records)}, indent=2))


def read_records(base_path):
    return {r["id"]: r for r in json.loads(store_path(base_path).read_text())["prds"]}


@pytest.fixture
def project(tmp_path):
    """A project directory with a freshly scaffolded .milhouse/."""
    scaffold(tmp_path)
    return tmp_path


@pytest.fixture
def agent():
    return FakeAgent()


@pytest.fixture
def ctx(project, agent):
    return PhaseContext(base_path=project, config=Config(), agent=agent)
