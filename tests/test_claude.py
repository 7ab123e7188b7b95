"""Tests for milhouse.agents.claude (command line and subprocess handling)."""

import os
import stat
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from milhouse.agents.claude import (
    AgentLaunchError,
    ClaudeAgent,
    ExecuteOptions,
    _agent_env,
    attach_context_files,
)
from milhouse.agents.signals import SignalKind
from milhouse.agents.stream import CancelToken, StreamHandler, parse_stream, run_invocation
from milhouse.agents.tokens import TokenBudget
from milhouse.lib.display import Reporter

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses a shell script as the agent binary")


class ExplodingReporter(Reporter):
    def agent_text(self, text, tool_count):
        raise RuntimeError("display failed")


def _options(tmp_path, **kwargs):
    return ExecuteOptions(prompt="hello", model="opus", work_dir=Path(tmp_path), **kwargs)


def _fake_binary(tmp_path, body):
    script = tmp_path / "fake-claude"
    script.write_text("#!/bin/sh\n" + body)
    script.chmod(script.stat().st_mode | stat.S_IEXEC)
    return str(script)


class TestCommandLine:

    def test_stream_command(self, tmp_path):
        cmd = ClaudeAgent("claude").build_command(_options(tmp_path, allowed_tools=["Read", "Bash"]))
        assert cmd == [
            "claude", "-p", "--output-format", "stream-json", "--verbose",
            "--model", "opus", "--allowedTools", "Read,Bash",
        ]

    def test_interactive_command(self, tmp_path):
        cmd = ClaudeAgent("claude").build_interactive_command(_options(tmp_path, system_prompt="be helpful"))
        assert cmd[:3] == ["claude", "--model", "opus"]
        assert cmd[-2] == "--append-system-prompt"
        assert cmd[-1].startswith("be helpful")

    def test_attach_context_files_skips_missing(self, tmp_path):
        present = tmp_path / "prd.json"
        present.write_text("{}")
        prompt = attach_context_files("Do work", [present, tmp_path / "missing.md"])
        assert f"@{present}" in prompt
        assert "missing.md" not in prompt

    def test_attach_nothing(self):
        assert attach_context_files("Do work", []) == "Do work"

    def test_api_key_removed_from_env(self):
        with patch.dict(os.environ, {"ANTHROPIC_API_KEY": "sk-test", "KEEP_ME": "1"}):
            env = _agent_env()
        assert "ANTHROPIC_API_KEY" not in env
        assert env["KEEP_ME"] == "1"


@posix_only
class TestOpenStream:
    """Runs a shell script in place of the real CLI."""

    def test_reads_events_and_prompt_via_stdin(self, tmp_path):
        captured = tmp_path / "stdin.txt"
        binary = _fake_binary(tmp_path, (
            f"cat > '{captured}'\n"
            "echo '{\"type\": \"assistant\", \"message\": {\"content\": [{\"type\": \"text\", \"text\": \"ok ###VERIFIED:a###\"}], \"usage\": {\"input_tokens\": 5, \"output_tokens\": 2}}}'\n"
            "echo '{\"type\": \"result\", \"result\": \"done\"}'\n"
        ))

        result = run_invocation(ClaudeAgent(binary), _options(tmp_path), 1000)

        assert [s.kind for s in result.signals] == [SignalKind.VERIFIED]
        assert result.total_tokens == 7
        assert result.exit_code == 0
        assert captured.read_text().startswith("hello")

    def test_terminal_signal_kills_running_process(self, tmp_path):
        binary = _fake_binary(tmp_path, (
            "cat > /dev/null\n"
            "echo '{\"type\": \"assistant\", \"message\": {\"content\": [{\"type\": \"text\", \"text\": \"###PRD_COMPLETE###\"}]}}'\n"
            "sleep 30\n"
        ))

        result = run_invocation(ClaudeAgent(binary), _options(tmp_path), 1000)

        assert result.terminated
        assert result.exit_code is not None
        assert result.exit_code != 0

    def test_undecodable_line_is_skipped(self, tmp_path):
        binary = _fake_binary(tmp_path, (
            "cat > /dev/null\n"
            "printf '\\377\\376 not json\\n'\n"
            "echo '{\"type\": \"assistant\", \"message\": {\"content\": [{\"type\": \"text\", \"text\": \"###PRD_COMPLETE###\"}]}}'\n"
        ))

        result = run_invocation(ClaudeAgent(binary), _options(tmp_path), 1000)

        assert [s.kind for s in result.signals] == [SignalKind.PRD_COMPLETE]

    def test_error_in_read_loop_kills_and_reaps(self, tmp_path):
        """An exception raised while reading still tears the process down."""
        binary = _fake_binary(tmp_path, (
            "cat > /dev/null\n"
            "echo '{\"type\": \"assistant\", \"message\": {\"content\": [{\"type\": \"text\", \"text\": \"thinking\"}]}}'\n"
            "sleep 30\n"
        ))
        opened = []

        with pytest.raises(RuntimeError, match="display failed"):
            with ClaudeAgent(binary).open_stream(_options(tmp_path)) as stream:
                opened.append(stream)
                handler = StreamHandler(TokenBudget(1000), ExplodingReporter())
                parse_stream(stream.lines, handler, CancelToken())

        assert opened[0].killed
        assert opened[0].returncode is not None

    def test_missing_binary(self, tmp_path):
        agent = ClaudeAgent(str(tmp_path / "no-such-binary"))
        with pytest.raises(AgentLaunchError):
            with agent.open_stream(_options(tmp_path)):
                pass
