"""
Claude CLI integration for milhouse.

Non-interactive phases run ``claude -p --output-format stream-json`` and read
its events line by line. The chat command attaches claude to the terminal.
"""

import logging
import os
import signal
import subprocess
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Iterator, Optional

logger = logging.getLogger(__name__)

# Seconds to wait for a finished process to exit on its own before killing it
EXIT_GRACE_SECONDS = 5


class AgentLaunchError(Exception):
    """The agent subprocess could not be started."""

    def __init__(self, binary: str, message: str):
        self.binary = binary
        super().__init__(f"Failed to start {binary}: {message}")


@dataclass
class ExecuteOptions:
    """One agent invocation."""
    prompt: str
    model: str
    work_dir: Path
    allowed_tools: list[str] = field(default_factory=list)
    context_files: list[Path] = field(default_factory=list)
    system_prompt: Optional[str] = None  # Interactive mode only


def _agent_env() -> dict:
    # Remove ANTHROPIC_API_KEY so Claude uses OAuth credentials instead
    return {k: v for k, v in os.environ.items() if k != "ANTHROPIC_API_KEY"}


def attach_context_files(prompt: str, context_files: list[Path]) -> str:
    """Append @file references for the auxiliary files that exist."""
    refs = []
    for path in context_files:
        if Path(path).exists():
            refs.append(f"@{path}")
        else:
            logger.debug(f"Context file not found, skipping: {path}")
    if not refs:
        return prompt
    return prompt.rstrip() + "\n\nContext files:\n" + "\n".join(refs) + "\n"


class StreamProcess:
    """A running agent process whose stdout is read as stream-json lines."""

    def __init__(self, process: subprocess.Popen, stderr_file: IO):
        self.process = process
        self._stderr_file = stderr_file
        self.killed = False
        self.stderr = ""

    @property
    def lines(self) -> Iterator[str]:
        return iter(self.process.stdout.readline, "")

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    def kill(self) -> None:
        """Kill the agent and anything it spawned. Safe to call repeatedly."""
        if self.process.poll() is not None:
            return
        self.killed = True
        try:
            os.killpg(self.process.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            self.process.kill()

    def close(self) -> None:
        """Reap the process and release its handles."""
        try:
            self.process.wait(timeout=0 if self.killed else EXIT_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            self.kill()
            self.process.wait()
        finally:
            if self.process.stdout:
                self.process.stdout.close()
            self._stderr_file.seek(0)
            self.stderr = self._stderr_file.read()
            self._stderr_file.close()


class ClaudeAgent:
    def __init__(self, binary: str = "claude"):
        self.binary = binary

    def build_command(self, options: ExecuteOptions) -> list[str]:
        cmd = [
            self.binary,
            "-p",
            "--output-format", "stream-json",
            "--verbose",  # Required for stream-json with -p
            "--model", options.model,
        ]
        if options.allowed_tools:
            cmd.extend(["--allowedTools", ",".join(options.allowed_tools)])
        return cmd

    def build_interactive_command(self, options: ExecuteOptions) -> list[str]:
        cmd = [self.binary, "--model", options.model]
        if options.allowed_tools:
            cmd.extend(["--allowedTools", ",".join(options.allowed_tools)])
        system_prompt = attach_context_files(options.system_prompt or "", options.context_files)
        if system_prompt.strip():
            cmd.extend(["--append-system-prompt", system_prompt])
        return cmd

    @contextmanager
    def open_stream(self, options: ExecuteOptions) -> Iterator[StreamProcess]:
        """Start claude and yield the running process.

        The prompt is passed via stdin to avoid CLI argument length limits.
        The process is killed and reaped when the block exits, however it exits.

        Raises:
            AgentLaunchError: If the binary is missing or not executable
        """
        cmd = self.build_command(options)
        prompt = attach_context_files(options.prompt, options.context_files)
        stderr_file = tempfile.TemporaryFile(mode="w+")

        try:
            process = subprocess.Popen(
                cmd,
                cwd=str(options.work_dir),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=stderr_file,
                text=True,
                encoding="utf-8",
                errors="replace",  # Undecodable bytes become U+FFFD; the line is then skipped as malformed
                env=_agent_env(),
                start_new_session=True,  # Own process group so kill() reaches tool subprocesses
            )
        except OSError as e:
            stderr_file.close()
            raise AgentLaunchError(self.binary, str(e)) from e

        stream = StreamProcess(process, stderr_file)
        try:
            try:
                process.stdin.write(prompt)
            except BrokenPipeError:
                logger.warning(f"{self.binary} exited before reading the prompt")
            finally:
                try:
                    process.stdin.close()
                except BrokenPipeError:
                    pass
            yield stream
        except BaseException:
            stream.kill()
            raise
        finally:
            if stream.killed or process.poll() is None:
                logger.debug(f"[STREAM] Cleaning up {self.binary} (pid {process.pid})")
            stream.close()
            if process.returncode not in (0, None) and not stream.killed:
                logger.warning(
                    f"{self.binary} exited with code {process.returncode}: "
                    f"{stream.stderr.strip()[-500:]}"
                )

    def execute_interactive(self, options: ExecuteOptions) -> int:
        """Run claude attached to the terminal. Returns its exit code.

        Raises:
            AgentLaunchError: If the binary is missing or not executable
        """
        cmd = self.build_interactive_command(options)
        try:
            result = subprocess.run(cmd, cwd=str(options.work_dir), env=_agent_env())
        except OSError as e:
            raise AgentLaunchError(self.binary, str(e)) from e
        return result.returncode
