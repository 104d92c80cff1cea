"""
Shell command adapter — run one provisioning command.

This is the SINGLE PLACE where provisioning commands are spawned
(``subprocess.run`` when capturing, ``Popen`` when streaming). Sudo
handling, env overrides, timeouts and output capture are all
centralised here.

Sudo rules:
    - Already root → no prefix, env passed through the process env
    - Otherwise → ``sudo [VAR=value ...] cmd`` so env survives sudo
    - With a password → ``sudo -S -k``, password piped on stdin only
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import threading
import time
from collections import deque
from pathlib import Path

from rsprovision.adapters.base import Adapter, ExecutionContext
from rsprovision.core.models.action import Receipt

logger = logging.getLogger(__name__)

# Keep only the tail of captured output in receipts
_OUTPUT_TAIL = 4000
# Lines remembered from a streamed command
_STREAM_TAIL_LINES = 60


def is_root() -> bool:
    """Whether the current process runs as uid 0."""
    return os.geteuid() == 0


def build_argv(
    command: list[str],
    *,
    needs_sudo: bool = False,
    env: dict[str, str] | None = None,
    sudo_password: str = "",
    as_root: bool | None = None,
) -> list[str]:
    """Build the final argv for a step, applying the sudo rules.

    Args:
        command: The bare command, e.g. ``["make", "install"]``.
        needs_sudo: Whether the step requires root.
        env: Step-level environment variables.
        sudo_password: If set, use ``sudo -S -k`` (password on stdin).
        as_root: Override root detection (tests).

    Returns:
        The argv to hand to ``subprocess.run``.
    """
    if as_root is None:
        as_root = is_root()

    if not needs_sudo or as_root:
        return list(command)

    argv = ["sudo"]
    if sudo_password:
        argv += ["-S", "-k"]
    argv += [f"{k}={v}" for k, v in (env or {}).items()]
    return argv + list(command)


def _tail(text: str | None) -> str:
    if not text:
        return ""
    return text[-_OUTPUT_TAIL:].strip()


def _stream(
    argv: list[str],
    *,
    cwd: str,
    env: dict[str, str],
    stdin_data: str | None,
    timeout: int,
) -> tuple[int, str]:
    """Run argv with merged stdout/stderr echoed live to the terminal.

    The last lines are kept so a failing step can still be analysed.

    Returns:
        (return code, tail of the combined output).

    Raises:
        subprocess.TimeoutExpired: The process outlived ``timeout``.
    """
    proc = subprocess.Popen(
        argv,
        cwd=cwd,
        env=env,
        stdin=subprocess.PIPE if stdin_data is not None else None,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        bufsize=1,
    )
    output_tail: deque[str] = deque(maxlen=_STREAM_TAIL_LINES)

    def _pump() -> None:
        assert proc.stdout is not None
        for line in proc.stdout:
            sys.stdout.write(line)
            sys.stdout.flush()
            output_tail.append(line.rstrip())

    reader = threading.Thread(target=_pump, daemon=True)
    reader.start()

    if stdin_data is not None and proc.stdin is not None:
        try:
            proc.stdin.write(stdin_data)
        except BrokenPipeError:
            pass
        finally:
            proc.stdin.close()

    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()
        reader.join(timeout=5)
        raise

    reader.join()
    return proc.returncode, _tail("\n".join(output_tail))


class ShellCommandAdapter(Adapter):
    """Execute a provisioning command and capture (or stream) its output.

    Action params:
        command (list[str]): The argv to execute.
        needs_sudo (bool): Run as root via sudo (default: False).
        env (dict): Extra environment variables.
        cwd (str): Working directory (default: context.base_dir).
        timeout (int): Timeout in seconds (default: 300).
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        command = context.action.params.get("command")
        if not command:
            return False, "Missing required param: 'command'"
        if not isinstance(command, list):
            return False, "Param 'command' must be an argv list"

        # cwd is checked at execute time: an earlier step may create it
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        params = context.action.params
        command: list[str] = params["command"]
        needs_sudo: bool = params.get("needs_sudo", False)
        step_env: dict[str, str] = params.get("env") or {}
        timeout: int = params.get("timeout", 300)
        cwd = context.working_dir

        if not Path(cwd).is_dir():
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Working directory does not exist: {cwd}",
                metadata={"command": command},
            )

        as_root = is_root()
        argv = build_argv(
            command,
            needs_sudo=needs_sudo,
            env=step_env,
            sudo_password=context.sudo_password,
            as_root=as_root,
        )

        # Env goes through the process environment unless sudo strips it
        env = os.environ.copy()
        if step_env and (as_root or not needs_sudo):
            env.update(step_env)

        stdin_data = (
            context.sudo_password + "\n"
            if needs_sudo and context.sudo_password and not as_root
            else None
        )

        logger.debug("Executing: %s (cwd=%s)", " ".join(command), cwd)
        start = time.monotonic()

        try:
            if context.stream_output:
                # stderr is merged into stdout, so the tail carries both
                returncode, stdout = _stream(
                    argv, cwd=cwd, env=env, stdin_data=stdin_data, timeout=timeout
                )
                stderr = ""
            else:
                result = subprocess.run(
                    argv,
                    cwd=cwd,
                    env=env,
                    timeout=timeout,
                    input=stdin_data,
                    capture_output=True,
                    text=True,
                )
                returncode = result.returncode
                stdout = _tail(result.stdout)
                stderr = _tail(result.stderr)
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command timed out after {timeout}s",
                metadata={"command": command, "timeout": timeout},
            )
        except FileNotFoundError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command not found: {e.filename or command[0]}",
                return_code=127,
                metadata={"command": command},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command execution error: {e}",
                metadata={"command": command},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)

        if returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                output=stdout,
                return_code=0,
                duration_ms=elapsed_ms,
                metadata={"command": command, "stderr": stderr},
            )

        diagnostics = stderr or stdout
        if needs_sudo and context.sudo_password and "incorrect password" in diagnostics.lower():
            error = "sudo rejected the password"
        elif stderr:
            error = stderr
        else:
            error = f"Command exited with code {returncode}"

        return Receipt.failure(
            adapter=self.name,
            action_id=context.action.id,
            error=error,
            return_code=returncode,
            duration_ms=elapsed_ms,
            metadata={"command": command, "stdout": stdout, "stderr": stderr},
        )
