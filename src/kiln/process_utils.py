"""Blocking execution of external tools.

Every external action Kiln takes (SCM clients, compilers, the linker,
user hook scripts) goes through run_command so that output capture and
KeyboardInterrupt propagation behave the same everywhere.
"""

import _thread
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Union


@dataclass
class CommandResult:
    """Result of an external command."""

    command: Union[List[str], str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr, stripped."""
        return "\n".join(s for s in (self.stdout.strip(), self.stderr.strip()) if s)


def handle_keyboard_interrupt_properly(ke: KeyboardInterrupt) -> None:
    """Propagate a KeyboardInterrupt to the main thread and re-raise it.

    Compilations may run on worker threads; interrupting the main thread
    makes Ctrl+C stop the whole build instead of a single worker.

    Args:
        ke: The KeyboardInterrupt exception to handle

    Raises:
        KeyboardInterrupt: Always
    """
    _thread.interrupt_main()
    raise ke


def run_command(
    command: Union[List[str], str],
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    shell: bool = False,
) -> CommandResult:
    """Run a command to completion and capture its output.

    Args:
        command: Argument list, or a command line when shell is True
        cwd: Working directory (defaults to the current directory)
        env: Complete environment for the child (defaults to inherited)
        shell: Run the command line through the system shell

    Returns:
        CommandResult; a missing executable is reported as returncode 127
    """
    logging.debug(f"sh: {command} (cwd={cwd or Path.cwd()})")
    try:
        result = subprocess.run(
            command,
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            shell=shell,
            capture_output=True,
            text=True,
            check=False,
        )
    except KeyboardInterrupt as ke:
        handle_keyboard_interrupt_properly(ke)
        raise  # Never reached, but satisfies type checker
    except FileNotFoundError as e:
        return CommandResult(command=command, returncode=127, stdout="", stderr=str(e))

    return CommandResult(
        command=command,
        returncode=result.returncode,
        stdout=result.stdout,
        stderr=result.stderr,
    )
