"""Run external commands, streaming their output into the deploy log."""

from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path

from scripts.nginx_deploy.deploy_logging import logger


@dataclass(frozen=True)
class CommandResult:
    args: list[str]
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def run_command(
    cmd: list[str],
    *,
    input_text: str | None = None,
    cwd: Path | None = None,
    check: bool = True,
) -> CommandResult:
    """Run `cmd`, echoing each output line to the log as it arrives.

    stderr is merged into stdout so the log keeps the original ordering. When
    `input_text` is given it is written to stdin (used for `ssh ... bash -s`).
    Raises `subprocess.CalledProcessError` on a non-zero exit when `check` is set.
    """
    logger.info("$ %s", shlex.join(cmd))
    proc = subprocess.Popen(
        cmd,
        cwd=str(cwd) if cwd else None,
        stdin=subprocess.PIPE if input_text is not None else None,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
    )

    if input_text is not None:
        proc.stdin.write(input_text)
        proc.stdin.close()

    lines: list[str] = []
    for line in proc.stdout:
        line = line.rstrip("\n")
        lines.append(line)
        logger.info("    %s", line)
    proc.stdout.close()
    returncode = proc.wait()

    output = "\n".join(lines)
    if check and returncode != 0:
        raise subprocess.CalledProcessError(returncode, cmd, output=output)
    return CommandResult(args=list(cmd), returncode=returncode, output=output)
