"""SSH / rsync command builders and typed remote batch execution.

Security note: this module shells out to `ssh` and `rsync`.
"""

from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path

from scripts.nginx_deploy.commands import CommandResult
from scripts.nginx_deploy.context import DeployContext, DeployError

SSH_CONNECT_TIMEOUT_SECONDS = 10
SSH_CONNECTIVITY_COMMAND = "echo Connected"
RSYNC_EXCLUDES: tuple[str, ...] = (".git",)


def build_ssh_cmd(*, host: str, key_path: Path, remote_command: str, options: list[str] | None = None) -> list[str]:
    cmd = ["ssh", "-i", str(key_path)]
    for option in options or []:
        cmd.extend(["-o", option])
    cmd.extend([host, remote_command])
    return cmd


def build_ssh_connectivity_cmd(
    *, host: str, key_path: Path, timeout: int = SSH_CONNECT_TIMEOUT_SECONDS
) -> list[str]:
    return build_ssh_cmd(
        host=host,
        key_path=key_path,
        remote_command=SSH_CONNECTIVITY_COMMAND,
        options=["BatchMode=yes", f"ConnectTimeout={timeout}"],
    )


def build_ssh_script_cmd(*, host: str, key_path: Path) -> list[str]:
    # The script body is fed on stdin.
    return build_ssh_cmd(host=host, key_path=key_path, remote_command="bash -s")


def build_rsync_cmd(
    *,
    host: str,
    key_path: Path,
    remote_dir: str,
    source: str = "./",
    excludes: tuple[str, ...] = RSYNC_EXCLUDES,
) -> list[str]:
    cmd = ["rsync", "-avz", "-e", f"ssh -i {shlex.quote(str(key_path))}"]
    for pattern in excludes:
        cmd.extend(["--exclude", pattern])
    cmd.extend([source, f"{host}:{remote_dir}"])
    return cmd


@dataclass(frozen=True)
class RemoteBatch:
    """A bash script to run on the target via `ssh ... bash -s`.

    `tolerate_failure` keeps a non-zero exit from aborting the pipeline; the
    result is still returned so the caller can report it.
    """

    name: str
    script: str
    tolerate_failure: bool = False


def run_remote_batch(ctx: DeployContext, batch: RemoteBatch, *, failure: str | None = None) -> CommandResult:
    params = ctx.params
    cmd = build_ssh_script_cmd(host=params.ssh_target, key_path=params.ssh_key)
    try:
        result = ctx.runner(cmd, input_text=batch.script, check=not batch.tolerate_failure)
    except subprocess.CalledProcessError as exc:
        raise DeployError(failure or f"Remote step '{batch.name}' failed (exit code {exc.returncode}).") from exc
    except OSError as exc:
        raise DeployError(f"Unable to run ssh for remote step '{batch.name}': {exc}") from exc
    return result


def check_connectivity(ctx: DeployContext) -> CommandResult:
    params = ctx.params
    cmd = build_ssh_connectivity_cmd(host=params.ssh_target, key_path=params.ssh_key)
    try:
        return ctx.runner(cmd)
    except (subprocess.CalledProcessError, OSError) as exc:
        raise DeployError("Unable to connect to remote server.") from exc


def sync_files(ctx: DeployContext) -> CommandResult:
    params = ctx.params
    cmd = build_rsync_cmd(host=params.ssh_target, key_path=params.ssh_key, remote_dir=params.remote_dir)
    try:
        return ctx.runner(cmd, cwd=ctx.require_repo_dir())
    except (subprocess.CalledProcessError, OSError) as exc:
        raise DeployError("Failed to transfer project files to remote server.") from exc
