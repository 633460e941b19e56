"""Deployment parameters and the context object threaded through every stage."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional


class DeployMode(str, Enum):
    COMPOSE = "compose"
    DOCKERFILE = "dockerfile"


class DeployError(RuntimeError):
    """Fatal pipeline failure; the message is what the operator sees."""


class DeployInterrupted(DeployError):
    pass


def derive_repo_name(git_url: str) -> str:
    """Basename of the repository URL with a trailing `.git` stripped."""
    name = git_url.strip().rstrip("/").rsplit("/", 1)[-1]
    # scp-style URLs (git@host:repo.git) have no slash before the name
    name = name.rsplit(":", 1)[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name


@dataclass(frozen=True)
class DeployParams:
    git_url: str
    token: str
    branch: str
    ssh_user: str
    server_ip: str
    ssh_key: Path
    app_port: str

    @property
    def repo_name(self) -> str:
        return derive_repo_name(self.git_url)

    @property
    def ssh_target(self) -> str:
        return f"{self.ssh_user}@{self.server_ip}"

    @property
    def remote_dir(self) -> str:
        return f"/home/{self.ssh_user}/{self.repo_name}"


@dataclass
class DeployContext:
    """Mutable run state handed from stage to stage.

    `runner` executes one argv (see `commands.run_command`); tests swap it for a
    recorder. `repo_dir` and `deploy_mode` are filled in by the acquire and
    detect stages.
    """

    params: DeployParams
    work_dir: Path
    log_file: Path
    runner: Callable[..., object]
    repo_dir: Optional[Path] = None
    deploy_mode: Optional[DeployMode] = None

    def require_repo_dir(self) -> Path:
        if self.repo_dir is None:
            raise DeployError("Repository has not been acquired yet.")
        return self.repo_dir

    def require_deploy_mode(self) -> DeployMode:
        if self.deploy_mode is None:
            raise DeployError("Deployment mode has not been detected yet.")
        return self.deploy_mode
