"""Local repository acquisition and deploy-mode detection."""

from __future__ import annotations

import subprocess
from pathlib import Path

from scripts.nginx_deploy.context import DeployContext, DeployError, DeployMode

COMPOSE_FILE = "docker-compose.yml"
DOCKERFILE = "Dockerfile"

# Checked in this order; the first file present wins.
DEPLOY_MODE_MARKERS: tuple[tuple[str, DeployMode], ...] = (
    (COMPOSE_FILE, DeployMode.COMPOSE),
    (DOCKERFILE, DeployMode.DOCKERFILE),
)


def build_authenticated_clone_url(*, git_url: str, token: str) -> str:
    rest = git_url.strip()
    if rest.startswith("https://"):
        rest = rest[len("https://"):]
    return f"https://{token}@{rest}"


def build_git_clone_cmd(*, clone_url: str) -> list[str]:
    return ["git", "clone", clone_url]


def build_git_pull_cmd() -> list[str]:
    return ["git", "pull"]


def build_git_checkout_cmd(*, branch: str) -> list[str]:
    return ["git", "checkout", branch]


def acquire_repository(ctx: DeployContext, *, log=None) -> Path:
    """Clone the repo into the work dir, or pull if it is already there.

    Then check out the requested branch. Returns the repo directory; the
    process working directory is never changed.
    """
    params = ctx.params
    repo_dir = ctx.work_dir / params.repo_name

    if repo_dir.is_dir():
        if log:
            log.info("Repository already exists. Pulling latest changes...")
        _run_git(ctx, build_git_pull_cmd(), cwd=repo_dir, failure="Failed to pull latest changes.")
    else:
        if log:
            log.info("Cloning repository...")
        clone_url = build_authenticated_clone_url(git_url=params.git_url, token=params.token)
        _run_git(ctx, build_git_clone_cmd(clone_url=clone_url), cwd=ctx.work_dir, failure="Failed to clone repository.")
        if not repo_dir.is_dir():
            raise DeployError(f"Clone finished but {repo_dir} does not exist.")

    _run_git(
        ctx,
        build_git_checkout_cmd(branch=params.branch),
        cwd=repo_dir,
        failure=f"Failed to switch to branch: {params.branch}",
    )
    ctx.repo_dir = repo_dir
    return repo_dir


def _run_git(ctx: DeployContext, cmd: list[str], *, cwd: Path, failure: str) -> None:
    try:
        ctx.runner(cmd, cwd=cwd)
    except (subprocess.CalledProcessError, OSError) as exc:
        raise DeployError(failure) from exc


def detect_deploy_mode(repo_dir: Path) -> DeployMode:
    for marker, mode in DEPLOY_MODE_MARKERS:
        if (repo_dir / marker).is_file():
            return mode
    raise DeployError(f"No {DOCKERFILE} or {COMPOSE_FILE} found in repository.")
