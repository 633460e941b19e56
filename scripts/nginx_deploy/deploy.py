#!/usr/bin/env python3
"""Deploy a containerized app to an Ubuntu server behind an Nginx reverse proxy.

Pipeline (strictly sequential, any untolerated failure exits with status 1):
clone/pull the repo -> detect compose vs Dockerfile -> check SSH -> install
Docker/Nginx -> rsync files -> build/run containers -> write the Nginx site ->
validate.

Parameters come from CLI flags, `DEPLOY_*` env vars, `.env.deploy` /
`.env.deploy.secrets`, or interactive prompts, in that order.

Security note: this script shells out to `git`, `ssh` and `rsync`.
"""

from __future__ import annotations

import argparse
import getpass
import signal
from datetime import datetime
from pathlib import Path
from typing import Callable, Mapping

from scripts.nginx_deploy.commands import run_command
from scripts.nginx_deploy.context import DeployContext, DeployError, DeployInterrupted, DeployMode
from scripts.nginx_deploy.deploy_logging import StepLog, build_log_path, configure_logging, shutdown_logging
from scripts.nginx_deploy.docker_compose_helpers import (
    find_services_publishing_port,
    get_services,
    load_docker_compose_config,
)
from scripts.nginx_deploy.git_helpers import acquire_repository, detect_deploy_mode
from scripts.nginx_deploy.http_check import build_public_url, check_url
from scripts.nginx_deploy.params_schema import collect_parameters, process_env, resolve_presets
from scripts.nginx_deploy.remote_scripts import (
    deploy_batch,
    nginx_batch,
    nginx_config_path,
    prepare_environment_batch,
    validation_batch,
)
from scripts.nginx_deploy.ssh_helpers import check_connectivity, run_remote_batch, sync_files

INTERRUPTED_MESSAGE = "Script interrupted unexpectedly."


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Deploy a Dockerized app to a remote server behind Nginx")
    parser.add_argument("--repo-url", default=None, help="Git repository URL (env: DEPLOY_GIT_URL)")
    parser.add_argument("--branch", default=None, help="Branch to deploy, default 'main' (env: DEPLOY_GIT_BRANCH)")
    parser.add_argument("--ssh-user", default=None, help="Remote SSH username (env: DEPLOY_SSH_USER)")
    parser.add_argument("--server-ip", default=None, help="Remote server address (env: DEPLOY_SERVER_IP)")
    parser.add_argument("--ssh-key", default=None, help="SSH private key path (env: DEPLOY_SSH_KEY)")
    parser.add_argument("--app-port", default=None, help="Application container port (env: DEPLOY_APP_PORT)")
    parser.add_argument(
        "--work-dir",
        default=".",
        help="Directory the repository is cloned into (default: current directory)",
    )
    parser.add_argument(
        "--log-dir",
        default=".",
        help="Directory for the deploy_<timestamp>.log file (default: current directory)",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Dotenv file with DEPLOY_* presets (default: <work-dir>/.env.deploy)",
    )
    parser.add_argument(
        "--secrets-file",
        default=None,
        help="Dotenv file holding DEPLOY_GIT_TOKEN (default: <work-dir>/.env.deploy.secrets)",
    )
    parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Never prompt; a parameter missing from flags/env/dotenv is fatal",
    )
    parser.add_argument(
        "--skip-external-check",
        action="store_true",
        help="Skip the HTTP check of http://<server> from this machine",
    )
    return parser


def _raise_interrupted(signum, frame) -> None:
    raise DeployInterrupted(INTERRUPTED_MESSAGE)


def summarize_compose(ctx: DeployContext, log: StepLog) -> None:
    repo_dir = ctx.require_repo_dir()
    try:
        config = load_docker_compose_config(repo_dir)
    except (FileNotFoundError, RuntimeError) as exc:
        raise DeployError(str(exc)) from exc

    services = sorted(get_services(config))
    log.info(f"Compose services: {', '.join(services) if services else '(none)'}")
    port = ctx.params.app_port
    if not find_services_publishing_port(config, port):
        log.warning(f"No compose service publishes host port {port}; Nginx will proxy to localhost:{port}")


def validate_deployment(ctx: DeployContext, log: StepLog, *, external_check: bool) -> None:
    result = run_remote_batch(ctx, validation_batch())
    if not result.ok:
        log.warning(f"Remote validation checks exited with code {result.returncode}")

    if not external_check:
        return
    outcome = check_url(build_public_url(ctx.params.server_ip))
    if outcome.ok:
        log.info(f"External HTTP check of {outcome.url} returned {outcome.status_code}")
    elif outcome.status_code is None:
        log.warning(f"External HTTP check of {outcome.url} failed: {outcome.error}")
    else:
        log.warning(f"External HTTP check of {outcome.url} returned {outcome.status_code}")


def run_pipeline(ctx: DeployContext, log: StepLog, *, external_check: bool = True) -> None:
    params = ctx.params

    log.step("Cloning or updating repository", icon="📥")
    repo_dir = acquire_repository(ctx, log=log)
    log.info("Repository cloned and branch checked out.")

    log.step("Detecting deployment mode", icon="🔎")
    ctx.deploy_mode = detect_deploy_mode(repo_dir)
    log.info(f"Deployment mode: {ctx.deploy_mode.value}")
    if ctx.deploy_mode is DeployMode.COMPOSE:
        summarize_compose(ctx, log)

    log.step(f"Testing SSH connectivity to {params.server_ip}", icon="🔌")
    check_connectivity(ctx)

    log.step("Setting up remote environment", icon="🛠️")
    run_remote_batch(ctx, prepare_environment_batch(), failure="Failed to prepare remote environment.")
    log.info("Remote environment prepared.")

    log.step(f"Transferring project files to {params.ssh_target}:{params.remote_dir}", icon="📦")
    sync_files(ctx)

    log.step("Deploying application remotely", icon="🐳")
    run_remote_batch(
        ctx,
        deploy_batch(repo_name=params.repo_name, app_port=params.app_port, mode=ctx.require_deploy_mode()),
        failure="Failed to deploy application on remote server.",
    )

    log.step("Configuring Nginx as reverse proxy", icon="🌐")
    run_remote_batch(
        ctx,
        nginx_batch(repo_name=params.repo_name, app_port=params.app_port),
        failure="Failed to configure Nginx; the previous configuration is still active.",
    )
    log.info(f"Nginx reverse proxy configured successfully ({nginx_config_path(params.repo_name)}).")

    log.step("Validating deployment", icon="🩺")
    validate_deployment(ctx, log, external_check=external_check)

    log.info(
        f"Deployment completed successfully! Access the app at: {build_public_url(params.server_ip)}",
        icon="✅",
    )
    log.info(f"Deployment log: {ctx.log_file}")


def main(
    argv: list[str] | None = None,
    *,
    prompt_fn: Callable[[str], str] = input,
    secret_prompt_fn: Callable[[str], str] = getpass.getpass,
    runner: Callable[..., object] = run_command,
    env: Mapping[str, str] | None = None,
    now: datetime | None = None,
) -> int:
    args = build_parser().parse_args(argv)

    work_dir = Path(args.work_dir).expanduser().resolve()
    log_path = build_log_path(Path(args.log_dir).expanduser().resolve(), now)
    redactor = configure_logging(log_path)
    log = StepLog()

    previous_sigterm = signal.signal(signal.SIGTERM, _raise_interrupted)
    try:
        log.info("Collecting user input...")
        presets = resolve_presets(
            cli_values=vars(args),
            env=process_env() if env is None else env,
            deploy_env_path=Path(args.env_file).expanduser() if args.env_file else work_dir / ".env.deploy",
            secrets_env_path=(
                Path(args.secrets_file).expanduser() if args.secrets_file else work_dir / ".env.deploy.secrets"
            ),
        )
        params = collect_parameters(
            presets=presets,
            prompt_fn=prompt_fn,
            secret_prompt_fn=secret_prompt_fn,
            interactive=not args.non_interactive,
        )
        redactor.add_secret(params.token)

        ctx = DeployContext(params=params, work_dir=work_dir, log_file=log_path, runner=runner)
        run_pipeline(ctx, log, external_check=not args.skip_external_check)
    except (KeyboardInterrupt, DeployInterrupted):
        log.error(INTERRUPTED_MESSAGE)
        return 1
    except DeployError as exc:
        log.error(str(exc))
        return 1
    finally:
        signal.signal(signal.SIGTERM, previous_sigterm)
        shutdown_logging()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
