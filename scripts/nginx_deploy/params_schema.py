"""Deterministic schema for the deployment parameters.

This module is the single source of truth for:
- which parameters exist and the order they are prompted in
- which environment / dotenv keys can preset them
- whether they are mandatory and/or have defaults

Resolution per parameter: CLI flag -> process env -> `.env.deploy`
(`.env.deploy.secrets` for the token) -> interactive prompt.
The first empty mandatory value is fatal; there are no retries.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Mapping

from dotenv import dotenv_values

from scripts.nginx_deploy.context import DeployError, DeployParams

DEFAULT_BRANCH = "main"


class ParamsEnum(str, Enum):
    GIT_URL = "DEPLOY_GIT_URL"
    GIT_BRANCH = "DEPLOY_GIT_BRANCH"
    SSH_USER = "DEPLOY_SSH_USER"
    SERVER_IP = "DEPLOY_SERVER_IP"
    SSH_KEY = "DEPLOY_SSH_KEY"
    APP_PORT = "DEPLOY_APP_PORT"


class SecretsEnum(str, Enum):
    GIT_TOKEN = "DEPLOY_GIT_TOKEN"


@dataclass(frozen=True)
class ParamSpec:
    key: ParamsEnum | SecretsEnum
    field: str
    prompt: str
    missing_message: str
    mandatory: bool = True
    default: str | None = None
    secret: bool = False


DEPLOY_PARAMS: tuple[ParamSpec, ...] = (
    ParamSpec(
        key=ParamsEnum.GIT_URL,
        field="git_url",
        prompt="Enter Git Repository URL: ",
        missing_message="Repository URL cannot be empty.",
    ),
    ParamSpec(
        key=SecretsEnum.GIT_TOKEN,
        field="token",
        prompt="Enter Personal Access Token (PAT): ",
        missing_message="PAT cannot be empty.",
        secret=True,
    ),
    ParamSpec(
        key=ParamsEnum.GIT_BRANCH,
        field="branch",
        prompt=f"Enter Branch name [default: {DEFAULT_BRANCH}]: ",
        missing_message="Branch name cannot be empty.",
        mandatory=False,
        default=DEFAULT_BRANCH,
    ),
    ParamSpec(
        key=ParamsEnum.SSH_USER,
        field="ssh_user",
        prompt="Enter Remote Server Username: ",
        missing_message="SSH username required.",
    ),
    ParamSpec(
        key=ParamsEnum.SERVER_IP,
        field="server_ip",
        prompt="Enter Remote Server IP Address: ",
        missing_message="Server IP required.",
    ),
    ParamSpec(
        key=ParamsEnum.SSH_KEY,
        field="ssh_key",
        prompt="Enter SSH Private Key Path: ",
        missing_message="Invalid SSH key path.",
    ),
    ParamSpec(
        key=ParamsEnum.APP_PORT,
        field="app_port",
        prompt="Enter Application internal container port: ",
        missing_message="App port required.",
    ),
)

# argparse dest -> parameter key. The token is deliberately absent.
CLI_DESTS: dict[str, ParamsEnum] = {
    "repo_url": ParamsEnum.GIT_URL,
    "branch": ParamsEnum.GIT_BRANCH,
    "ssh_user": ParamsEnum.SSH_USER,
    "server_ip": ParamsEnum.SERVER_IP,
    "ssh_key": ParamsEnum.SSH_KEY,
    "app_port": ParamsEnum.APP_PORT,
}


class ParamValidationError(DeployError):
    pass


def _schema_keys(schema: Iterable[ParamSpec]) -> set[str]:
    return {spec.key.value for spec in schema}


def read_dotenv_file(path: Path | None) -> dict[str, str]:
    """Parse a dotenv file; missing file -> {}. Empty values are dropped."""
    if path is None or not path.exists():
        return {}
    kv: dict[str, str] = {}
    for k, v in dotenv_values(path).items():
        if k is None:
            continue
        val = "" if v is None else str(v).strip()
        if val:
            kv[str(k).strip()] = val
    return kv


def resolve_presets(
    *,
    cli_values: Mapping[str, str | None],
    env: Mapping[str, str],
    deploy_env_path: Path | None,
    secrets_env_path: Path | None,
    schema: Iterable[ParamSpec] = DEPLOY_PARAMS,
) -> dict[str, str]:
    """Merge every non-interactive source into {key: value}.

    Precedence (highest first): CLI, process env, dotenv file. Secrets are only
    read from process env and the secrets dotenv file.
    """
    deploy_kv = read_dotenv_file(deploy_env_path)
    secrets_kv = read_dotenv_file(secrets_env_path)
    cli_kv = {
        key.value: str(cli_values.get(dest) or "").strip()
        for dest, key in CLI_DESTS.items()
    }

    presets: dict[str, str] = {}
    for spec in schema:
        key = spec.key.value
        candidates = [str(env.get(key) or "").strip()]
        if spec.secret:
            candidates.append(secrets_kv.get(key, ""))
        else:
            candidates.insert(0, cli_kv.get(key, ""))
            candidates.append(deploy_kv.get(key, ""))
        for value in candidates:
            if value:
                presets[key] = value
                break
    return presets


def _validate_ssh_key(raw: str, spec: ParamSpec) -> Path:
    path = Path(raw).expanduser()
    if not path.is_file():
        raise ParamValidationError(spec.missing_message)
    return path


def collect_parameters(
    *,
    presets: Mapping[str, str],
    prompt_fn: Callable[[str], str] = input,
    secret_prompt_fn: Callable[[str], str] | None = None,
    interactive: bool = True,
    schema: Iterable[ParamSpec] = DEPLOY_PARAMS,
) -> DeployParams:
    """Resolve every parameter in order, prompting for what is still missing.

    Validation happens right after each answer so a bad value stops the run
    before the next prompt is shown.
    """
    secret_prompt_fn = secret_prompt_fn or prompt_fn
    values: dict[str, object] = {}

    for spec in schema:
        value = presets.get(spec.key.value, "")
        if not value and interactive:
            ask = secret_prompt_fn if spec.secret else prompt_fn
            try:
                value = ask(spec.prompt)
            except EOFError:
                # closed stdin reads as an empty answer
                value = ""
        value = str(value or "").strip()

        if not value and spec.default is not None:
            value = spec.default
        if not value and spec.mandatory:
            raise ParamValidationError(spec.missing_message)

        if spec.key is ParamsEnum.SSH_KEY:
            values[spec.field] = _validate_ssh_key(value, spec)
        else:
            values[spec.field] = value

    return DeployParams(**values)


def process_env() -> dict[str, str]:
    """Subset of os.environ limited to the schema keys."""
    keys = _schema_keys(DEPLOY_PARAMS)
    return {k: v for k, v in os.environ.items() if k in keys}
