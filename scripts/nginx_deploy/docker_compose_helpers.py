import os
import re
import yaml
from pathlib import Path
from typing import Any, Dict, Optional

from scripts.nginx_deploy.git_helpers import COMPOSE_FILE

# Regex to match ${VAR:-default} or ${VAR}
INTERPOLATION_PATTERN = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')

def interpolate_value(value: str) -> str:
    """
    Interpolates environment variables in a string.
    Supports ${VAR} and ${VAR:-default}.
    """
    if not isinstance(value, str):
        return value

    def replace_match(match):
        var_name = match.group(1)
        default_value = match.group(2)
        env_val = os.getenv(var_name)
        if env_val is not None:
            return env_val
        return default_value if default_value is not None else ""

    return INTERPOLATION_PATTERN.sub(replace_match, value)

def interpolate_dict(data: Any) -> Any:
    """Recursively interpolates strings in a dictionary or list."""
    if isinstance(data, dict):
        return {k: interpolate_dict(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [interpolate_dict(v) for v in data]
    elif isinstance(data, str):
        return interpolate_value(data)
    else:
        return data

def load_docker_compose_config(repo_dir: Path) -> Dict[str, Any]:
    """
    Parses docker-compose.yml using PyYAML and interpolates variables.
    Returns the parsed configuration dictionary.
    """
    compose_path = repo_dir / COMPOSE_FILE
    if not compose_path.exists():
        raise FileNotFoundError(f"{COMPOSE_FILE} not found in {repo_dir}")

    try:
        with open(compose_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        raise RuntimeError(f"Failed to parse {COMPOSE_FILE}: {e}") from e

    if not isinstance(raw_config, dict):
        raise RuntimeError(f"{COMPOSE_FILE} is not a valid mapping")
    return interpolate_dict(raw_config)

def get_services(compose_config: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    services = compose_config.get("services") or {}
    if not isinstance(services, dict):
        return {}
    return {str(name): (cfg if isinstance(cfg, dict) else {}) for name, cfg in services.items()}

def get_ports(service_config: Dict[str, Any]) -> list:
    """Get the exposed ports for a service."""
    # PyYAML parses "80:80" as string usually, but "80" might be int.
    # We normalize to a list of raw values (strings or ints or dicts if long syntax).
    ports = service_config.get("ports", [])
    if not isinstance(ports, list):
        return []
    return ports

def _parse_port_range(raw: str) -> Optional[range]:
    raw = raw.strip()
    if not raw:
        return None
    start, _, end = raw.partition("-")
    try:
        first = int(start)
        last = int(end) if end else first
    except ValueError:
        return None
    return range(first, last + 1)

def get_published_host_ports(service_config: Dict[str, Any]) -> list[range]:
    """Host-side port ranges a service publishes.

    Short syntax: "[ip:]host:container[/proto]"; a bare "container" port has no
    fixed host port and is skipped. Long syntax: {published: ..., target: ...}.
    """
    published: list[range] = []
    for entry in get_ports(service_config):
        if isinstance(entry, dict):
            host = entry.get("published")
            if host is None:
                continue
            parsed = _parse_port_range(str(host))
        else:
            spec = str(entry).split("/", 1)[0]
            parts = spec.split(":")
            if len(parts) < 2:
                continue
            parsed = _parse_port_range(parts[-2])
        if parsed is not None:
            published.append(parsed)
    return published

def find_services_publishing_port(compose_config: Dict[str, Any], port: str) -> list[str]:
    """Names of services whose published host ports include `port`."""
    try:
        wanted = int(str(port).strip())
    except ValueError:
        return []
    return [
        name
        for name, service in get_services(compose_config).items()
        if any(wanted in r for r in get_published_host_ports(service))
    ]
