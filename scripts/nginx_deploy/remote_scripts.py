"""Bash batches executed on the target host.

Every batch that must not half-apply starts with `set -e`; the steps that are
allowed to fail are suffixed with `|| true`.
"""

from __future__ import annotations

import shlex

from scripts.nginx_deploy.context import DeployMode
from scripts.nginx_deploy.ssh_helpers import RemoteBatch

NGINX_SITES_AVAILABLE = "/etc/nginx/sites-available"
NGINX_SITES_ENABLED = "/etc/nginx/sites-enabled"
CONTAINER_SETTLE_SECONDS = 5
PACKAGES: tuple[str, ...] = ("docker.io", "docker-compose", "nginx")


PREPARE_ENVIRONMENT_SCRIPT = f"""set -e

echo "Updating system packages..."
sudo apt-get update -y

echo "Installing Docker, Docker Compose, and Nginx..."
sudo apt-get install -y {' '.join(PACKAGES)}

sudo systemctl enable docker --now
sudo usermod -aG docker "$USER" || true
sudo systemctl enable nginx --now

docker --version
docker-compose --version
nginx -v
"""


VALIDATION_SCRIPT = """sudo systemctl status docker | grep active
sudo docker ps
curl -I http://localhost || true
"""


def image_name(repo_name: str) -> str:
    return f"{repo_name}_app"


def container_name(repo_name: str) -> str:
    return f"{repo_name}_container"


def nginx_config_path(repo_name: str) -> str:
    return f"{NGINX_SITES_AVAILABLE}/{repo_name}.conf"


def render_nginx_config(*, app_port: str) -> str:
    return (
        "server {\n"
        "    listen 80;\n"
        "    server_name _;\n"
        "\n"
        "    location / {\n"
        f"        proxy_pass http://localhost:{app_port};\n"
        "        proxy_set_header Host $host;\n"
        "        proxy_set_header X-Real-IP $remote_addr;\n"
        "    }\n"
        "}\n"
    )


def render_deploy_script(*, repo_name: str, app_port: str, mode: DeployMode) -> str:
    image = shlex.quote(image_name(repo_name))
    container = shlex.quote(container_name(repo_name))
    port = shlex.quote(f"{app_port}:{app_port}")

    lines = [
        "set -e",
        f"cd ~/{shlex.quote(repo_name)}",
        "",
        'echo "Stopping old containers..."',
        "sudo docker-compose down || true",
    ]
    for ancestor in (repo_name, image_name(repo_name)):
        lines.append(
            f"sudo docker ps -q --filter {shlex.quote('ancestor=' + ancestor)} | xargs -r sudo docker stop"
        )
    lines.append(f"sudo docker rm -f {container} >/dev/null 2>&1 || true")
    lines.append("")

    if mode is DeployMode.COMPOSE:
        lines += [
            'echo "Starting containers using Docker Compose..."',
            "sudo docker-compose up -d --build",
        ]
    else:
        lines += [
            'echo "Building and running Docker image manually..."',
            f"sudo docker build -t {image} .",
            f"sudo docker run -d -p {port} --name {container} {image}",
        ]

    lines += [
        "",
        f"sleep {CONTAINER_SETTLE_SECONDS}",
        "sudo docker ps",
    ]
    return "\n".join(lines) + "\n"


def render_nginx_script(*, repo_name: str, app_port: str) -> str:
    conf_path = shlex.quote(nginx_config_path(repo_name))
    # Quoted heredoc delimiter: $host / $remote_addr must reach nginx verbatim.
    return (
        "set -e\n"
        f"cat <<'NGINXCONF' | sudo tee {conf_path} > /dev/null\n"
        f"{render_nginx_config(app_port=app_port)}"
        "NGINXCONF\n"
        "\n"
        f"sudo ln -sf {conf_path} {NGINX_SITES_ENABLED}/\n"
        "sudo nginx -t\n"
        "sudo systemctl reload nginx\n"
    )


def prepare_environment_batch() -> RemoteBatch:
    return RemoteBatch(name="prepare-environment", script=PREPARE_ENVIRONMENT_SCRIPT)


def deploy_batch(*, repo_name: str, app_port: str, mode: DeployMode) -> RemoteBatch:
    return RemoteBatch(
        name=f"deploy-{mode.value}",
        script=render_deploy_script(repo_name=repo_name, app_port=app_port, mode=mode),
    )


def nginx_batch(*, repo_name: str, app_port: str) -> RemoteBatch:
    return RemoteBatch(name="configure-nginx", script=render_nginx_script(repo_name=repo_name, app_port=app_port))


def validation_batch() -> RemoteBatch:
    return RemoteBatch(name="validate", script=VALIDATION_SCRIPT, tolerate_failure=True)
