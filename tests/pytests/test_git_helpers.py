from pathlib import Path

import pytest

from scripts.nginx_deploy.context import DeployContext, DeployError, DeployMode, DeployParams, derive_repo_name
from scripts.nginx_deploy.git_helpers import (
    acquire_repository,
    build_authenticated_clone_url,
    detect_deploy_mode,
)


def _ctx(work_dir: Path, runner, *, branch: str = "main") -> DeployContext:
    params = DeployParams(
        git_url="https://github.com/acme/shop.git",
        token="s3cr3t",
        branch=branch,
        ssh_user="ubuntu",
        server_ip="203.0.113.7",
        ssh_key=Path("/keys/id_rsa"),
        app_port="8080",
    )
    return DeployContext(params=params, work_dir=work_dir, log_file=work_dir / "x.log", runner=runner)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://github.com/acme/shop.git", "shop"),
        ("https://github.com/acme/shop", "shop"),
        ("https://github.com/acme/shop/", "shop"),
        ("git@github.com:shop.git", "shop"),
    ],
)
def test_derive_repo_name(url, expected):
    assert derive_repo_name(url) == expected


def test_authenticated_clone_url_embeds_token():
    out = build_authenticated_clone_url(git_url="https://github.com/acme/shop.git", token="abc")
    assert out == "https://abc@github.com/acme/shop.git"


def test_fresh_clone_then_checkout(tmp_path, fake_runner):
    ctx = _ctx(tmp_path, fake_runner, branch="release")
    repo_dir = acquire_repository(ctx)

    assert repo_dir == tmp_path / "shop"
    assert ctx.repo_dir == repo_dir
    assert fake_runner.argvs == [
        ["git", "clone", "https://s3cr3t@github.com/acme/shop.git"],
        ["git", "checkout", "release"],
    ]
    assert fake_runner.calls[0].cwd == tmp_path
    assert fake_runner.calls[1].cwd == repo_dir


def test_existing_repo_is_pulled_not_recloned(tmp_path, fake_runner):
    (tmp_path / "shop").mkdir()
    acquire_repository(_ctx(tmp_path, fake_runner))

    assert fake_runner.argvs == [["git", "pull"], ["git", "checkout", "main"]]
    assert all(call.cwd == tmp_path / "shop" for call in fake_runner.calls)


def test_missing_branch_is_fatal(tmp_path, fake_runner):
    (tmp_path / "shop").mkdir()
    fake_runner.fail_when(lambda call: call.cmd[:2] == ["git", "checkout"])

    with pytest.raises(DeployError) as exc:
        acquire_repository(_ctx(tmp_path, fake_runner, branch="nope"))
    assert str(exc.value) == "Failed to switch to branch: nope"


def test_clone_failure_is_fatal(tmp_path, fake_runner):
    fake_runner.fail_when(lambda call: call.cmd[:2] == ["git", "clone"], returncode=128)

    with pytest.raises(DeployError) as exc:
        acquire_repository(_ctx(tmp_path, fake_runner))
    assert str(exc.value) == "Failed to clone repository."
    assert len(fake_runner.calls) == 1


def test_detect_prefers_compose_over_dockerfile(tmp_path):
    (tmp_path / "Dockerfile").write_text("FROM scratch\n")
    (tmp_path / "docker-compose.yml").write_text("services: {}\n")
    assert detect_deploy_mode(tmp_path) is DeployMode.COMPOSE


def test_detect_dockerfile_only(tmp_path):
    (tmp_path / "Dockerfile").write_text("FROM scratch\n")
    assert detect_deploy_mode(tmp_path) is DeployMode.DOCKERFILE


def test_detect_without_markers_is_fatal(tmp_path):
    with pytest.raises(DeployError) as exc:
        detect_deploy_mode(tmp_path)
    assert "No Dockerfile or docker-compose.yml" in str(exc.value)
