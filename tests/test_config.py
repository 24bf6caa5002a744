import pytest

from deploykit.config import (
    DeploySettings,
    find_project_root,
    is_truthy,
    load_environment,
    parse_timeout,
)
from deploykit.constants import DEFAULT_GATING_URL, DEFAULT_TIMEOUT
from deploykit.exceptions import ConfigurationError


def test_find_project_root_walks_up(project):
    nested = project / "packages" / "web" / "src"
    nested.mkdir(parents=True)

    assert find_project_root(nested) == project.resolve()


def test_find_project_root_requires_package_json(tmp_path):
    with pytest.raises(ConfigurationError, match="package.json not found"):
        find_project_root(tmp_path)


def test_defaults(project):
    settings = DeploySettings.load(project, {})

    assert settings.timeout == DEFAULT_TIMEOUT
    assert settings.gating_url == DEFAULT_GATING_URL
    assert settings.stages == ["dev", "int", "prod"]
    assert settings.cache_root == project / ".deployment-cache"
    assert settings.stage is None
    assert not settings.force_external


def test_flags_override_environment(project):
    env = {"STAGE": "int", "AWS_PROFILE": "env-profile", "SETUP_TIMEOUT": "120"}

    settings = DeploySettings.load(project, env, stage="dev", profile="cli", timeout=45)

    assert settings.stage == "dev"
    assert settings.profile == "cli"
    assert settings.timeout == 45


def test_environment_used_when_flags_absent(project):
    env = {"STAGE": "int", "AWS_PROFILE": "env-profile", "SETUP_TIMEOUT": "120", "SETUP_FORCE_EXTERNAL": "1"}

    settings = DeploySettings.load(project, env)

    assert settings.stage == "int"
    assert settings.profile == "env-profile"
    assert settings.timeout == 120
    assert settings.force_external


def test_dotenv_is_layered_under_process_environment(project):
    (project / ".env").write_text("STAGE=from-dotenv\nAWS_PROFILE=dotenv-profile\n")

    env = load_environment(project, {"STAGE": "from-process"})

    assert env["STAGE"] == "from-process"
    assert env["AWS_PROFILE"] == "dotenv-profile"


def test_project_config_file(project):
    (project / "deploykit.yml").write_text(
        "gating_url: https://gate.example/\n"
        "stages: [dev, qa]\n"
        "no_proxy_hosts: [.corp.example]\n"
        "default_timeout: 90\n"
        "cache_dir: /var/cache/deploy\n"
    )

    settings = DeploySettings.load(project, {})

    assert settings.gating_url == "https://gate.example/"
    assert settings.stages == ["dev", "qa"]
    assert settings.no_proxy_hosts == [".corp.example"]
    assert settings.timeout == 90
    assert str(settings.cache_root) == "/var/cache/deploy"


def test_invalid_project_config(project):
    (project / "deploykit.yml").write_text("- just\n- a list\n")

    with pytest.raises(ConfigurationError, match="Invalid deploykit.yml"):
        DeploySettings.load(project, {})


@pytest.mark.parametrize("value", ["0", "-5", "abc", None])
def test_timeout_must_be_positive_integer(value):
    with pytest.raises(ConfigurationError):
        parse_timeout(value)


def test_telemetry_opt_out_from_environment(project):
    assert DeploySettings.load(project, {"DO_NOT_TRACK": "1"}).no_telemetry
    assert DeploySettings.load(project, {"SST_TELEMETRY_DISABLED": "true"}).no_telemetry
    assert not DeploySettings.load(project, {"DO_NOT_TRACK": "0"}).no_telemetry


def test_is_truthy():
    assert is_truthy("Yes")
    assert is_truthy(True)
    assert not is_truthy("")
    assert not is_truthy(None)
