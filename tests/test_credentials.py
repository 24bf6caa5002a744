import pytest

from deploykit.credentials import AwsConfigFiles, CredentialResolver
from deploykit.exceptions import CredentialError
from deploykit.models.credentials import CallerIdentity, CredentialSource

from conftest import IDENTITY_JSON, FakeRunner, RecordingNonInteractive, ScriptedInput


def write_aws_files(home, credentials="", config=""):
    aws = home / ".aws"
    aws.mkdir(exist_ok=True)
    (aws / "credentials").write_text(credentials)
    (aws / "config").write_text(config)
    return aws


STATIC_FOO = """[foo]
aws_access_key_id = AKIAEXAMPLE
aws_secret_access_key = secret
"""

SSO_CONFIG = """[profile corp]
sso_start_url = https://corp.awsapps.com/start
sso_region = eu-central-1
sso_account_id = 123456789012
sso_role_name = Deployer
"""


def seed_session_caches(aws):
    sso_cache = aws / "sso" / "cache"
    sso_cache.mkdir(parents=True, exist_ok=True)
    (sso_cache / "token.json").write_text('{"expiresAt": "2020-01-01T00:00:00Z"}')
    cli_cache = aws / "cli" / "cache"
    cli_cache.mkdir(parents=True, exist_ok=True)
    (cli_cache / "session.json").write_text("{}")
    return sso_cache, cli_cache


def make_resolver(settings, logger, runner, inputs, home, env=None):
    env = env or {}
    return CredentialResolver(
        settings, logger, runner, inputs, env, files=AwsConfigFiles(env, home=home)
    )


def test_non_interactive_without_credentials_fails_without_prompting(settings, logger, home):
    runner = FakeRunner(logger, lambda argv, env: (255, "Unable to locate credentials"))
    inputs = RecordingNonInteractive(logger)
    resolver = make_resolver(settings, logger, runner, inputs, home)

    with pytest.raises(CredentialError):
        resolver.ensure_authenticated()

    assert inputs.prompts == []
    assert len(runner.commands("aws", "sts", "get-caller-identity")) == 1


def test_static_profile_purges_sso_cache_before_identity_check(settings, logger, home):
    aws = write_aws_files(home, credentials=STATIC_FOO)
    sso_cache, cli_cache = seed_session_caches(aws)
    cache_sizes = []

    def handler(argv, env):
        if argv[:2] == ["aws", "sts"]:
            cache_sizes.append(len(list(sso_cache.iterdir())))
            return 0, IDENTITY_JSON
        return 0, ""

    settings.profile = "foo"
    runner = FakeRunner(logger, handler)
    resolver = make_resolver(settings, logger, runner, RecordingNonInteractive(logger), home)

    first = resolver.ensure_authenticated()
    second = resolver.ensure_authenticated()

    assert cache_sizes == [0, 0]
    assert list(cli_cache.iterdir()) == []
    assert first.is_verified and second.is_verified
    assert first.identity == second.identity
    assert first.source_kind == CredentialSource.PROFILE


def test_sso_profile_keeps_session_cache(settings, logger, home):
    aws = write_aws_files(home, config=SSO_CONFIG)
    sso_cache, _ = seed_session_caches(aws)
    settings.profile = "corp"
    resolver = make_resolver(settings, logger, FakeRunner(logger), RecordingNonInteractive(logger), home)

    state = resolver.ensure_authenticated()

    assert state.source_kind == CredentialSource.SSO
    assert len(list(sso_cache.iterdir())) == 1


def test_named_profile_clears_ambient_credentials(settings, logger, home):
    write_aws_files(home, credentials=STATIC_FOO)
    settings.profile = "foo"
    env = {
        "AWS_ACCESS_KEY_ID": "ASIAAMBIENT",
        "AWS_SECRET_ACCESS_KEY": "ambient",
        "AWS_SESSION_TOKEN": "token",
        "AWS_PROFILE": "other",
    }
    runner = FakeRunner(logger)
    resolver = make_resolver(settings, logger, runner, RecordingNonInteractive(logger), home, env)

    resolver.ensure_authenticated()

    sts_env = runner.commands("aws", "sts")[0].env
    assert sts_env["AWS_PROFILE"] == "foo"
    for name in ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_SESSION_TOKEN"):
        assert name not in sts_env


def test_ambient_env_credentials_are_used_without_profile(settings, logger, home):
    env = {"AWS_ACCESS_KEY_ID": "AKIAENV", "AWS_SECRET_ACCESS_KEY": "x"}
    runner = FakeRunner(logger)
    resolver = make_resolver(settings, logger, runner, RecordingNonInteractive(logger), home, env)

    state = resolver.ensure_authenticated()

    assert state.source_kind == CredentialSource.ENV_VARS
    assert runner.commands("aws", "sts")[0].env["AWS_ACCESS_KEY_ID"] == "AKIAENV"


def test_unparseable_identity_is_not_authenticated(settings, logger, home):
    runner = FakeRunner(logger, lambda argv, env: (0, "garbage"))
    resolver = make_resolver(settings, logger, runner, RecordingNonInteractive(logger), home)

    with pytest.raises(CredentialError):
        resolver.ensure_authenticated()


def test_exit_choice_raises(settings, logger, home):
    runner = FakeRunner(logger, lambda argv, env: (255, "expired"))
    inputs = ScriptedInput(logger, ["4"])
    resolver = make_resolver(settings, logger, runner, inputs, home)

    with pytest.raises(CredentialError, match="cancelled"):
        resolver.ensure_authenticated()


def test_expired_sso_session_is_refreshed(settings, logger, home):
    write_aws_files(home, config=SSO_CONFIG)
    logged_in = []

    def handler(argv, env):
        if argv[:3] == ["aws", "sso", "login"]:
            logged_in.append(argv[-1])
            return 0, ""
        if argv[:2] == ["aws", "sts"]:
            return (0, IDENTITY_JSON) if logged_in else (255, "Token has expired")
        return 0, ""

    settings.profile = "corp"
    inputs = ScriptedInput(logger, ["1"])
    resolver = make_resolver(settings, logger, FakeRunner(logger, handler), inputs, home)

    state = resolver.ensure_authenticated()

    assert logged_in == ["corp"]
    assert state.is_verified
    assert state.identity.account_id == "123456789012"


def test_select_profile_by_number(settings, logger, home):
    write_aws_files(home, credentials=STATIC_FOO + "\n[bar]\naws_access_key_id = AKIABAR\n")

    def handler(argv, env):
        if argv[:2] == ["aws", "sts"]:
            return (0, IDENTITY_JSON) if env.get("AWS_PROFILE") == "bar" else (255, "denied")
        return 0, ""

    inputs = ScriptedInput(logger, ["2", "2"])
    resolver = make_resolver(settings, logger, FakeRunner(logger, handler), inputs, home)

    state = resolver.ensure_authenticated()

    assert state.profile_name == "bar"
    assert resolver.overrides.set["AWS_PROFILE"] == "bar"


def test_static_keys_are_verified_and_saved_masked(settings, logger, home):
    calls = []

    def handler(argv, env):
        calls.append(argv)
        if argv[:2] == ["aws", "sts"]:
            return (0, IDENTITY_JSON) if env.get("AWS_ACCESS_KEY_ID") == "AKIANEW" else (255, "no creds")
        return 0, ""

    runner = FakeRunner(logger, handler)
    inputs = ScriptedInput(logger, ["3", "AKIANEW", "supersecret", "", "y", "deployer"])
    resolver = make_resolver(settings, logger, runner, inputs, home)

    state = resolver.ensure_authenticated()

    assert state.source_kind == CredentialSource.STATIC
    assert state.profile_name == "deployer"
    assert resolver.overrides.set["AWS_DEFAULT_REGION"] == "eu-central-1"
    saved = runner.commands("aws", "configure", "set")
    assert [c.argv[3] for c in saved] == ["aws_access_key_id", "aws_secret_access_key", "region"]
    assert all(c.argv[-1] == "deployer" for c in saved)


def test_fallback_rounds_are_bounded(settings, logger, home):
    runner = FakeRunner(logger, lambda argv, env: (255, "denied"))
    inputs = ScriptedInput(logger, ["9", "9", "9"])
    resolver = make_resolver(settings, logger, runner, inputs, home)

    with pytest.raises(CredentialError, match="AWS authentication failed"):
        resolver.ensure_authenticated()


def test_caller_identity_parse_tolerates_surrounding_noise():
    identity = CallerIdentity.parse("warning: something\n" + IDENTITY_JSON + "\n")

    assert identity.account_id == "123456789012"
    assert identity.principal_arn.endswith("user/deployer")
    assert CallerIdentity.parse('{"UserId": "x"}') is None
    assert CallerIdentity.parse("") is None


def test_profile_names_merges_both_files(home):
    write_aws_files(home, credentials=STATIC_FOO, config="[default]\nregion = eu-west-1\n" + SSO_CONFIG)
    files = AwsConfigFiles({}, home=home)

    assert files.profile_names() == ["foo", "default", "corp"]
    assert files.sso_profile_names() == ["corp"]
    assert files.has_static_keys("foo")
    assert not files.is_sso_profile("foo")
