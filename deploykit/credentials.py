"""
AWS Credential Resolution

Decides which credential source is authoritative, removes cached sessions that
would shadow it, verifies the identity and, when interactive, walks the
refresh / switch / create fallback chain.
"""

import configparser
import shutil
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from deploykit.config import DeploySettings
from deploykit.constants import (
    AMBIENT_CREDENTIAL_ENV_VARS,
    IDENTITY_CHECK_TIMEOUT,
    MAX_AUTH_ROUNDS,
    PROMPT_TIMEOUT,
    SHORT_PROMPT_TIMEOUT,
    SSO_CONFIG_KEYS,
    SSO_LOGIN_TIMEOUT,
)
from deploykit.exceptions import CredentialError
from deploykit.logger import ResultLog
from deploykit.models.credentials import CallerIdentity, CredentialSource, CredentialState
from deploykit.models.environment import EnvironmentOverrides
from deploykit.prompts import InputSource
from deploykit.runner import CommandRunner


class AwsConfigFiles:
    """Read-only view of the local AWS credential/config files and caches."""

    def __init__(self, env: Mapping[str, str], home: Optional[Path] = None):
        self.home = home or Path.home()
        aws_dir = self.home / ".aws"
        self.credentials_path = Path(
            env.get("AWS_SHARED_CREDENTIALS_FILE") or aws_dir / "credentials"
        ).expanduser()
        self.config_path = Path(env.get("AWS_CONFIG_FILE") or aws_dir / "config").expanduser()
        self.sso_cache_dir = aws_dir / "sso" / "cache"
        self.cli_cache_dir = aws_dir / "cli" / "cache"

    @staticmethod
    def _read(path: Path) -> configparser.RawConfigParser:
        parser = configparser.RawConfigParser()
        if path.is_file():
            try:
                parser.read(path)
            except configparser.Error:
                return configparser.RawConfigParser()
        return parser

    def credential_profiles(self) -> List[str]:
        return self._read(self.credentials_path).sections()

    def config_profiles(self) -> List[str]:
        names = []
        for section in self._read(self.config_path).sections():
            if section == "default":
                names.append("default")
            elif section.startswith("profile "):
                names.append(section[len("profile ") :].strip())
        return names

    def profile_names(self) -> List[str]:
        """Profiles from both files, de-duplicated, in first-seen order."""
        names: List[str] = []
        for name in self.credential_profiles() + self.config_profiles():
            if name not in names:
                names.append(name)
        return names

    def config_section(self, profile: str) -> Dict[str, str]:
        parser = self._read(self.config_path)
        section = "default" if profile == "default" else f"profile {profile}"
        if not parser.has_section(section):
            return {}
        return dict(parser.items(section))

    def credentials_section(self, profile: str) -> Dict[str, str]:
        parser = self._read(self.credentials_path)
        if not parser.has_section(profile):
            return {}
        return dict(parser.items(profile))

    def is_sso_profile(self, profile: str) -> bool:
        section = self.config_section(profile)
        return any(section.get(key) for key in SSO_CONFIG_KEYS)

    def has_static_keys(self, profile: str) -> bool:
        return bool(self.credentials_section(profile).get("aws_access_key_id"))

    def sso_profile_names(self) -> List[str]:
        return [name for name in self.config_profiles() if self.is_sso_profile(name)]

    def purge_session_caches(self) -> int:
        """Delete cached SSO tokens and CLI credentials; returns entries removed."""
        removed = 0
        for cache_dir in (self.sso_cache_dir, self.cli_cache_dir):
            if not cache_dir.is_dir():
                continue
            for entry in cache_dir.iterdir():
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                removed += 1
        return removed


class CredentialResolver:
    """
    Reaches a verified AWS identity or fails.

    Environment changes are recorded in self.overrides on top of the base env
    handed in; the caller folds them into the run context.
    """

    def __init__(
        self,
        settings: DeploySettings,
        logger: ResultLog,
        runner: CommandRunner,
        inputs: InputSource,
        env: Mapping[str, str],
        files: Optional[AwsConfigFiles] = None,
    ):
        self.settings = settings
        self.logger = logger
        self.runner = runner
        self.inputs = inputs
        self.env = dict(env)
        self.files = files or AwsConfigFiles(env)
        self.overrides = EnvironmentOverrides()

    @property
    def effective_env(self) -> Dict[str, str]:
        return self.overrides.apply(self.env)

    # Verification

    def verify(self, state: CredentialState) -> bool:
        """
        Run the identity check. Non-zero exit or unparseable output means
        "not authenticated", never an exception.
        """
        self.logger.info("Checking AWS credentials with sts get-caller-identity...")
        result = self.runner.run(
            IDENTITY_CHECK_TIMEOUT,
            "AWS identity check",
            ["aws", "sts", "get-caller-identity", "--output", "json"],
            env=self.effective_env,
            cwd=self.settings.project_root,
            capture=True,
            echo=False,
        )

        identity = CallerIdentity.parse(result.output) if result.is_success else None
        if identity is None:
            detail = result.output.strip().splitlines()[-1] if result.output.strip() else result.outcome.value
            if result.is_success:
                self.logger.warn("Could not parse AWS identity from response")
            else:
                self.logger.warn(f"AWS authentication check failed: {detail}")
            state.mark_unverified()
            return False

        state.mark_verified(identity)
        self.logger.success(f"AWS Account: {identity.account_id}")
        self.logger.success(f"Identity: {identity.principal_arn}")
        return True

    # Source selection

    def activate_profile(self, profile: str) -> CredentialState:
        """
        Make a named profile authoritative.

        Ambient session tokens and static key variables are removed because the
        SDK lets them silently override AWS_PROFILE. Static-key profiles also
        get the SSO and CLI caches purged; a stale SSO cache makes freshly
        refreshed keys still report as expired.
        """
        self.logger.notice(f"Using AWS profile: {profile}")
        self.overrides.set_var("AWS_PROFILE", profile)

        shadowing = [name for name in AMBIENT_CREDENTIAL_ENV_VARS if self.env.get(name)]
        if shadowing:
            self.logger.info(
                f"Clearing ambient credentials that would override the profile: {', '.join(shadowing)}"
            )
        self.overrides.remove(AMBIENT_CREDENTIAL_ENV_VARS)

        if self.files.is_sso_profile(profile):
            return CredentialState(CredentialSource.SSO, profile)

        if self.files.has_static_keys(profile):
            removed = self.files.purge_session_caches()
            self.logger.info(
                f"Profile '{profile}' uses static keys: purged {removed} cached SSO/CLI session entries"
            )
        return CredentialState(CredentialSource.PROFILE, profile)

    def ambient_state(self) -> CredentialState:
        if self.env.get("AWS_ACCESS_KEY_ID"):
            self.logger.info("Using AWS credentials from environment variables")
            return CredentialState(CredentialSource.ENV_VARS)
        self.logger.info("No profile specified, using the default credential chain")
        return CredentialState(CredentialSource.PROFILE)

    # Entry point

    def ensure_authenticated(self) -> CredentialState:
        """
        Reach a verified identity.

        Raises:
            CredentialError: Non-interactive without valid credentials, user
                exit, or every fallback round failed
        """
        self.logger.step("Setting up AWS authentication")

        if self.settings.profile:
            state = self.activate_profile(self.settings.profile)
        else:
            state = self.ambient_state()

        if self.verify(state):
            self.logger.info("AWS authentication already valid")
            return state

        if not self.inputs.interactive:
            self.logger.error("Non-interactive mode requires pre-configured AWS credentials")
            raise CredentialError(
                "No valid AWS credentials found in non-interactive mode",
                context="Set AWS_PROFILE or configure credentials before running",
            )

        for attempt in range(1, MAX_AUTH_ROUNDS + 1):
            self.logger.info(f"Authentication fallback round {attempt}/{MAX_AUTH_ROUNDS}")
            state = self._fallback_round(state)
            if state.is_verified:
                self.logger.success("AWS authentication successful")
                return state

        raise CredentialError(
            "AWS authentication failed",
            context=f"No valid credentials after {MAX_AUTH_ROUNDS} attempts",
        )

    # Interactive fallback chain

    def _fallback_round(self, state: CredentialState) -> CredentialState:
        if state.source_kind == CredentialSource.SSO and state.profile_name:
            choice = self.inputs.choose(
                f"AWS SSO session for '{state.profile_name}' is not valid. Choose how to continue:",
                [
                    f"Refresh SSO login for '{state.profile_name}'",
                    "Use a different AWS profile",
                    "IAM User Credentials (Access Key)",
                    "Exit",
                ],
                default=4,
            )
            actions = {
                1: lambda: self.refresh_sso(state),
                2: self.select_profile,
                3: self.enter_static_keys,
            }
        else:
            choice = self.inputs.choose(
                "No valid AWS credentials found. Choose authentication method:",
                [
                    "AWS SSO (Corporate/Enterprise)",
                    "AWS Profile (Pre-configured)",
                    "IAM User Credentials (Access Key)",
                    "Exit",
                ],
                default=4,
            )
            actions = {
                1: self.sso_login,
                2: self.select_profile,
                3: self.enter_static_keys,
            }

        self.logger.info(f"User selected authentication option: {choice}")
        if choice == 4:
            self.logger.info("User chose to exit")
            raise CredentialError("Authentication cancelled by user")
        action = actions.get(choice)
        if action is None:
            self.logger.warning("Invalid authentication option")
            return state
        return action()

    def refresh_sso(self, state: CredentialState) -> CredentialState:
        profile = state.profile_name
        self.logger.notice(f"Initiating SSO login for profile: {profile}")
        result = self.runner.run(
            SSO_LOGIN_TIMEOUT,
            "AWS SSO login",
            ["aws", "sso", "login", "--profile", profile],
            env=self.effective_env,
            cwd=self.settings.project_root,
        )
        if not result.is_success:
            self.logger.warning("SSO login failed or timed out")
            state.mark_unverified()
            return state
        self.verify(state)
        return state

    def sso_login(self) -> CredentialState:
        sso_profiles = self.files.sso_profile_names()
        if sso_profiles:
            self.inputs.console.print("\nAvailable SSO profiles:")
            for name in sso_profiles:
                self.inputs.console.print(f"  - {name}")
        else:
            self.inputs.console.print("\n  No SSO profiles found")
        self.inputs.console.print()

        profile = self.inputs.ask("Enter SSO profile name: ", "", PROMPT_TIMEOUT)
        if not profile:
            self.logger.warning("SSO profile name required but not provided")
            return CredentialState(CredentialSource.SSO)

        state = self.activate_profile(profile)
        state.source_kind = CredentialSource.SSO
        return self.refresh_sso(state)

    def select_profile(self) -> CredentialState:
        profiles = self.files.profile_names()
        if profiles:
            self.inputs.console.print("\nAvailable AWS profiles:")
            for index, name in enumerate(profiles, start=1):
                self.inputs.console.print(f"  [cyan]{index})[/cyan] {name}")
        else:
            self.inputs.console.print("\n  No AWS profiles found")
        self.inputs.console.print()

        answer = self.inputs.ask(
            "Enter profile number or name (or press Enter for default): ",
            "default",
            PROMPT_TIMEOUT,
        )
        profile = answer
        if answer.isdigit() and 1 <= int(answer) <= len(profiles):
            profile = profiles[int(answer) - 1]

        self.logger.info(f"Selected AWS profile: {profile}")
        state = self.activate_profile(profile)
        if not self.verify(state):
            self.logger.warning(f"Profile authentication failed for: {profile}")
            if state.source_kind == CredentialSource.SSO:
                self.logger.notice(f"If using SSO, run: aws sso login --profile {profile}")
        return state

    def enter_static_keys(self) -> CredentialState:
        """Prompt for long-term keys; never available without a terminal."""
        if not self.inputs.interactive:
            raise CredentialError(
                "Cannot configure IAM credentials in non-interactive mode",
                context="Use --profile with pre-configured credentials instead",
            )

        self.logger.step("Setting up IAM user credentials")
        self.inputs.console.print(
            "[yellow]⚠[/yellow] Using long-term credentials is less secure than SSO."
        )

        access_key = self.inputs.ask("AWS Access Key ID: ", "", PROMPT_TIMEOUT)
        secret_key = self.inputs.ask_secret("AWS Secret Access Key: ")
        region = self.inputs.ask(
            f"AWS Region [{self.settings.default_region}]: ",
            self.settings.default_region,
            SHORT_PROMPT_TIMEOUT,
        )

        self.overrides.unset_var("AWS_PROFILE")
        self.overrides.remove(["AWS_SESSION_TOKEN", "AWS_SECURITY_TOKEN"])
        self.overrides.update(
            {
                "AWS_ACCESS_KEY_ID": access_key,
                "AWS_SECRET_ACCESS_KEY": secret_key,
                "AWS_DEFAULT_REGION": region,
            }
        )
        self.logger.info(f"Testing IAM credentials for region: {region}")

        state = CredentialState(CredentialSource.STATIC)
        if self.verify(state) and self.inputs.confirm(
            "Save credentials to AWS profile?", default=False
        ):
            profile = self.inputs.ask("Profile name [default]: ", "default", SHORT_PROMPT_TIMEOUT)
            self.save_static_keys(profile, access_key, secret_key, region)
            state.profile_name = profile
        return state

    def save_static_keys(self, profile: str, access_key: str, secret_key: str, region: str) -> None:
        self.logger.info(f"Saving credentials to profile: {profile}")
        settings = [
            ("aws_access_key_id", access_key),
            ("aws_secret_access_key", secret_key),
            ("region", region),
        ]
        for key, value in settings:
            result = self.runner.run(
                SHORT_PROMPT_TIMEOUT,
                f"aws configure set {key}",
                ["aws", "configure", "set", key, value, "--profile", profile],
                env=self.effective_env,
                echo=False,
                sensitive=[secret_key],
            )
            if not result.is_success:
                self.logger.warning(f"Could not save {key} to profile {profile}")
                return
        self.logger.success(f"Credentials saved to profile: {profile}")
