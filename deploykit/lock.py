"""
Deployment Lock Coordination

The remote lock is owned by the deploy engine. Before mutating a stage we
make a bounded, best-effort attempt to clear a possibly stale lock, repair the
engine tooling if an install was silently partial, then run the deploy.
"""

import time
from pathlib import Path
from typing import Callable, Mapping, Optional

from deploykit.config import DeploySettings
from deploykit.constants import (
    ENGINE_PACKAGE,
    FALLBACK_INSTALL_ARGS,
    NOT_LOCKED_MARKERS,
    UNLOCK_ATTEMPT_TIMEOUT,
    UNLOCK_MAX_ATTEMPTS,
    UNLOCK_PROPAGATION_DELAY,
    UNLOCK_RETRY_DELAY,
)
from deploykit.exceptions import DeploymentError
from deploykit.logger import ResultLog
from deploykit.models.results import LockOutcome, OperationResult
from deploykit.runner import CommandRunner


def classify_unlock(result: OperationResult) -> LockOutcome:
    """Map an unlock invocation to released / not locked / failed."""
    output = result.output.lower()
    if any(marker in output for marker in NOT_LOCKED_MARKERS):
        return LockOutcome.NOT_LOCKED
    if result.is_success:
        return LockOutcome.RELEASED
    return LockOutcome.FAILED


def engine_tooling_present(project_root: Path) -> bool:
    modules = project_root / "node_modules"
    package = modules / ENGINE_PACKAGE / "package.json"
    bin_dir = modules / ".bin"
    has_bin = (bin_dir / ENGINE_PACKAGE).exists() or (bin_dir / f"{ENGINE_PACKAGE}.cmd").exists()
    return package.is_file() and has_bin


class LockCoordinator:
    """Clears the deployment lock, then performs the guarded deploy."""

    def __init__(
        self,
        settings: DeploySettings,
        logger: ResultLog,
        runner: CommandRunner,
        env: Mapping[str, str],
        sleep: Callable[[float], None] = time.sleep,
        before_deploy: Optional[Callable[[], None]] = None,
    ):
        self.settings = settings
        self.logger = logger
        self.runner = runner
        self.env = env
        self.sleep = sleep
        self.before_deploy = before_deploy

    def _attempt(self, stage: str, attempt: int) -> LockOutcome:
        result = self.runner.run(
            UNLOCK_ATTEMPT_TIMEOUT,
            f"SST unlock (attempt {attempt}/{UNLOCK_MAX_ATTEMPTS})",
            ["npx", "sst", "unlock", "--stage", stage],
            env=self.env,
            cwd=self.settings.project_root,
            capture=True,
        )
        outcome = classify_unlock(result)
        if outcome == LockOutcome.FAILED:
            self.logger.warning(
                f"Unlock attempt {attempt}/{UNLOCK_MAX_ATTEMPTS} did not succeed ({result.outcome.value}, exit code {result.exit_code})"
            )
        return outcome

    def release_lock(self, stage: str) -> LockOutcome:
        """
        Idempotently release the lock for a stage.

        Never raises: the lock is a safety net, the deploy engine still guards
        its own state.
        """
        self.logger.step(f"Releasing deployment lock for stage: {stage}")

        for attempt in range(1, UNLOCK_MAX_ATTEMPTS + 1):
            outcome = self._attempt(stage, attempt)

            if outcome == LockOutcome.NOT_LOCKED:
                self.logger.success("Deployment lock not held: unlock not needed")
                return outcome

            if outcome == LockOutcome.RELEASED:
                self.logger.success("Deployment lock released")
                self.logger.info(
                    f"Waiting {UNLOCK_PROPAGATION_DELAY}s for lock release to propagate"
                )
                self.sleep(UNLOCK_PROPAGATION_DELAY)
                return outcome

            if attempt < UNLOCK_MAX_ATTEMPTS:
                self.sleep(UNLOCK_RETRY_DELAY)

        self.logger.warning(
            f"Could not confirm lock release after {UNLOCK_MAX_ATTEMPTS} attempts"
        )
        return LockOutcome.FAILED

    def ensure_engine_tooling(self) -> None:
        """
        Repair a silently partial install of the deploy engine.

        Raises:
            DeploymentError: If the fallback install does not produce the engine
        """
        root = self.settings.project_root
        if engine_tooling_present(root):
            self.logger.debug("Deploy engine tooling present in node_modules")
            return

        self.logger.warning(
            f"{ENGINE_PACKAGE} is missing from node_modules, running fallback install"
        )
        result = self.runner.run(
            self.settings.timeout,
            "npm install (fallback resolution)",
            FALLBACK_INSTALL_ARGS,
            env=self.env,
            cwd=root,
        )
        if result.is_success and engine_tooling_present(root):
            self.logger.success("Deploy engine tooling installed")
            return

        raise DeploymentError(
            f"{ENGINE_PACKAGE} is not installed and the fallback install did not fix it",
            context=f"Run npm install manually, then retry. Log: {self.logger.log_path}",
        )

    def deploy(self, stage: str, timeout_seconds: int) -> OperationResult:
        """
        Run the mutating deploy.

        Raises:
            DeploymentError: On timeout or failure
        """
        self.logger.step(f"Deploying to stage: {stage}")
        self.logger.info(f"SST deployment timeout: {timeout_seconds}s")
        self.logger.notice("Starting SST deployment (this may take several minutes)...")

        result = self.runner.run(
            timeout_seconds,
            f"SST deployment to {stage}",
            ["npx", "sst", "deploy", "--stage", stage],
            env=self.env,
            cwd=self.settings.project_root,
        )
        if result.is_timeout:
            raise DeploymentError(
                f"Deployment timed out after {timeout_seconds}s",
                context=f"Check logs at: {self.logger.log_path}",
            )
        if result.is_failure:
            raise DeploymentError(
                f"Deployment failed (exit code {result.exit_code})",
                context=f"Check logs at: {self.logger.log_path}",
            )

        self.logger.success("Deployment complete!")
        return result

    def ensure_unlocked_then_deploy(self, stage: str, timeout_seconds: int) -> OperationResult:
        """Unlock loop, tooling repair, then deploy under double the timeout."""
        self.release_lock(stage)
        self.ensure_engine_tooling()
        if self.before_deploy:
            self.before_deploy()
        return self.deploy(stage, timeout_seconds * 2)
