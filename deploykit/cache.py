"""
Deployment Cache

Bootstraps local deploy-engine state from the portable .deployment-cache
directory and exports that directory from a machine that has already deployed
successfully.
"""

import getpass
import platform
import re
import shutil
import socket
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Mapping, Optional, Tuple

from deploykit.config import DeploySettings
from deploykit.constants import CACHE_QUIET_ENV, ENGINE_PACKAGE
from deploykit.exceptions import CacheError
from deploykit.logger import ResultLog
from deploykit.models.cache import CacheManifest, DeploymentCache
from deploykit.models.environment import EnvironmentOverrides

CACHE_REMEDIATION = """From an unrestricted network, after a successful deployment, run:
  deploykit cache create --include-node-modules
Then copy .deployment-cache/ to this machine (commit it, or transfer it as a tarball)."""


def pulumi_plugins_dir(env: Mapping[str, str], home: Path) -> Path:
    pulumi_home = env.get("PULUMI_HOME")
    return (Path(pulumi_home) if pulumi_home else home / ".pulumi") / "plugins"


def sst_binaries_dir(env: Mapping[str, str], home: Path) -> Path:
    if platform.system() == "Darwin":
        return home / "Library" / "Application Support" / "sst"
    config_home = env.get("XDG_CONFIG_HOME")
    return (Path(config_home) if config_home else home / ".config") / "sst"


def version_key(name: str) -> Tuple[int, ...]:
    """Numeric sort key for names like resource-aws-v6.52.0."""
    return tuple(int(part) for part in re.findall(r"\d+", name))


def engine_installed(project_root: Path) -> bool:
    """The live dependency tree already carries the deploy engine."""
    return (project_root / "node_modules" / ENGINE_PACKAGE).is_dir()


def copy_missing(source: Path, destination: Path) -> List[str]:
    """
    Copy each entry of source into destination unless it already exists there.

    Returns the names copied.
    """
    if not source.is_dir():
        return []
    destination.mkdir(parents=True, exist_ok=True)
    copied = []
    for entry in sorted(source.iterdir()):
        target = destination / entry.name
        if target.exists() or target.is_symlink():
            continue
        if entry.is_dir():
            shutil.copytree(entry, target, symlinks=True)
        else:
            shutil.copy2(entry, target)
        copied.append(entry.name)
    return copied


class CacheBootstrapper:
    """
    Validates the deployment cache and restores missing local artifacts.

    Restoring is strictly additive: an artifact that already exists locally is
    never overwritten by the cached copy.
    """

    def __init__(
        self,
        settings: DeploySettings,
        logger: ResultLog,
        env: Mapping[str, str],
        home: Optional[Path] = None,
    ):
        self.settings = settings
        self.logger = logger
        self.env = env
        self.home = home or Path.home()
        self.cache = DeploymentCache(settings.cache_root)
        self.overrides = EnvironmentOverrides()
        self.in_use = False

    def ensure_usable(self, require_complete: bool) -> None:
        """
        Require a usable (and optionally complete) cache, then restore from it.

        Raises:
            CacheError: With remediation text when the requirement is not met
        """
        cache = self.cache
        if not cache.exists:
            self.logger.error(f"No deployment cache found at {cache.root}")
            raise CacheError(
                "Air-gapped network detected and no deployment cache is available",
                context=CACHE_REMEDIATION,
            )

        prefix = self.settings.provider_prefix
        if not cache.is_usable(prefix):
            self.logger.error(
                f"Deployment cache at {cache.root} does not provide a {prefix}* provider plugin"
            )
            raise CacheError(
                "Deployment cache is not usable (manifest or provider plugin missing)",
                context=CACHE_REMEDIATION,
            )

        if require_complete and not cache.is_complete(prefix):
            if engine_installed(self.settings.project_root):
                self.logger.info(
                    "Cache has no node_modules but the live dependency tree is present"
                )
            else:
                self.logger.error("Deployment cache does not include node_modules")
                raise CacheError(
                    "Deployment cache is incomplete for air-gapped deployment",
                    context=CACHE_REMEDIATION,
                )

        self.restore()

    def restore_if_present(self) -> bool:
        """Use the cache when it exists and is usable; never fatal."""
        if not self.cache.exists:
            self.logger.debug(f"No deployment cache at {self.cache.root}")
            return False
        if not self.cache.is_usable(self.settings.provider_prefix):
            self.logger.warning(
                f"Deployment cache at {self.cache.root} is not usable, ignoring it"
            )
            return False
        self.restore()
        return True

    def restore(self) -> None:
        """Copy missing artifacts into their live locations."""
        cache = self.cache
        manifest = cache.manifest
        self.logger.notice(
            f"Using deployment cache (provider {manifest.aws_provider}, created {manifest.created or 'unknown'})"
        )

        plugins = copy_missing(cache.plugins_dir, pulumi_plugins_dir(self.env, self.home))
        self._report("Pulumi plugins", plugins)

        binaries = copy_missing(cache.sst_dir, sst_binaries_dir(self.env, self.home))
        self._report("SST binaries", binaries)

        live_modules = self.settings.project_root / "node_modules"
        if cache.node_modules_dir.is_dir() and not live_modules.exists():
            self.logger.info("Restoring node_modules from deployment cache...")
            shutil.copytree(cache.node_modules_dir, live_modules, symlinks=True)
            self.logger.success("node_modules restored from cache")
        elif cache.node_modules_dir.is_dir():
            self.logger.debug("node_modules already present, cache copy not used")

        self.overrides.update(CACHE_QUIET_ENV)
        self.in_use = True

    def _report(self, label: str, copied: List[str]) -> None:
        if copied:
            self.logger.success(f"{label} restored from cache: {', '.join(copied)}")
        else:
            self.logger.debug(f"{label}: nothing to restore")


class CacheExporter:
    """Creates the portable cache after a successful deployment."""

    def __init__(
        self,
        settings: DeploySettings,
        logger: ResultLog,
        runner,
        inputs,
        env: Mapping[str, str],
        home: Optional[Path] = None,
    ):
        self.settings = settings
        self.logger = logger
        self.runner = runner
        self.inputs = inputs
        self.env = env
        self.home = home or Path.home()

    def _tool_version(self, tool: str) -> str:
        result = self.runner.run(
            30, f"{tool} --version", [tool, "--version"], env=self.env, capture=True, echo=False
        )
        lines = result.output.strip().splitlines()
        return lines[-1].strip() if result.is_success and lines else "unknown"

    def find_provider(self, plugins_dir: Path) -> Optional[str]:
        prefix = self.settings.provider_prefix
        candidates = sorted(
            (entry.name for entry in plugins_dir.iterdir() if entry.name.startswith(prefix)),
            key=version_key,
        )
        return candidates[-1] if candidates else None

    def create(self, include_node_modules: bool = False, force: bool = False) -> Optional[Path]:
        """
        Export the cache directory.

        Returns:
            Cache root, or None when the user declined to overwrite

        Raises:
            CacheError: If there is nothing to export
        """
        plugins_dir = pulumi_plugins_dir(self.env, self.home)
        if not plugins_dir.is_dir() or not any(plugins_dir.iterdir()):
            raise CacheError(
                f"No Pulumi plugins found in {plugins_dir}",
                context="Please run a successful deployment first: deploykit-setup --stage dev",
            )

        provider = self.find_provider(plugins_dir)
        if provider is None:
            raise CacheError(
                "AWS provider not found in Pulumi plugins",
                context="Please run a successful deployment first: deploykit-setup --stage dev",
            )
        self.logger.success(f"Found AWS provider: {provider}")

        project_modules = self.settings.project_root / "node_modules"
        if include_node_modules and not project_modules.is_dir():
            raise CacheError("node_modules not found", context="Run npm install first")

        cache = DeploymentCache(self.settings.cache_root)
        if cache.exists:
            if force:
                self.logger.warning("Removing existing cache (--force)")
            elif not self.inputs.confirm(
                f"Cache already exists at {cache.root}. Overwrite?", default=False
            ):
                self.logger.notice("Aborted")
                return None
            shutil.rmtree(cache.root)

        self.logger.step("Creating deployment cache")
        cache.plugins_dir.mkdir(parents=True)
        cache.sst_dir.mkdir(parents=True)

        plugins = copy_missing(plugins_dir, cache.plugins_dir)
        self.logger.success(f"Pulumi plugins: {len(plugins)} cached")

        sst_dir = sst_binaries_dir(self.env, self.home)
        if sst_dir.is_dir():
            binaries = copy_missing(sst_dir, cache.sst_dir)
            self.logger.success(f"SST binaries: {len(binaries)} cached")
        else:
            self.logger.warning(f"SST binaries not found at {sst_dir}")

        if include_node_modules:
            self.logger.info("Copying node_modules (this may take a while)...")
            shutil.copytree(project_modules, cache.node_modules_dir, symlinks=True)
            self.logger.success("node_modules cached")

        manifest = CacheManifest(
            created=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            created_by=getpass.getuser(),
            hostname=socket.gethostname(),
            node_version=self._tool_version("node"),
            npm_version=self._tool_version("npm"),
            aws_provider=provider,
            includes_node_modules=include_node_modules,
            pulumi_plugins=plugins,
            notes="Cache created for offline SST deployment. Used automatically by deploykit-setup in air-gapped networks.",
        )
        manifest_path = manifest.save(cache.root)
        self.logger.success(f"Manifest written: {manifest_path}")

        if not include_node_modules:
            self.logger.warning(
                "node_modules NOT included; re-run with --include-node-modules for fully air-gapped deployment"
            )
        return cache.root
