"""
Network Classification

Decides how the deploy tooling can reach its external services. A fixed
gating URL answering exactly 200 means we are inside the restricted network;
proxy variables and a direct registry probe then pick between the proxied
and the air-gapped sub-modes.

A VPN can make the gating URL reachable from outside the restricted network.
SETUP_FORCE_EXTERNAL is the escape hatch for that case.
"""

from pathlib import Path
from typing import List, Mapping, Optional

import requests

from deploykit.config import DeploySettings
from deploykit.constants import (
    NETWORK_PROBE_TIMEOUT,
    NO_PROXY_HOSTS,
    PROXY_CLEANUP_ENV_VARS,
    PROXY_ENV_VARS,
    TELEMETRY_ENV,
)
from deploykit.logger import ResultLog
from deploykit.models.deployment import NetworkClassification, NetworkMode
from deploykit.models.environment import EnvironmentOverrides


def probe_status(url: str, timeout: int = NETWORK_PROBE_TIMEOUT) -> Optional[int]:
    """
    HEAD a URL and return its status code without following redirects.

    Returns None on timeout or connection error.
    """
    try:
        response = requests.head(url, timeout=timeout, allow_redirects=False)
    except requests.RequestException:
        return None
    return response.status_code


def merge_no_proxy(existing: Optional[str], hosts: List[str]) -> str:
    """Append hosts to a NO_PROXY value, keeping order and dropping duplicates."""
    entries: List[str] = []
    for entry in (existing or "").split(",") + hosts:
        entry = entry.strip()
        if entry and entry not in entries:
            entries.append(entry)
    return ",".join(entries)


class NetworkClassifier:
    """
    Classifies the execution environment into a NetworkMode.

    The result carries environment overrides and package manager settings;
    nothing is applied to the running process here.
    """

    def __init__(
        self,
        settings: DeploySettings,
        logger: ResultLog,
        env: Mapping[str, str],
        bootstrapper=None,
    ):
        self.settings = settings
        self.logger = logger
        self.env = env
        self.bootstrapper = bootstrapper

    def classify(self) -> NetworkClassification:
        """Run the probes once and return the classification."""
        self.logger.step("Detecting network environment")

        if self.settings.force_external:
            self.logger.info(
                "External network forced via override, skipping gating probe"
            )
            result = self._external(None, "forced by override")
        else:
            url = self.settings.gating_url
            status = probe_status(url)
            self.logger.debug(f"Gating probe {url} returned {status}")
            if status == 200:
                self.logger.info(f"Corporate network detected ({url} responded 200)")
                result = self._restricted(status)
            else:
                reason = "unreachable" if status is None else f"status {status}"
                self.logger.info(f"Outside corporate network ({url} {reason})")
                result = self._external(status, reason)

        if self.settings.no_telemetry and not result.telemetry_disabled:
            result.overrides.update(TELEMETRY_ENV)
            result.telemetry_disabled = True
            self.logger.notice("SST telemetry disabled (--no-telemetry flag)")

        self.logger.info(f"Network mode: {result.mode.value}")
        return result

    def _restricted(self, status: int) -> NetworkClassification:
        overrides = EnvironmentOverrides().update(TELEMETRY_ENV)
        self.logger.notice(
            "SST telemetry disabled (corporate firewall blocks telemetry endpoints)"
        )

        proxies = {name: self.env[name] for name in PROXY_ENV_VARS if self.env.get(name)}
        if proxies:
            return self._proxied(status, overrides, proxies)

        registry = self.settings.registry_url
        registry_status = probe_status(registry)
        self.logger.debug(f"Registry probe {registry} returned {registry_status}")

        if registry_status is not None and registry_status < 400:
            self.logger.notice(
                "No proxy configured but package registry is directly reachable"
            )
            return NetworkClassification(
                mode=NetworkMode.CN_PROXY,
                overrides=overrides,
                telemetry_disabled=True,
                probe_status=status,
                reason="registry directly reachable",
            )

        self.logger.warning(
            "Package registry unreachable and no proxy configured: air-gapped network"
        )
        classification = NetworkClassification(
            mode=NetworkMode.CN_AIRGAP,
            overrides=overrides,
            telemetry_disabled=True,
            probe_status=status,
            reason="registry unreachable",
        )
        if self.bootstrapper is not None:
            # Raises CacheError when no complete cache is available
            self.bootstrapper.ensure_usable(require_complete=True)
        return classification

    def _proxied(
        self, status: int, overrides: EnvironmentOverrides, proxies: Mapping[str, str]
    ) -> NetworkClassification:
        http_proxy = proxies.get("HTTP_PROXY") or proxies.get("http_proxy")
        https_proxy = proxies.get("HTTPS_PROXY") or proxies.get("https_proxy") or http_proxy
        http_proxy = http_proxy or https_proxy

        hosts = NO_PROXY_HOSTS + list(self.settings.no_proxy_hosts)
        no_proxy = merge_no_proxy(
            self.env.get("NO_PROXY") or self.env.get("no_proxy"), hosts
        )
        overrides.update({"NO_PROXY": no_proxy, "no_proxy": no_proxy})

        self.logger.notice("Proxy detected, AWS endpoints bypass the proxy")
        self.logger.debug(f"NO_PROXY={no_proxy}")

        return NetworkClassification(
            mode=NetworkMode.CN_PROXY,
            overrides=overrides,
            npm_config_commands=[
                ["npm", "config", "set", "proxy", http_proxy],
                ["npm", "config", "set", "https-proxy", https_proxy],
            ],
            telemetry_disabled=True,
            probe_status=status,
            reason="proxy variables present",
        )

    def _external(self, status: Optional[int], reason: str) -> NetworkClassification:
        present = [name for name in PROXY_CLEANUP_ENV_VARS if self.env.get(name)]
        if present:
            self.logger.notice(
                f"Clearing local proxy variables for direct AWS access: {', '.join(present)}"
            )
        else:
            self.logger.success("External network - telemetry enabled")

        return NetworkClassification(
            mode=NetworkMode.EXTERNAL,
            overrides=EnvironmentOverrides().remove(PROXY_CLEANUP_ENV_VARS),
            npm_config_commands=[
                ["npm", "config", "delete", "proxy"],
                ["npm", "config", "delete", "https-proxy"],
            ],
            probe_status=status,
            reason=reason,
        )


def configure_package_manager(
    classification: NetworkClassification,
    runner,
    env: Mapping[str, str],
    cwd: Optional[Path] = None,
    timeout: int = 30,
) -> None:
    """
    Persist the package manager proxy settings for this mode.

    Failures are warnings: the package manager config is a convenience for
    later installs, not a precondition for deploying.
    """
    logger = runner.logger
    for command in classification.npm_config_commands:
        secrets = [arg for arg in command[4:] if "@" in arg]
        result = runner.run(
            timeout,
            f"npm config {command[2]} {command[3]}",
            command,
            env=env,
            cwd=cwd,
            echo=False,
            sensitive=secrets,
        )
        if not result.is_success:
            logger.warning(
                f"Could not {command[2]} npm {command[3]} (exit code {result.exit_code})"
            )
