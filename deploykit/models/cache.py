"""
Deployment Cache Models

Manifest of the portable artifact cache used for restricted-network deploys.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from deploykit.constants import (
    CACHE_MANIFEST,
    CACHE_NODE_MODULES_DIR,
    CACHE_PLUGINS_DIR,
    CACHE_SST_DIR,
)


@dataclass
class CacheManifest:
    """Contents of .deployment-cache/manifest.json."""

    created: str = ""
    created_by: str = ""
    hostname: str = ""
    node_version: str = "unknown"
    npm_version: str = "unknown"
    aws_provider: str = ""
    includes_node_modules: bool = False
    pulumi_plugins: List[str] = field(default_factory=list)
    notes: str = ""

    def names_provider(self, prefix: str) -> bool:
        """Check if the manifest names a provider artifact with the given prefix."""
        return bool(self.aws_provider) and self.aws_provider.startswith(prefix)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "created": self.created,
            "created_by": self.created_by,
            "hostname": self.hostname,
            "node_version": self.node_version,
            "npm_version": self.npm_version,
            "aws_provider": self.aws_provider,
            "includes_node_modules": self.includes_node_modules,
            "pulumi_plugins": self.pulumi_plugins,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheManifest":
        """Create from dictionary."""
        return cls(
            created=data.get("created", ""),
            created_by=data.get("created_by", ""),
            hostname=data.get("hostname", ""),
            node_version=data.get("node_version", "unknown"),
            npm_version=data.get("npm_version", "unknown"),
            aws_provider=data.get("aws_provider", ""),
            includes_node_modules=bool(data.get("includes_node_modules", False)),
            pulumi_plugins=list(data.get("pulumi_plugins") or []),
            notes=data.get("notes", ""),
        )

    @classmethod
    def load(cls, cache_root: Path) -> Optional["CacheManifest"]:
        """Load manifest from a cache directory (None if absent or unreadable)."""
        manifest_path = cache_root / CACHE_MANIFEST
        if not manifest_path.is_file():
            return None
        try:
            data = json.loads(manifest_path.read_text())
        except (OSError, ValueError):
            return None
        if not isinstance(data, dict):
            return None
        return cls.from_dict(data)

    def save(self, cache_root: Path) -> Path:
        manifest_path = cache_root / CACHE_MANIFEST
        manifest_path.write_text(json.dumps(self.to_dict(), indent=2) + "\n")
        return manifest_path


class DeploymentCache:
    """Portable cache directory: manifest plus named artifact directories."""

    def __init__(self, root: Path):
        self.root = root
        self._manifest: Optional[CacheManifest] = None

    @property
    def exists(self) -> bool:
        return self.root.is_dir()

    @property
    def manifest(self) -> Optional[CacheManifest]:
        if self._manifest is None:
            self._manifest = CacheManifest.load(self.root)
        return self._manifest

    @property
    def plugins_dir(self) -> Path:
        return self.root / CACHE_PLUGINS_DIR

    @property
    def sst_dir(self) -> Path:
        return self.root / CACHE_SST_DIR

    @property
    def node_modules_dir(self) -> Path:
        return self.root / CACHE_NODE_MODULES_DIR

    def provider_artifact(self) -> Optional[Path]:
        if self.manifest is None or not self.manifest.aws_provider:
            return None
        return self.plugins_dir / self.manifest.aws_provider

    def is_usable(self, provider_prefix: str) -> bool:
        """Manifest names an expected provider and that provider is in the cache."""
        if not self.exists or self.manifest is None:
            return False
        if not self.manifest.names_provider(provider_prefix):
            return False
        artifact = self.provider_artifact()
        return artifact is not None and artifact.exists()

    def is_complete(self, provider_prefix: str) -> bool:
        """Usable and bundles the dependency tree needed for air-gapped installs."""
        return (
            self.is_usable(provider_prefix)
            and self.manifest.includes_node_modules
            and self.node_modules_dir.is_dir()
        )
