import json

import pytest

from deploykit.cache import (
    CacheBootstrapper,
    CacheExporter,
    copy_missing,
    pulumi_plugins_dir,
)
from deploykit.exceptions import CacheError
from deploykit.models.cache import CacheManifest, DeploymentCache

from conftest import FakeRunner, ScriptedInput

PROVIDER = "resource-aws-v6.52.0"


def build_cache(settings, provider=PROVIDER, node_modules=False):
    root = settings.cache_root
    plugins = root / "pulumi-plugins"
    (plugins / provider).mkdir(parents=True)
    (plugins / provider / "pulumi-resource-aws").write_text("cached")
    (plugins / "resource-random-v4.0.0").mkdir()
    sst = root / "sst-binaries"
    sst.mkdir()
    (sst / "bin").write_text("cached")
    if node_modules:
        (root / "node_modules" / "sst").mkdir(parents=True)
    CacheManifest(
        created="2026-01-01T00:00:00Z",
        aws_provider=provider,
        includes_node_modules=node_modules,
        pulumi_plugins=[provider, "resource-random-v4.0.0"],
    ).save(root)
    return root


def test_restore_never_overwrites_existing_artifacts(settings, logger, home):
    build_cache(settings)
    live = pulumi_plugins_dir({}, home) / PROVIDER
    live.mkdir(parents=True)
    (live / "pulumi-resource-aws").write_text("local")

    bootstrapper = CacheBootstrapper(settings, logger, {}, home=home)
    assert bootstrapper.restore_if_present()

    assert (live / "pulumi-resource-aws").read_text() == "local"
    assert (pulumi_plugins_dir({}, home) / "resource-random-v4.0.0").is_dir()
    assert bootstrapper.in_use
    assert bootstrapper.overrides.set["PULUMI_SKIP_UPDATE_CHECK"] == "true"


def test_restore_copies_node_modules_only_when_missing(settings, logger, home):
    build_cache(settings, node_modules=True)

    CacheBootstrapper(settings, logger, {}, home=home).restore()

    assert (settings.project_root / "node_modules" / "sst").is_dir()


def test_pulumi_home_is_honored(settings, logger, home, tmp_path):
    build_cache(settings)
    pulumi_home = tmp_path / "pulumi-home"

    CacheBootstrapper(settings, logger, {"PULUMI_HOME": str(pulumi_home)}, home=home).restore()

    assert (pulumi_home / "plugins" / PROVIDER).is_dir()


def test_ensure_usable_without_cache_raises_with_instructions(settings, logger, home):
    with pytest.raises(CacheError) as excinfo:
        CacheBootstrapper(settings, logger, {}, home=home).ensure_usable(require_complete=True)

    assert "deploykit cache create --include-node-modules" in excinfo.value.context


def test_manifest_without_provider_is_unusable(settings, logger, home):
    build_cache(settings, provider="resource-gcp-v7.0.0")

    with pytest.raises(CacheError, match="not usable"):
        CacheBootstrapper(settings, logger, {}, home=home).ensure_usable(require_complete=False)


def test_incomplete_cache_is_rejected_for_airgap(settings, logger, home):
    build_cache(settings, node_modules=False)

    with pytest.raises(CacheError, match="incomplete"):
        CacheBootstrapper(settings, logger, {}, home=home).ensure_usable(require_complete=True)


def test_incomplete_cache_accepted_when_engine_already_installed(settings, logger, home):
    build_cache(settings, node_modules=False)
    (settings.project_root / "node_modules" / "sst").mkdir(parents=True)
    bootstrapper = CacheBootstrapper(settings, logger, {}, home=home)

    bootstrapper.ensure_usable(require_complete=True)

    assert bootstrapper.in_use


def test_unusable_cache_is_ignored_outside_airgap(settings, logger, home):
    settings.cache_root.mkdir()
    bootstrapper = CacheBootstrapper(settings, logger, {}, home=home)

    assert not bootstrapper.restore_if_present()
    assert not bootstrapper.in_use


def test_deployment_cache_readiness(settings):
    cache = DeploymentCache(settings.cache_root)
    assert not cache.exists

    build_cache(settings, node_modules=True)
    cache = DeploymentCache(settings.cache_root)
    assert cache.is_usable("resource-aws-")
    assert cache.is_complete("resource-aws-")
    assert not cache.is_usable("resource-azure-")


def test_copy_missing_returns_copied_names(tmp_path):
    source = tmp_path / "src"
    (source / "a").mkdir(parents=True)
    (source / "b.txt").write_text("b")
    destination = tmp_path / "dst"
    destination.mkdir()
    (destination / "b.txt").write_text("mine")

    assert copy_missing(source, destination) == ["a"]
    assert (destination / "b.txt").read_text() == "mine"


def seed_local_state(home):
    plugins = pulumi_plugins_dir({}, home)
    (plugins / "resource-aws-v6.1.0").mkdir(parents=True)
    (plugins / PROVIDER).mkdir()
    (plugins / "resource-random-v4.0.0").mkdir()
    return plugins


def make_exporter(settings, logger, home, answers=()):
    runner = FakeRunner(logger)
    return CacheExporter(settings, logger, runner, ScriptedInput(logger, list(answers)), {}, home=home)


def test_create_writes_manifest_with_latest_provider(settings, logger, home):
    seed_local_state(home)
    (settings.project_root / "node_modules" / "sst").mkdir(parents=True)

    root = make_exporter(settings, logger, home).create(include_node_modules=True)

    manifest = json.loads((root / "manifest.json").read_text())
    assert manifest["aws_provider"] == PROVIDER
    assert manifest["includes_node_modules"] is True
    assert manifest["node_version"] == "v20.11.0"
    assert sorted(manifest["pulumi_plugins"]) == sorted(
        ["resource-aws-v6.1.0", PROVIDER, "resource-random-v4.0.0"]
    )
    assert DeploymentCache(root).is_complete("resource-aws-")


def test_create_refuses_without_aws_provider(settings, logger, home):
    (pulumi_plugins_dir({}, home) / "resource-random-v4.0.0").mkdir(parents=True)

    with pytest.raises(CacheError, match="AWS provider not found"):
        make_exporter(settings, logger, home).create()


def test_create_refuses_without_plugins(settings, logger, home):
    with pytest.raises(CacheError, match="No Pulumi plugins"):
        make_exporter(settings, logger, home).create()


def test_create_keeps_existing_cache_when_declined(settings, logger, home):
    seed_local_state(home)
    build_cache(settings)

    assert make_exporter(settings, logger, home, answers=["n"]).create() is None
    assert (settings.cache_root / "sst-binaries" / "bin").read_text() == "cached"


def test_create_force_replaces_existing_cache(settings, logger, home):
    seed_local_state(home)
    build_cache(settings)

    root = make_exporter(settings, logger, home).create(force=True)

    assert not (root / "sst-binaries" / "bin").exists()
    assert CacheManifest.load(root).aws_provider == PROVIDER
