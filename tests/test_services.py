"""Tests for the installer and security mirroring services."""

import asyncio

import pytest

from d8_mirror.exceptions import RegistryConnectionError, ServiceError
from d8_mirror.image.indexes import ANNOTATION_IMAGE_REFERENCE_NAME
from d8_mirror.services import common
from d8_mirror.services.installer import InstallerOptions, InstallerService
from d8_mirror.services.security import (
    SECURITY_DATABASES,
    SecurityDownloadList,
    SecurityService,
)
from tests.helpers import FakeGetterService, make_image

ROOT = "registry.example.com/deckhouse"


class RecordingPacker:
    """Bundle packer recording its calls."""

    def __init__(self):
        self.calls = []

    async def __call__(self, directory, bundle_name):
        self.calls.append((directory, bundle_name))


def installer_service(registry, tmp_path, user_logger, puller, target_tag="", packer=None):
    return InstallerService(
        registry,
        tmp_path,
        options=InstallerOptions(target_tag=target_tag),
        user_logger=user_logger,
        puller=puller,
        bundle_packer=packer,
    )


def security_service(registry, tmp_path, user_logger, puller, packer=None):
    return SecurityService(
        registry, tmp_path, user_logger=user_logger, puller=puller, bundle_packer=packer
    )


@pytest.mark.asyncio
async def test_pull_installer_latest(tmp_path, user_logger, puller):
    """Test the latest installer is pulled when no tag is given."""
    registry = FakeGetterService(root=ROOT)
    image = make_image(b"installer")
    registry.with_segment("installer").add_image("latest", image)
    packer = RecordingPacker()

    service = installer_service(registry, tmp_path, user_logger, puller, packer=packer)
    await service.pull_installer()

    meta = service.layout.get_meta("latest")
    assert meta.tag_reference == f"{ROOT}/installer:latest"
    assert meta.digest == image.digest
    assert service.layout.path == tmp_path / "installer"
    assert packer.calls == [(tmp_path / "installer", "installer.tar")]


@pytest.mark.asyncio
async def test_pull_installer_target_tag(tmp_path, user_logger, puller):
    """Test pulling an explicit installer tag."""
    registry = FakeGetterService(root=ROOT)
    image = make_image(b"installer-v1.70")
    registry.with_segment("installer").add_image("v1.70.0", image)

    service = installer_service(registry, tmp_path, user_logger, puller, target_tag="v1.70.0")
    assert service.find_tags_to_mirror() == ["v1.70.0"]

    await service.pull_installer()

    [descriptor] = service.layout.descriptors()
    assert descriptor.annotations[ANNOTATION_IMAGE_REFERENCE_NAME] == (
        f"{ROOT}/installer:v1.70.0"
    )


@pytest.mark.asyncio
async def test_pull_installer_missing_tag(tmp_path, user_logger, puller):
    """Test a missing installer tag fails access validation."""
    registry = FakeGetterService(root=ROOT)

    service = installer_service(registry, tmp_path, user_logger, puller, target_tag="v9.9.9")
    with pytest.raises(ServiceError, match="v9.9.9"):
        await service.pull_installer()

    assert service.layout is None
    assert registry.with_segment("installer").image_calls == []


@pytest.mark.asyncio
async def test_pull_installer_pull_failure(tmp_path, user_logger, puller):
    """Test a failing pull is reported as a service error."""
    registry = FakeGetterService(root=ROOT)
    installer = registry.with_segment("installer")
    installer.add_image("latest", make_image(b"installer"))
    installer.image_failures = -1

    service = installer_service(registry, tmp_path, user_logger, puller)
    with pytest.raises(ServiceError, match="pull installer"):
        await service.pull_installer()


@pytest.mark.asyncio
async def test_access_check_timeout(tmp_path, user_logger, puller, monkeypatch):
    """Test an unresponsive registry fails access validation."""

    class SlowRegistry(FakeGetterService):
        async def check_image_exists(self, tag):
            await asyncio.sleep(10)

    registry = FakeGetterService(root=ROOT)
    registry.children["installer"] = SlowRegistry(root=f"{ROOT}/installer")
    monkeypatch.setattr(common, "ACCESS_CHECK_TIMEOUT", 0.01)

    service = installer_service(registry, tmp_path, user_logger, puller)
    with pytest.raises(ServiceError):
        await service.validate_installer_access()


def test_security_download_list():
    """Test every security database gets its own download list."""
    download_list = SecurityDownloadList(ROOT)
    download_list.fill_security_images()

    assert set(download_list.databases) == set(SECURITY_DATABASES)
    assert list(download_list.databases["trivy-db"].images) == [
        f"{ROOT}/security/trivy-db:2"
    ]
    assert list(download_list.databases["trivy-checks"].images) == [
        f"{ROOT}/security/trivy-checks:0"
    ]


@pytest.mark.asyncio
async def test_pull_security(tmp_path, user_logger, puller):
    """Test pulling the security databases into per-database layouts."""
    registry = FakeGetterService(root=ROOT)
    security = registry.with_segment("security")
    digests = {}
    for name, tag in SECURITY_DATABASES.items():
        if name == "trivy-bdu":
            continue
        digests[name] = security.with_segment(name).add_image(tag, make_image(name.encode()))
    packer = RecordingPacker()

    service = security_service(registry, tmp_path, user_logger, puller, packer)
    assert await service.pull_security() is True

    assert set(service.layouts) == set(SECURITY_DATABASES)
    for name, digest in digests.items():
        layout = service.layouts[name]
        assert layout.path == tmp_path / "security" / name
        assert layout.get_meta(SECURITY_DATABASES[name]).digest == digest

    # A database missing from the registry leaves an empty layout
    assert service.layouts["trivy-bdu"].descriptors() == []
    assert packer.calls == [(tmp_path / "security", "security.tar")]


@pytest.mark.asyncio
async def test_pull_security_without_databases(tmp_path, user_logger, puller, caplog):
    """Test a registry without security databases is skipped."""
    registry = FakeGetterService(root=ROOT)
    packer = RecordingPacker()

    service = security_service(registry, tmp_path, user_logger, puller, packer)
    with caplog.at_level("WARNING", logger="tests.user"):
        assert await service.pull_security() is False

    assert "Skipping pull of security databases" in caplog.text
    assert service.layouts == {}
    assert not (tmp_path / "security").exists()
    assert packer.calls == []


@pytest.mark.asyncio
async def test_validate_security_access_error(tmp_path, user_logger, puller):
    """Test registry errors during validation are fatal."""

    class BrokenRegistry(FakeGetterService):
        async def check_image_exists(self, tag):
            raise RegistryConnectionError("connection refused")

    registry = FakeGetterService(root=ROOT)
    registry.with_segment("security").children["trivy-db"] = BrokenRegistry()

    service = security_service(registry, tmp_path, user_logger, puller)
    with pytest.raises(ServiceError, match="connection refused"):
        await service.pull_security()
