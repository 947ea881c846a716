"""Async functional mirroring operations."""

from pathlib import Path
from typing import Optional, Union

from .core.getter import RegistryImageService
from .core.registry_client import RegistryClient
from .core.types import RegistryConfig
from .image.layout import ImageLayout
from .puller.puller import DEFAULT_RETRY_INTERVAL, PullerService
from .services.common import BundlePacker
from .services.installer import InstallerOptions, InstallerService
from .services.security import SecurityService
from .utils.log import UserLogger


async def check_registry_connectivity(
    registry_url: str, timeout: int = 10, insecure: bool = False
) -> bool:
    """레지스트리가 Registry API v2를 제공하는지 확인합니다.

    Args:
        registry_url: 레지스트리 루트 (예: "registry.example.com/deckhouse/ee")
        timeout: 요청 타임아웃 (초, 기본값: 10초)
        insecure: 스킴이 없을 때 HTTP 사용 여부

    Returns:
        bool: 레지스트리 접근 가능 시 True

    Examples:
        accessible = await check_registry_connectivity("localhost:5000", insecure=True)
    """
    config = RegistryConfig(url=registry_url, timeout=timeout, insecure=insecure)
    async with RegistryClient(config) as client:
        return await client.check_registry_v2()


async def pull_installer(
    registry_url: str,
    working_dir: Union[str, Path],
    target_tag: str = "",
    insecure: bool = False,
    timeout: int = 300,
    retry_interval: float = DEFAULT_RETRY_INTERVAL,
    concurrency: int = 1,
    bundle_packer: Optional[BundlePacker] = None,
) -> ImageLayout:
    """설치 프로그램 이미지를 OCI 이미지 레이아웃으로 가져옵니다.

    태그는 먼저 digest로 고정된 후 digest로만 다운로드됩니다.

    Args:
        registry_url: 레지스트리 루트 (예: "registry.example.com/deckhouse/ee")
        working_dir: 레이아웃을 만들 작업 디렉토리 (<working_dir>/installer)
        target_tag: 가져올 태그 (기본값: "latest", 없으면 건너뜀)
        insecure: 스킴이 없을 때 HTTP 사용 여부
        timeout: 요청 타임아웃 (초, 기본값: 300초)
        retry_interval: 재시도 간격 (초, 기본값: 10초)
        concurrency: 동시에 가져올 이미지 수
        bundle_packer: 레이아웃을 번들로 묶는 선택적 함수

    Returns:
        ImageLayout: 이미지가 기록된 레이아웃

    Raises:
        ServiceError: 레지스트리 접근 또는 다운로드 실패 시

    Examples:
        layout = await pull_installer("registry.example.com/deckhouse/ee", "./mirror")
        print(layout.get_meta("latest").digest)
    """
    config = RegistryConfig(url=registry_url, timeout=timeout, insecure=insecure)
    user_logger = UserLogger()

    async with RegistryClient(config) as client:
        service = InstallerService(
            RegistryImageService(client),
            working_dir,
            options=InstallerOptions(target_tag=target_tag),
            user_logger=user_logger,
            puller=PullerService(
                user_logger=user_logger,
                retry_interval=retry_interval,
                concurrency=concurrency,
            ),
            bundle_packer=bundle_packer,
        )
        await service.pull_installer()

    return service.layout


async def pull_security_databases(
    registry_url: str,
    working_dir: Union[str, Path],
    insecure: bool = False,
    timeout: int = 300,
    retry_interval: float = DEFAULT_RETRY_INTERVAL,
    bundle_packer: Optional[BundlePacker] = None,
) -> dict[str, ImageLayout]:
    """보안 데이터베이스 이미지를 데이터베이스별 레이아웃으로 가져옵니다.

    레지스트리에 없는 데이터베이스는 경고만 남기고 건너뜁니다.

    Args:
        registry_url: 레지스트리 루트 (예: "registry.example.com/deckhouse/ee")
        working_dir: 작업 디렉토리 (<working_dir>/security/<db>)
        insecure: 스킴이 없을 때 HTTP 사용 여부
        timeout: 요청 타임아웃 (초, 기본값: 300초)
        retry_interval: 재시도 간격 (초, 기본값: 10초)
        bundle_packer: 레이아웃을 번들로 묶는 선택적 함수

    Returns:
        dict[str, ImageLayout]: 데이터베이스 이름별 레이아웃 (건너뛴 경우 빈 딕셔너리)

    Raises:
        ServiceError: 레지스트리 접근 또는 다운로드 실패 시

    Examples:
        layouts = await pull_security_databases("registry.example.com/deckhouse/ee", "./mirror")
        for name, layout in layouts.items():
            print(name, layout.path)
    """
    config = RegistryConfig(url=registry_url, timeout=timeout, insecure=insecure)
    user_logger = UserLogger()

    async with RegistryClient(config) as client:
        service = SecurityService(
            RegistryImageService(client),
            working_dir,
            user_logger=user_logger,
            puller=PullerService(user_logger=user_logger, retry_interval=retry_interval),
            bundle_packer=bundle_packer,
        )
        await service.pull_security()

    return dict(service.layouts)
