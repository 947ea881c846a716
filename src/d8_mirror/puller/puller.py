"""Digest resolution and pulling of image sets into OCI image layouts."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from ..core.getter import GetterService
from ..exceptions import DigestError, InvalidReferenceError, PullError, RetryExhaustedError
from ..image.image import Image
from ..image.layout import ImageLayout
from ..image.meta import ImageMeta, parse_image_reference
from ..utils.log import UserLogger
from ..utils.retry import ConstantRetryTask, run_task

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_INTERVAL = 10.0

ImageGetter = Callable[[str], Awaitable[Image]]


@dataclass
class PullConfig:
    """What to pull and where.

    Attributes:
        name: Label of the image group used in log messages
        image_set: Image references mapped to resolved metadata, updated in place
        layout: Layout the images are written to
        getter_service: Digest and image source
        allow_missing_tags: Skip references whose digest cannot be resolved
            instead of failing the whole set
    """

    name: str
    image_set: Dict[str, Optional[ImageMeta]]
    layout: ImageLayout
    getter_service: GetterService
    allow_missing_tags: bool = False


class PullerService:
    """Pulls image sets into image layouts.

    Every digest of a set is resolved before the first image is pulled, and
    images are then fetched by digest only, so a tag moving upstream during
    the run cannot mix old and new content.
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        user_logger: Optional[UserLogger] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
        concurrency: int = 1,
    ) -> None:
        """Initialize the puller.

        Args:
            logger: Internal logger
            user_logger: Progress logger
            max_attempts: Attempts per image before giving up
            retry_interval: Seconds between attempts
            concurrency: Number of images pulled at the same time
        """
        self.logger = logger or logging.getLogger(__name__)
        self.user_logger = user_logger or UserLogger()
        self.max_attempts = max_attempts
        self.retry_interval = retry_interval
        self.concurrency = max(1, concurrency)

    async def pull_images(self, config: PullConfig) -> None:
        """Resolve missing digests of an image set, then pull all of it.

        Raises:
            PullError: If a digest cannot be resolved and missing tags are not
                allowed, or if an image cannot be pulled
        """
        self.user_logger.info(f"Beginning to pull {config.name}")

        self.user_logger.info(f"Pull {config.name} meta")
        await self.resolve_image_set(config)
        self.user_logger.info(f"All required {config.name} meta are pulled!")

        await self.pull_image_set(
            config.image_set, config.layout, config.getter_service.get_image
        )

        self.user_logger.info(f"All required {config.name} are pulled!")

    async def resolve_image_set(self, config: PullConfig) -> None:
        """Pin every unresolved reference of the set to a digest.

        References carrying a digest are pinned to it without asking the
        registry. Unresolvable references stay None when missing tags are
        allowed.
        """
        for reference, meta in list(config.image_set.items()):
            if meta is not None:
                continue

            try:
                parsed = parse_image_reference(reference)
            except (InvalidReferenceError, DigestError) as e:
                self.user_logger.debugf("failed to parse digest from %s: %s", reference, e)
                if config.allow_missing_tags:
                    continue
                raise PullError(f"parse digest from reference {reference}: {e}") from e

            tag = parsed.tag or f"@{parsed.digest}"

            if parsed.digest:
                config.image_set[reference] = ImageMeta(tag, reference, parsed.digest)
                continue

            try:
                digest = await config.getter_service.get_digest(tag)
                config.image_set[reference] = ImageMeta(tag, reference, digest)
            except Exception as e:
                self.logger.debug("Failed to get digest of %s: %s", reference, e)
                if config.allow_missing_tags:
                    continue
                raise PullError(f"get digest: {reference}: {e}") from e

    async def pull_image_set(
        self,
        image_set: Dict[str, Optional[ImageMeta]],
        layout: ImageLayout,
        image_getter: ImageGetter,
    ) -> None:
        """Pull every resolved image of the set into a layout.

        Entries without metadata are reported and skipped. Images written
        before a failure stay in the layout.

        Raises:
            PullError: If an image could not be pulled within max_attempts
        """
        total = len(image_set)
        entries = [
            (number, reference, meta)
            for number, (reference, meta) in enumerate(image_set.items(), start=1)
        ]

        if self.concurrency == 1:
            for number, reference, meta in entries:
                await self._pull_image(number, total, reference, meta, layout, image_getter)
            return

        semaphore = asyncio.Semaphore(self.concurrency)

        async def pull_limited(number: int, reference: str, meta: Optional[ImageMeta]) -> None:
            async with semaphore:
                await self._pull_image(number, total, reference, meta, layout, image_getter)

        tasks = [asyncio.create_task(pull_limited(*entry)) for entry in entries]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _pull_image(
        self,
        number: int,
        total: int,
        reference: str,
        meta: Optional[ImageMeta],
        layout: ImageLayout,
        image_getter: ImageGetter,
    ) -> None:
        self.user_logger.debugf("Preparing to pull image %s", reference)

        async def pull() -> None:
            if meta is None:
                self.user_logger.warn("⚠️ Not found in registry, skipping pull")
                return

            try:
                image = await image_getter("@" + meta.digest)
            except Exception as e:
                self.user_logger.debugf("failed to pull image %s: %s", meta.tag_reference, e)
                raise PullError(f"pull image metadata: {e}") from e

            try:
                await layout.add_image(image.with_metadata(meta), meta.tag)
            except Exception as e:
                self.user_logger.debugf("failed to add image %s: %s", meta.tag, e)
                raise PullError(f"add image to layout: {e}") from e

        try:
            await run_task(
                self.user_logger,
                f"[{number} / {total}] Pulling {reference}",
                ConstantRetryTask(self.max_attempts, self.retry_interval, pull),
            )
        except RetryExhaustedError as e:
            raise PullError(f"pull image {reference!r}: {e}") from e
