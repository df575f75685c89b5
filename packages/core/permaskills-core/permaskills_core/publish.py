"""Publish a skill directory to the registry.

:class:`PublishPipeline` runs ``validate → bundle → upload → register|update``.
A failure at any stage raises that stage's error and leaves the
registry untouched.  The signing provider is entered with ``async with``
for the whole run, so it is closed on success and on every failure, and
the returned :class:`PublishResult` only holds plain data.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from permaskills_core.bundle import BundleBuilder, format_size
from permaskills_core.exceptions import AuthorizationError, SkillNotFoundError, ValidationError
from permaskills_core.manifest import MANIFEST_FILENAME, SkillManifest, parse_manifest
from permaskills_core.registry import RegistryClient, SkillMetadata
from permaskills_core.signing import SigningProvider
from permaskills_core.store import ObjectStore
from permaskills_core.validation import validate_manifest

_logger = logging.getLogger(__name__)

#: Callback receiving ``(stage, message)`` progress updates.
ProgressCallback = Callable[[str, str], None]


@dataclass(frozen=True)
class PublishResult:
    """Outcome of a successful publish.  Plain data only."""

    skill_name: str
    version: str
    content_id: str
    bundle_size: int
    upload_cost: float
    registry_message_id: str
    published_at: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PublishPipeline:
    """Validate, bundle, upload and register a skill.

    Args:
        registry: Registry to register or update the entry in.
        store: Object store receiving the bundle.
        bundler: Bundle builder (a default one is created if omitted).
        clock: Returns the current time in epoch milliseconds.

    Example::

        pipeline = PublishPipeline(registry, store)
        result = await pipeline.publish(Path("./my-skill"), KeyfileSigningProvider(wallet))
        print(result.content_id)
    """

    def __init__(
        self,
        registry: RegistryClient,
        store: ObjectStore,
        *,
        bundler: BundleBuilder | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._bundler = bundler or BundleBuilder()
        self._clock = clock or (lambda: int(time.time() * 1000))

    def load_manifest(self, directory: Path) -> SkillManifest:
        """Parse and validate the directory's ``SKILL.md``.

        Raises:
            ValidationError: With every violated rule, if any.
        """
        if not (directory / MANIFEST_FILENAME).is_file():
            raise ValidationError(
                f"No {MANIFEST_FILENAME} in {directory}",
                field=MANIFEST_FILENAME,
                value=str(directory),
                solution=f"Create {MANIFEST_FILENAME} with name, version, description and author",
            )
        manifest = parse_manifest(directory)
        result = validate_manifest(manifest)
        if not result.valid:
            raise ValidationError(
                f"{MANIFEST_FILENAME} has {len(result.errors)} problem(s):\n"
                + "\n".join(f"  - {e}" for e in result.errors),
                errors=result.errors,
            )
        return manifest

    async def publish(
        self,
        directory: Path | str,
        signing_provider: SigningProvider,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> PublishResult:
        """Publish the skill in *directory*, signed by *signing_provider*.

        Raises:
            ValidationError: If the manifest is invalid or the bundle is
                too large.
            FileSystemError: If the directory cannot be read.
            AuthorizationError: If the skill exists under another owner
                or the wallet cannot pay for the upload.
            NetworkError: If the store or registry stays unreachable.
            RegistryError: If the registry gives an unusable answer.
        """
        directory = Path(directory)
        progress = on_progress or (lambda stage, message: None)

        async with signing_provider as wallet:
            progress("validating", f"Validating {directory / MANIFEST_FILENAME}")
            manifest = self.load_manifest(directory)
            address = await wallet.get_address()

            existing = await self._find_existing(manifest.name)
            if existing is not None and existing.owner != address:
                raise AuthorizationError(
                    f"Skill '{manifest.name}' is owned by another address",
                    address=address,
                    solution="Publish under a different name, or use the owning wallet",
                )

            progress("bundling", f"Bundling {directory}")
            bundle = self._bundler.build(directory)
            if bundle.exceeded_limit:
                raise ValidationError(
                    f"Bundle size {format_size(bundle.size)} exceeds the 10 MB limit",
                    field="bundle",
                    value=bundle.size,
                    solution="Remove large files from the skill directory",
                )

            signer = await wallet.create_signer()
            progress("uploading", f"Uploading {format_size(bundle.size)}")
            upload = await self._store.upload(
                bundle.blob,
                signer,
                tags=[
                    ("Skill-Name", manifest.name),
                    ("Skill-Version", manifest.version),
                ],
            )

            progress("registering", f"Registering {manifest.identifier}")
            if existing is None:
                message_id = await self._registry.register_skill(
                    manifest, upload.content_id, signer
                )
            else:
                message_id = await self._registry.update_skill(manifest, upload.content_id, signer)

        result = PublishResult(
            skill_name=manifest.name,
            version=manifest.version,
            content_id=upload.content_id,
            bundle_size=bundle.size,
            upload_cost=upload.cost,
            registry_message_id=message_id,
            published_at=self._clock(),
        )
        progress("complete", f"Published {manifest.identifier}")
        _logger.info("Published %s as %s", manifest.identifier, upload.content_id)
        return result

    async def _find_existing(self, name: str) -> SkillMetadata | None:
        try:
            return await self._registry.get_skill(name)
        except SkillNotFoundError:
            return None
