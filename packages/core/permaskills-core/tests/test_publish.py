"""Tests for PublishPipeline."""

import io
import json
import tarfile

import pytest

from permaskills_core import (
    AuthorizationError,
    BundleBuilder,
    NetworkError,
    PublishPipeline,
    PublishResult,
    ValidationError,
)


def _pipeline(registry, store, **kwargs):
    return PublishPipeline(registry, store, clock=lambda: 1730000000000, **kwargs)


class TestPublish:
    async def test_new_skill_is_registered(self, registry, store, wallet, make_skill_dir):
        skill_dir = make_skill_dir("pdf-tools", "1.0.0")
        result = await _pipeline(registry, store).publish(skill_dir, wallet)

        assert result.skill_name == "pdf-tools"
        assert result.version == "1.0.0"
        assert result.content_id in store.blobs
        assert result.bundle_size == len(store.blobs[result.content_id])
        assert result.upload_cost == 0.0
        assert result.registry_message_id == "msg-1"
        assert result.published_at == 1730000000000
        assert [m.identifier for m, _ in registry.registered] == ["pdf-tools@1.0.0"]
        assert registry.updated == []

    async def test_existing_skill_is_updated(self, registry, store, wallet, make_skill_dir):
        registry.add("pdf-tools", "1.0.0")
        result = await _pipeline(registry, store).publish(
            make_skill_dir("pdf-tools", "1.1.0"), wallet
        )
        assert result.registry_message_id == "msg-update-1"
        assert registry.registered == []
        assert registry.updated[0][1] == result.content_id

    async def test_upload_tags(self, registry, store, wallet, make_skill_dir):
        await _pipeline(registry, store).publish(make_skill_dir("pdf-tools", "2.0.0"), wallet)
        _, tags = store.uploads[0]
        assert ("Skill-Name", "pdf-tools") in tags
        assert ("Skill-Version", "2.0.0") in tags

    async def test_uploaded_blob_is_the_bundle(self, registry, store, wallet, make_skill_dir):
        skill_dir = make_skill_dir("pdf-tools", files={"scripts/run.sh": "echo"})
        result = await _pipeline(registry, store).publish(skill_dir, wallet)
        with tarfile.open(fileobj=io.BytesIO(store.blobs[result.content_id]), mode="r:gz") as tar:
            assert sorted(tar.getnames()) == ["SKILL.md", "scripts/run.sh"]

    async def test_signing_provider_closed(self, registry, store, wallet, make_skill_dir):
        await _pipeline(registry, store).publish(make_skill_dir(), wallet)
        assert wallet.closed

    async def test_progress_stages(self, registry, store, wallet, make_skill_dir):
        stages = []
        await _pipeline(registry, store).publish(
            make_skill_dir(), wallet, on_progress=lambda stage, msg: stages.append(stage)
        )
        assert stages == ["validating", "bundling", "uploading", "registering", "complete"]

    async def test_result_json_round_trip(self, registry, store, wallet, make_skill_dir):
        result = await _pipeline(registry, store).publish(make_skill_dir(), wallet)
        assert PublishResult(**json.loads(json.dumps(result.to_dict()))) == result


# ------------------------------------------------------------------
# Failures
# ------------------------------------------------------------------


class TestPublishFailures:
    async def test_invalid_manifest_lists_errors(self, registry, store, wallet, tmp_path):
        skill_dir = tmp_path / "bad"
        skill_dir.mkdir()
        (skill_dir / "SKILL.md").write_text(
            "---\nname: Bad Name\nversion: 1\ndescription: d\n---\n"
        )
        with pytest.raises(ValidationError) as exc_info:
            await _pipeline(registry, store).publish(skill_dir, wallet)
        errors = exc_info.value.errors
        assert len(errors) == 3
        assert any("Missing required field: author" in e for e in errors)
        assert store.uploads == []
        assert wallet.closed

    async def test_missing_manifest(self, registry, store, wallet, tmp_path):
        with pytest.raises(ValidationError, match="No SKILL.md"):
            await _pipeline(registry, store).publish(tmp_path, wallet)

    async def test_other_owner_rejected_before_upload(
        self, registry, store, other_wallet, make_skill_dir
    ):
        registry.add("pdf-tools", "1.0.0")
        with pytest.raises(AuthorizationError, match="owned by another address"):
            await _pipeline(registry, store).publish(
                make_skill_dir("pdf-tools", "1.1.0"), other_wallet
            )
        assert store.uploads == []
        assert registry.updated == []
        assert other_wallet.closed

    async def test_oversized_bundle_rejected(self, registry, store, wallet, make_skill_dir):
        pipeline = _pipeline(registry, store, bundler=BundleBuilder(max_bytes=10))
        with pytest.raises(ValidationError, match="exceeds the 10 MB limit"):
            await pipeline.publish(make_skill_dir(), wallet)
        assert store.uploads == []

    async def test_upload_failure_propagates(self, registry, store, wallet, make_skill_dir):
        async def broken_upload(*args, **kwargs):
            raise NetworkError("bundler down", kind=NetworkError.GATEWAY_ERROR)

        store.upload = broken_upload
        with pytest.raises(NetworkError):
            await _pipeline(registry, store).publish(make_skill_dir(), wallet)
        assert registry.registered == []

    async def test_missing_directory(self, registry, store, wallet, tmp_path):
        with pytest.raises(ValidationError, match="No SKILL.md"):
            await _pipeline(registry, store).publish(tmp_path / "nope", wallet)
