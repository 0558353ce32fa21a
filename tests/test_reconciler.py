"""Tests for job status reconciliation."""

import math

import pytest
from hypothesis import given, strategies as st

from videorelay.errors import PersistenceError, RemoteProviderError
from videorelay.models import VideoStatus
from videorelay.reconciler import display_progress, normalize_status, reconcile


def assert_url_iff_completed(ctx, video_id):
    record = ctx.history.get_by_id(video_id)
    assert (record.video_url is not None) == (record.status == VideoStatus.COMPLETED)


@pytest.mark.parametrize(
    "remote, local",
    [
        ("queued", VideoStatus.PROCESSING),
        ("in_progress", VideoStatus.PROCESSING),
        ("completed", VideoStatus.COMPLETED),
        ("failed", VideoStatus.FAILED),
    ],
)
def test_normalize_status(remote, local):
    assert normalize_status(remote) == local


@given(progress=st.one_of(st.none(), st.floats(allow_nan=True, allow_infinity=True)))
def test_display_progress_is_bounded(progress):
    value = display_progress(VideoStatus.PROCESSING, progress)
    assert 0 <= value <= 100
    if progress is None or not math.isfinite(progress):
        assert value == 0


@given(progress=st.one_of(st.none(), st.floats()))
def test_completed_progress_is_always_100(progress):
    assert display_progress(VideoStatus.COMPLETED, progress) == 100


def test_job_lifecycle(ctx, submit, fake_api):
    submit("v1", model="sora-2", size="1280x720", seconds=8)
    fake_api.set_status("v1", "in_progress", progress=35)

    view = reconcile(ctx, "v1")

    assert view.status == VideoStatus.PROCESSING
    assert 0 <= view.progress <= 99
    assert view.videoUrl is None
    assert view.costDetails["seconds"] == 8
    assert_url_iff_completed(ctx, "v1")
    assert ctx.history.get_by_id("v1").progress == 35

    fake_api.set_status("v1", "completed", progress=100)
    view = reconcile(ctx, "v1")

    assert view.status == VideoStatus.COMPLETED
    assert view.progress == 100
    assert view.videoUrl.endswith("videos/v1/video.mp4")
    assert view.thumbnailUrl.endswith("videos/v1/thumbnail.webp")
    assert view.spritesheetUrl.endswith("videos/v1/spritesheet.jpg")
    assert view.durationMs >= 0
    assert view.completedAt is not None
    assert view.storageModeUsed.value == "r2"
    assert_url_iff_completed(ctx, "v1")


def test_repeated_completed_polls_mirror_once(ctx, submit, fake_api, s3):
    submit("v1")
    fake_api.set_status("v1", "completed", progress=100)

    first = reconcile(ctx, "v1")
    second = reconcile(ctx, "v1")

    assert s3.put_count("videos/v1/video.mp4") == 1
    assert fake_api.download_count("v1", "video") == 1
    assert first.videoUrl == second.videoUrl
    assert first.completedAt == second.completedAt


def test_failed_job(ctx, submit, fake_api):
    submit("v1")
    fake_api.set_status("v1", "in_progress", progress=60)
    reconcile(ctx, "v1")
    fake_api.set_status("v1", "failed", progress=60, error={"message": "moderation_blocked", "code": "moderation"})

    view = reconcile(ctx, "v1")

    record = ctx.history.get_by_id("v1")
    assert view.status == VideoStatus.FAILED
    assert view.error == {"message": "moderation_blocked", "code": "moderation"}
    assert record.status == VideoStatus.FAILED
    assert record.error == "moderation_blocked"
    assert record.progress == 0
    assert_url_iff_completed(ctx, "v1")


def test_progress_never_goes_backwards_locally(ctx, submit, fake_api):
    submit("v1")
    fake_api.set_status("v1", "in_progress", progress=70)
    reconcile(ctx, "v1")
    fake_api.set_status("v1", "in_progress", progress=30)

    view = reconcile(ctx, "v1")

    assert view.progress == 30
    assert ctx.history.get_by_id("v1").progress == 70


def test_missing_progress_reports_zero(ctx, submit, fake_api):
    submit("v1")
    fake_api.set_status("v1", "queued", progress=None)

    assert reconcile(ctx, "v1").progress == 0


def test_required_asset_failure_still_returns_view(ctx, submit, fake_api):
    submit("v1")
    fake_api.set_status("v1", "completed", progress=100)
    fake_api.failing_variants.add("video")

    view = reconcile(ctx, "v1")

    assert view.status == VideoStatus.COMPLETED
    assert view.videoUrl is None
    assert ctx.history.get_by_id("v1").status == VideoStatus.PROCESSING
    assert_url_iff_completed(ctx, "v1")

    # the next poll retries the mirror
    fake_api.failing_variants.clear()
    view = reconcile(ctx, "v1")
    assert view.videoUrl is not None
    assert_url_iff_completed(ctx, "v1")


def test_store_failure_still_returns_remote_view(ctx, submit, fake_api, monkeypatch):
    submit("v1")
    fake_api.set_status("v1", "in_progress", progress=12)

    def broken(**kwargs):
        raise PersistenceError("database is down")

    monkeypatch.setattr(ctx.history, "update_status", broken)
    view = reconcile(ctx, "v1")

    assert view.id == "v1"
    assert view.progress == 12
    assert view.status == VideoStatus.PROCESSING
    # the read-back still worked
    assert view.costDetails is not None


def test_unknown_local_record(ctx, fake_api):
    fake_api.add("remote-only", status="in_progress", progress=50)

    view = reconcile(ctx, "remote-only")

    assert view.progress == 50
    assert view.costDetails is None
    assert view.videoUrl is None


def test_remote_failure_is_fatal(ctx, submit, fake_api):
    submit("v1")
    fake_api.retrieve_error = RemoteProviderError("Rate limited", 429)

    with pytest.raises(RemoteProviderError) as exc:
        reconcile(ctx, "v1")
    assert exc.value.status_code == 429


def test_remote_failure_without_status_is_500(ctx):
    ctx.remote.retrieve_error = RemoteProviderError("connection reset")

    with pytest.raises(RemoteProviderError) as exc:
        reconcile(ctx, "v1")
    assert exc.value.status_code == 500
