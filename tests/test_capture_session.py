import asyncio
import random

import pytest

from signscan.orchestrator import errors, phases
from signscan.orchestrator.capture_session import CaptureSession


def _assert_no_leak(session, camera):
    assert camera.live_handles <= 1
    if session.phase == phases.STREAMING:
        assert camera.live_handles == 1
    else:
        assert camera.live_handles == 0


@pytest.mark.asyncio
async def test_start_reaches_streaming(session, camera):
    state = await session.start()

    assert state.phase == phases.STREAMING
    assert state.is_loading is False
    assert session.holds_device
    assert camera.live_handles == 1


@pytest.mark.asyncio
async def test_capture_emits_once_and_tears_down(session, camera, captured):
    await session.start()

    image = session.capture()

    assert len(captured) == 1
    assert captured[0] is image
    assert (image.width, image.height) == camera.frame_size
    assert image.source == phases.CAPTURED
    assert session.phase == phases.IDLE
    assert camera.live_handles == 0
    assert camera.handles[0].released


@pytest.mark.asyncio
async def test_failing_capture_callback_still_tears_down(camera, status):
    def broken(image):
        raise RuntimeError("consumer exploded")

    session = CaptureSession(camera, status, on_capture=broken)
    await session.start()

    image = session.capture()

    assert image is not None
    assert image.source == phases.CAPTURED
    assert session.phase == phases.IDLE
    assert camera.live_handles == 0
    assert any("on_capture failed RuntimeError" in line for line in status.logs)
    assert status.last_notice.level == "success"


@pytest.mark.asyncio
async def test_refresh_frame_only_while_streaming(session, camera):
    await session.refresh_frame()
    await session.start()

    await session.refresh_frame()
    session.cancel()
    await session.refresh_frame()

    assert camera.handles[0].refreshes == 1


@pytest.mark.asyncio
async def test_capture_outside_streaming_is_inert(session, camera, captured, status):
    assert session.capture() is None
    assert session.phase == phases.IDLE
    assert captured == []
    assert status.last_notice.code == errors.ERR_FRAME_NOT_READY

    camera.acquire_error = errors.ERR_DEVICE_BUSY
    await session.start()
    assert session.phase == phases.ERROR

    assert session.capture() is None
    assert session.phase == phases.ERROR
    assert session.last_error == errors.ERR_DEVICE_BUSY
    assert captured == []


@pytest.mark.asyncio
async def test_capture_before_first_frame_reports_not_ready(session, camera, captured, status):
    camera.deliver_no_frame = True
    await session.start()
    assert session.phase == phases.STREAMING

    assert session.capture() is None
    assert session.phase == phases.STREAMING
    assert captured == []
    assert status.last_notice.code == errors.ERR_FRAME_NOT_READY
    assert camera.live_handles == 1

    session.cancel()
    assert camera.live_handles == 0


@pytest.mark.asyncio
async def test_cancel_while_streaming_emits_nothing(session, camera, captured):
    await session.start()

    state = session.cancel()

    assert state.phase == phases.IDLE
    assert captured == []
    assert camera.live_handles == 0


@pytest.mark.asyncio
async def test_permission_denied_then_clean_retry(session, camera):
    camera.acquire_error = errors.ERR_DEVICE_ACCESS_DENIED

    state = await session.start()

    assert state.phase == phases.ERROR
    assert state.error_code == errors.ERR_DEVICE_ACCESS_DENIED
    assert state.error_message == errors.message_for(errors.ERR_DEVICE_ACCESS_DENIED)
    assert not session.holds_device
    assert camera.live_handles == 0

    camera.acquire_error = None
    state = await session.start()

    assert state.phase == phases.STREAMING
    assert state.error_code is None
    assert camera.live_handles == 1
    assert camera.max_live_handles == 1


@pytest.mark.asyncio
async def test_first_frame_failure_releases_provisional_handle(session, camera):
    camera.frame_error = errors.ERR_DEVICE_UNAVAILABLE

    state = await session.start()

    assert state.phase == phases.ERROR
    assert state.error_code == errors.ERR_DEVICE_UNAVAILABLE
    assert len(camera.handles) == 1
    assert camera.handles[0].released
    assert camera.live_handles == 0


@pytest.mark.asyncio
async def test_cancel_during_acquisition_wins_over_late_success(session, camera):
    camera.acquire_delay = 0.01
    task = asyncio.create_task(session.start())
    await asyncio.sleep(0)
    assert session.phase == phases.ACQUIRING
    assert session.is_loading

    session.cancel()
    assert session.phase == phases.IDLE

    await task
    assert session.phase == phases.IDLE
    assert len(camera.handles) == 1
    assert camera.handles[0].released
    assert camera.live_handles == 0


@pytest.mark.asyncio
async def test_cancel_while_waiting_for_first_frame(session, camera):
    camera.first_frame_delay = 0.01
    task = asyncio.create_task(session.start())
    await asyncio.sleep(0)
    assert session.phase == phases.ACQUIRING
    assert camera.live_handles == 1

    session.cancel()
    assert camera.live_handles == 0

    await task
    assert session.phase == phases.IDLE
    assert camera.live_handles == 0


@pytest.mark.asyncio
async def test_newer_start_supersedes_in_flight_acquisition(session, camera):
    camera.acquire_delay = 0.01
    first = asyncio.create_task(session.start())
    await asyncio.sleep(0)
    second = asyncio.create_task(session.start())

    await asyncio.gather(first, second)

    assert session.phase == phases.STREAMING
    assert len(camera.handles) == 2
    assert sum(not h.released for h in camera.handles) == 1
    assert camera.live_handles == 1


@pytest.mark.asyncio
async def test_restart_while_streaming_releases_previous_handle(session, camera):
    await session.start()
    await session.start()

    assert session.phase == phases.STREAMING
    assert camera.handles[0].released
    assert camera.live_handles == 1
    assert camera.max_live_handles == 1


@pytest.mark.asyncio
async def test_cancelling_start_task_releases_device(session, camera):
    camera.first_frame_delay = 1.0
    task = asyncio.create_task(session.start())
    await asyncio.sleep(0)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert session.phase == phases.IDLE
    assert camera.live_handles == 0


@pytest.mark.asyncio
async def test_preview_keeps_stream_running(session, camera):
    assert session.preview() is None
    await session.start()

    frame = session.preview()

    assert frame == camera.frame_bytes
    assert session.phase == phases.STREAMING
    assert camera.live_handles == 1


@pytest.mark.asyncio
async def test_random_operation_sequences_never_leak(session, camera, captured):
    rng = random.Random(1234)
    failures = [None, None, None, errors.ERR_DEVICE_BUSY, errors.ERR_DEVICE_ACCESS_DENIED]

    for _ in range(300):
        op = rng.choice(["start", "cancel", "capture"])
        if op == "start":
            camera.acquire_error = rng.choice(failures)
            await session.start()
        elif op == "cancel":
            session.cancel()
        else:
            before = session.phase
            emitted = len(captured)
            image = session.capture()
            if before != phases.STREAMING:
                assert image is None
                assert session.phase == before
                assert len(captured) == emitted
            else:
                assert len(captured) == emitted + 1
                assert session.phase == phases.IDLE
        _assert_no_leak(session, camera)

    session.cancel()
    assert camera.live_handles == 0
    assert camera.max_live_handles == 1
