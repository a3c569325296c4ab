from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cryptofm.errors import DuplicateSegment, SegmentNotFound, StorageError
from cryptofm.repository import Segment, SegmentRepository, SegmentStatus

pytestmark = pytest.mark.anyio


def _segment(segment_id: int, text: str = "Bitcoin is up.") -> Segment:
    return Segment(
        segment_id=segment_id,
        text=text,
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


async def test_append_and_find(repository: SegmentRepository) -> None:
    await repository.append(_segment(1, "Hello world."))

    found = await repository.find(1)

    assert found is not None
    assert found.text == "Hello world."
    assert found.status is SegmentStatus.PENDING
    assert found.audio_location is None
    assert found.spoken_at is None
    assert await repository.find(2) is None


async def test_append_rejects_duplicate_id(repository: SegmentRepository) -> None:
    await repository.append(_segment(1))

    with pytest.raises(DuplicateSegment):
        await repository.append(_segment(1, "Another text."))

    assert len(await repository.list_segments()) == 1


async def test_next_to_speak_empty_store(repository: SegmentRepository) -> None:
    assert await repository.next_to_speak() is None


async def test_next_to_speak_is_fifo(repository: SegmentRepository) -> None:
    # Ids deliberately out of order: insertion order wins.
    for segment_id in (30, 10, 20):
        await repository.append(_segment(segment_id))

    for _ in range(3):
        nxt = await repository.next_to_speak()
        assert nxt is not None
        assert nxt.segment_id == 30

    ready = await repository.find(30)
    assert ready is not None
    ready.status = SegmentStatus.READY
    ready.audio_location = "/tmp/segment-30.mp3"
    await repository.update(ready)
    nxt = await repository.next_to_speak()
    assert nxt is not None and nxt.segment_id == 30

    ready.status = SegmentStatus.SPOKEN
    ready.spoken_at = datetime.now(timezone.utc)
    await repository.update(ready)
    nxt = await repository.next_to_speak()
    assert nxt is not None and nxt.segment_id == 10


async def test_update_unknown_segment_raises(repository: SegmentRepository) -> None:
    with pytest.raises(SegmentNotFound):
        await repository.update(_segment(99))


async def test_update_enforces_audio_invariant(repository: SegmentRepository) -> None:
    await repository.append(_segment(1))
    broken = _segment(1)
    broken.status = SegmentStatus.READY

    with pytest.raises(StorageError):
        await repository.update(broken)

    stored = await repository.find(1)
    assert stored is not None
    assert stored.status is SegmentStatus.PENDING


async def test_update_with_applies_mutator(repository: SegmentRepository) -> None:
    await repository.append(_segment(1))

    def _ready(segment: Segment) -> Segment:
        segment.status = SegmentStatus.READY
        segment.audio_location = "/tmp/segment-1.mp3"
        return segment

    updated = await repository.update_with(1, _ready)
    unchanged = await repository.update_with(1, lambda segment: None)

    assert updated.status is SegmentStatus.READY
    assert unchanged.audio_location == "/tmp/segment-1.mp3"
    with pytest.raises(SegmentNotFound):
        await repository.update_with(2, _ready)


async def test_purge_removes_matching_segments(repository: SegmentRepository) -> None:
    for segment_id in (1, 2, 3):
        await repository.append(_segment(segment_id))

    removed = await repository.purge(lambda segment: segment.segment_id != 2)

    assert sorted(segment.segment_id for segment in removed) == [1, 3]
    assert [s.segment_id for s in await repository.list_segments()] == [2]


async def test_create_segment_allocates_increasing_ids(repository: SegmentRepository) -> None:
    first = await repository.create_segment("One.", cursor=4)
    second = await repository.create_segment("Two.", cursor=8)
    third = await repository.create_segment("Three.")

    assert first.segment_id < second.segment_id < third.segment_id
    assert await repository.get_cursor() == 8


async def test_cursor_never_moves_backwards(repository: SegmentRepository) -> None:
    assert await repository.get_cursor() == 0

    assert await repository.advance_cursor(10) == 10
    assert await repository.advance_cursor(3) == 10
    await repository.create_segment("Late.", cursor=5)

    assert await repository.get_cursor() == 10


async def test_count_by_status(repository: SegmentRepository) -> None:
    await repository.append(_segment(1))
    await repository.append(_segment(2))
    spoken = _segment(2)
    spoken.status = SegmentStatus.SPOKEN
    spoken.audio_location = "/tmp/segment-2.mp3"
    spoken.spoken_at = datetime.now(timezone.utc) - timedelta(hours=1)
    await repository.update(spoken)

    counts = await repository.count_by_status()

    assert counts == {"pending": 1, "ready": 0, "spoken": 1, "total": 2}


async def test_queue_survives_restart(tmp_path) -> None:
    path = tmp_path / "queue.db"
    repo = SegmentRepository(path)
    await repo.initialize()
    created = await repo.create_segment("Persisted text.", cursor=15)
    await repo.close()

    reopened = SegmentRepository(path)
    await reopened.initialize()
    try:
        found = await reopened.find(created.segment_id)
        assert found is not None
        assert found.text == "Persisted text."
        assert found.created_at == created.created_at
        assert await reopened.get_cursor() == 15
    finally:
        await reopened.close()
