from fakes import OWNER

from coach_memory.services.access_tracker import AccessTracker


class BrokenStore:
    async def touch(self, owner_id, memory_ids, accessed_at=None):
        raise RuntimeError("database gone")


async def test_track_touches_in_background(store, make_item):
    item = store.add(make_item())
    tracker = AccessTracker(store)

    task = tracker.track(OWNER, [item.id])
    await tracker.drain()

    assert task.done()
    assert store.touched == [item.id]
    assert store.items[item.id].access_count == 1
    assert store.items[item.id].last_accessed_at is not None
    assert tracker.pending == 0


async def test_nothing_to_track():
    assert AccessTracker(BrokenStore()).track(OWNER, []) is None


async def test_failures_stay_inside_the_task(make_item):
    tracker = AccessTracker(BrokenStore())

    task = tracker.track(OWNER, [make_item().id])
    await tracker.drain()

    assert task.exception() is None
