from collections import defaultdict

from fractile.rendering.events import TaskResult
from fractile.rendering.scheduler import TileScheduler

from conftest import make_context, zero_result


class Recorder:
    def __init__(self):
        self.submitted = []
        self.bands = []
        self.completed = []

    def scheduler(self):
        return TileScheduler(self.submitted.append, self.bands.append,
                             lambda epoch, duration: self.completed.append(epoch))


def drain(rec, sched, reverse=False):
    """Answer every submitted task until none remain, optionally out of order."""
    while rec.submitted:
        batch, rec.submitted[:] = list(rec.submitted), []
        for task in (reversed(batch) if reverse else batch):
            sched.on_task_result(zero_result(task))


def test_full_epoch_completes_once():
    rec = Recorder()
    sched = rec.scheduler()
    schedule = (64, 16, 1)
    sched.regenerate(128, 96, 64, schedule, make_context())
    assert sched.rendering
    drain(rec, sched, reverse=True)

    assert rec.completed == [1]
    assert not sched.rendering
    assert sched.pending_bands == 0
    assert all(t.stage == len(schedule) for t in sched.tiles.values())
    assert sched.last_duration is not None


def test_final_stage_bands_cover_each_tile():
    rec = Recorder()
    sched = rec.scheduler()
    schedule = (32, 4, 1)
    sched.regenerate(100, 70, 64, schedule, make_context(100, 70))
    drain(rec, sched)

    per_tile = defaultdict(int)
    for result in rec.bands:
        t = result.task
        if t.stage == len(schedule) - 1:
            per_tile[t.tile_id] += t.width * t.height
    for tile in sched.tiles.values():
        assert per_tile[tile.id] == tile.width * tile.height


def test_stage_waits_for_previous_stage():
    rec = Recorder()
    sched = rec.scheduler()
    sched.regenerate(64, 64, 64, (32, 1), make_context(64, 64))
    first = list(rec.submitted)
    rec.submitted.clear()
    assert {t.stage for t in first} == {0}
    assert len(first) == 2

    sched.on_task_result(zero_result(first[0]))
    assert rec.submitted == []
    sched.on_task_result(zero_result(first[1]))
    assert rec.submitted and {t.stage for t in rec.submitted} == {1}


def test_stale_epoch_results_are_discarded():
    rec = Recorder()
    sched = rec.scheduler()
    ctx = make_context()
    sched.regenerate(128, 96, 64, (16, 1), ctx)
    old = list(rec.submitted)
    rec.submitted.clear()

    epoch, reused = sched.on_navigation_change(128, 96, 64, (16, 1), ctx)
    assert (epoch, reused) == (2, False)
    new = list(rec.submitted)
    rec.submitted.clear()

    for task in old:
        assert sched.on_task_result(zero_result(task)) is False
    assert rec.bands == []

    for task in new:
        assert sched.on_task_result(zero_result(task)) is True
    assert rec.bands and {r.epoch for r in rec.bands} == {2}
    drain(rec, sched)
    assert rec.completed == [2]


def test_failed_band_still_advances_tile():
    rec = Recorder()
    sched = rec.scheduler()
    sched.regenerate(32, 32, 32, (32, 1), make_context(32, 32))
    (task,) = rec.submitted
    rec.submitted.clear()

    assert sched.on_task_result(TaskResult(task, None, error="boom"))
    assert rec.bands == []
    assert rec.submitted and rec.submitted[0].stage == 1
    drain(rec, sched)
    assert rec.completed == [1]


def test_duplicate_result_is_ignored():
    rec = Recorder()
    sched = rec.scheduler()
    sched.regenerate(32, 32, 32, (32, 1), make_context(32, 32))
    (task,) = rec.submitted
    assert sched.on_task_result(zero_result(task))
    assert sched.on_task_result(zero_result(task)) is False


def test_empty_canvas_completes_immediately():
    rec = Recorder()
    sched = rec.scheduler()
    sched.regenerate(0, 0, 64, (4, 1), make_context(1, 1))
    assert rec.submitted == []
    assert rec.completed == [1]
