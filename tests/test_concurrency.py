import threading

from models.booking import Booking
from services import store
from tests.helpers import actor, at, make_slot
from utils.errors import SlotConflict

WORKERS = 8
RENTERS = ["u-renter", "u-other", "u-admin"]


def _race(app, slot_id, windows):
    barrier = threading.Barrier(len(windows))
    outcomes = []
    lock = threading.Lock()
    actors = [actor(app, RENTERS[i % len(RENTERS)]) for i in range(len(windows))]

    def worker(i, start, end):
        with app.app_context():
            barrier.wait()
            try:
                store.request_booking(actors[i], slot_id, start, end)
                result = "ok"
            except SlotConflict:
                result = "conflict"
            except Exception as exc:  # surfaced through the assertion below
                result = repr(exc)
        with lock:
            outcomes.append(result)

    threads = [
        threading.Thread(target=worker, args=(i, start, end))
        for i, (start, end) in enumerate(windows)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


def test_identical_windows_exactly_one_wins(app):
    slot_id = make_slot(app)
    outcomes = _race(app, slot_id, [(at(9), at(10))] * WORKERS)

    assert sorted(outcomes) == ["conflict"] * (WORKERS - 1) + ["ok"]
    with app.app_context():
        assert Booking.query.filter_by(slot_id=slot_id).count() == 1


def test_staggered_windows_never_overlap(app):
    slot_id = make_slot(app)
    windows = [(at(9, 15 * i), at(10, 15 * i)) for i in range(4)] * 2
    outcomes = _race(app, slot_id, windows)

    assert len(outcomes) == len(windows)
    assert set(outcomes) <= {"ok", "conflict"}
    with app.app_context():
        rows = Booking.query.filter_by(slot_id=slot_id).order_by(Booking.start_time).all()
        assert len(rows) == outcomes.count("ok") >= 1
        for a, b in zip(rows, rows[1:]):
            assert a.end_time <= b.start_time
