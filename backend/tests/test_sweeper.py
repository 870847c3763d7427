import threading
from datetime import timedelta

from stockledger.extensions import db
from stockledger.services import reservation_service
from stockledger.sweeper import ReservationSweeper
from stockledger.time_utils import utcnow


class _RecordingSweeper(ReservationSweeper):
    """Signals after each pass so tests never sleep on the interval."""

    def __init__(self, app, interval=None, fail_first=False):
        super().__init__(app, interval=interval)
        self.results = []
        self.passed = threading.Event()
        self._fail_first = fail_first

    def run_once(self):
        if self._fail_first:
            self._fail_first = False
            raise RuntimeError("boom")
        result = super().run_once()
        self.results.append(result)
        self.passed.set()
        return result


def test_run_once_expires_stale_reservations(app, make_variant, stock_of):
    make_variant("VAR-1", on_hand=4)
    stale = reservation_service.reserve("VAR-1", 3, now=utcnow() - timedelta(hours=1))
    fresh = reservation_service.reserve("VAR-1", 1)

    result = ReservationSweeper(app).run_once()
    db.session.expire_all()

    assert (result.examined, result.expired, result.skipped, result.failed) == (1, 1, 0, 0)
    assert reservation_service.get_reservation(stale.id).status == "expired"
    assert reservation_service.get_reservation(fresh.id).status == "active"
    assert stock_of("VAR-1") == (4, 1)


def test_interval_defaults_to_config(app):
    assert ReservationSweeper(app).interval == float(app.config["SWEEP_INTERVAL_SECONDS"])
    assert ReservationSweeper(app, interval=2).interval == 2.0


def test_background_thread_runs_and_stops(app, make_variant, stock_of):
    make_variant("VAR-1", on_hand=2)
    stale = reservation_service.reserve("VAR-1", 2, now=utcnow() - timedelta(hours=1))

    sweeper = _RecordingSweeper(app, interval=30).start()
    try:
        assert sweeper.passed.wait(5)
        assert sweeper.running
    finally:
        sweeper.stop()

    assert not sweeper.running
    assert sweeper.results[0].expired == 1
    # the sweeper committed from its own session
    db.session.expire_all()
    assert reservation_service.get_reservation(stale.id).status == "expired"
    assert stock_of("VAR-1") == (2, 0)


def test_failed_pass_does_not_kill_the_loop(app, db_session):
    sweeper = _RecordingSweeper(app, interval=0.01, fail_first=True).start()
    try:
        assert sweeper.passed.wait(5)
    finally:
        sweeper.stop()

    assert sweeper.results[0].examined == 0
