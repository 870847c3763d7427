# Overview: Background thread that runs the reservation expiry sweep on an interval.

from __future__ import annotations

import threading

from flask import Flask

from .extensions import db


class ReservationSweeper:
    """
    Periodically expires stale reservations inside an application context.

    One pass per interval; a pass that raises is logged and the loop keeps
    going. stop() wakes the thread immediately instead of waiting out the
    interval.
    """

    def __init__(self, app: Flask, interval: float | None = None):
        self.app = app
        self.interval = float(interval if interval is not None else app.config.get("SWEEP_INTERVAL_SECONDS", 60))
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "ReservationSweeper":
        if self.running:
            return self
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="reservation-sweeper", daemon=True)
        self._thread.start()
        self.app.logger.info("Reservation sweeper started (interval %.1fs)", self.interval)
        return self

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self.app.logger.info("Reservation sweeper stopped")

    def run_once(self):
        from .services.reservation_service import expire_stale_reservations

        with self.app.app_context():
            try:
                return expire_stale_reservations()
            finally:
                db.session.remove()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                self.app.logger.exception("Reservation sweep pass failed")
            self._stop.wait(self.interval)
