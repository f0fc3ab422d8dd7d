"""Tests for the background task runner and the analysis session."""
import threading

import numpy as np
import pytest

from conftest import ISS_LINE1, ISS_LINE2, START
from rftrack.coord import Point, Space
from rftrack.orbit import Satellite, Site
from rftrack.session import Session
from rftrack.spectrogram import Spectrogram
from rftrack.worker import PREDICTIONS, SIGNALS, TaskResult, TaskRunner


def pt(t, f):
    return Point(float(t), float(f), Space.DATA_ABSOLUTE)


def peak_spectrogram():
    data = np.full((100, 64), -10.0, dtype=np.float32)
    data[50, 32] = 20.0
    return Spectrogram(data, START, 437.5e6, 64e3, 1.0)


@pytest.fixture
def session():
    s = Session(site=Site.from_degrees(0.0, 0.0, 0.0))
    yield s
    s.close()


class TestTaskRunner:
    def test_generations_per_kind(self):
        with TaskRunner() as runner:
            a = runner.submit(SIGNALS, lambda: "a").result()
            b = runner.submit(SIGNALS, lambda: "b").result()
            c = runner.submit(PREDICTIONS, lambda: "c").result()
        assert (a.generation, b.generation, c.generation) == (1, 2, 1)
        assert b == TaskResult(SIGNALS, 2, "b")

    def test_arguments_forwarded(self):
        with TaskRunner() as runner:
            result = runner.submit("sum", lambda x, y=0: x + y, 2, y=3).result()
        assert result.value == 5

    def test_exception_surfaces_from_future(self):
        def boom():
            raise RuntimeError("boom")

        with TaskRunner() as runner:
            future = runner.submit(SIGNALS, boom)
            with pytest.raises(RuntimeError, match="boom"):
                future.result()

    def test_concurrent_submissions_get_unique_generations(self):
        with TaskRunner(max_workers=4) as runner:
            futures = []
            lock = threading.Lock()

            def submit_many():
                for _ in range(25):
                    f = runner.submit(SIGNALS, lambda: None)
                    with lock:
                        futures.append(f)

            threads = [threading.Thread(target=submit_many) for _ in range(4)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()
            generations = sorted(f.result().generation for f in futures)
        assert generations == list(range(1, 101))

    def test_current_generation(self):
        with TaskRunner() as runner:
            assert runner.current(SIGNALS) == 0
            runner.submit(SIGNALS, lambda: None).result()
            runner.submit(SIGNALS, lambda: None).result()
            assert runner.current(SIGNALS) == 2
            assert runner.current(PREDICTIONS) == 0


class TestApply:
    def test_newer_result_wins(self, session):
        assert session.apply(TaskResult(SIGNALS, 2, ["new"]))
        assert not session.apply(TaskResult(SIGNALS, 1, ["old"]))
        assert session.signals == ["new"]

    def test_kinds_are_independent(self, session):
        session.apply(TaskResult(SIGNALS, 5, ["s"]))
        assert session.apply(TaskResult(PREDICTIONS, 1, "p"))
        assert session.predictions == "p"

    def test_same_generation_not_reapplied(self, session):
        assert session.apply(TaskResult(SIGNALS, 1, ["a"]))
        assert not session.apply(TaskResult(SIGNALS, 1, ["b"]))

    def test_unknown_kind(self, session):
        with pytest.raises(ValueError):
            session.apply(TaskResult("colormap", 1, None))

    def test_out_of_order_completion(self, session):
        release = threading.Event()

        def slow():
            release.wait(5.0)
            return ["stale"]

        first = session.runner.submit(SIGNALS, slow)
        second = session.runner.submit(SIGNALS, lambda: ["fresh"])
        assert session.apply(second.result())
        release.set()
        assert not session.apply(first.result())
        assert session.signals == ["fresh"]


class TestSession:
    def test_signals_end_to_end(self, session):
        session.set_spectrogram(peak_spectrogram())
        session.add_track_point(pt(0, 0))
        assert session.request_signals() is None
        session.add_track_point(pt(99, 0))

        future = session.request_signals()
        assert session.apply(future.result())
        assert session.signals == [pt(50, 0)]

    def test_request_snapshots_track(self, session):
        session.set_spectrogram(peak_spectrogram())
        session.add_track_point(pt(0, 0))
        session.add_track_point(pt(99, 0))
        future = session.request_signals()
        session.clear_track()
        assert future.result().value == [pt(50, 0)]

    def test_uses_control_settings(self, session):
        session.set_spectrogram(peak_spectrogram())
        session.add_track_point(pt(0, -20e3))
        session.add_track_point(pt(99, -20e3))
        # Default 10 kHz band around channel 12 does not reach the peak at 32.
        session.apply(session.request_signals().result())
        assert session.signals == []

        session.controls.set_track_bw(100e3)
        session.apply(session.request_signals().result())
        assert session.signals == [pt(50, 0)]

    def test_no_spectrogram(self, session):
        assert session.request_signals() is None
        assert session.request_predictions() is None

    def test_new_spectrogram_resets_state(self, session):
        session.set_spectrogram(peak_spectrogram())
        session.add_track_point(pt(0, 0))
        session.signals = [pt(1, 1)]
        session.controls.set_zoom(3.0, 3.0)

        session.set_spectrogram(peak_spectrogram())
        assert len(session.track) == 0
        assert session.signals == []
        assert session.predictions is None
        assert session.controls.zoom_x == 0.0
        assert session.controls.power_bounds == pytest.approx((-10.0, 20.0))

    def test_active_satellites(self, session):
        sat = Satellite.from_lines(ISS_LINE1, ISS_LINE2, 437.8e6)
        session.add_satellites([sat])
        assert session.is_active(25544)
        assert session.toggle(25544) is False
        assert session.active_satellites() == []
        with pytest.raises(KeyError):
            session.set_active(12345)

    def test_predictions(self, session):
        session.set_spectrogram(peak_spectrogram())
        assert session.request_predictions() is None

        session.add_satellites([Satellite.from_lines(ISS_LINE1, ISS_LINE2, 437.8e6)])
        assert session.apply(session.request_predictions().result())
        assert session.predictions.start_time == START
        assert session.predictions.times[-1] == pytest.approx(100.0)
        assert session.predictions.for_id(25544) is not None

    def test_predictions_need_site(self):
        s = Session()
        try:
            s.set_spectrogram(peak_spectrogram())
            s.add_satellites([Satellite.from_lines(ISS_LINE1, ISS_LINE2, 437.8e6)])
            assert s.request_predictions() is None
        finally:
            s.close()

    def test_load_files(self, session, write_spectrogram, iss_files):
        path = write_spectrogram(np.ones((4, 16)))
        spec = session.load_spectrogram([path])
        assert session.spectrogram is spec
        sats = session.load_satellites(*iss_files)
        assert [s.norad_id for s in sats] == [25544]
        assert session.is_active(25544)

    def test_new_spectrogram_discards_pending_signals(self, session):
        session.set_spectrogram(peak_spectrogram())
        session.add_track_point(pt(0, 0))
        session.add_track_point(pt(99, 0))
        future = session.request_signals()

        short = Spectrogram(np.zeros((10, 64), dtype=np.float32), START, 437.5e6, 64e3, 1.0)
        session.set_spectrogram(short)
        assert not session.apply(future.result())
        assert session.signals == []

    def test_new_spectrogram_discards_pending_predictions(self, session):
        session.set_spectrogram(peak_spectrogram())
        future = session.runner.submit(PREDICTIONS, lambda: "old pass")
        session.set_spectrogram(peak_spectrogram())
        assert not session.apply(future.result())
        assert session.predictions is None

    def test_cleared_track_discards_pending_signals(self, session):
        session.set_spectrogram(peak_spectrogram())
        session.add_track_point(pt(0, 0))
        session.add_track_point(pt(99, 0))
        stale = session.request_signals()
        session.clear_track()
        assert not session.apply(stale.result())
        assert session.signals == []

        session.add_track_point(pt(0, 0))
        session.add_track_point(pt(99, 0))
        assert session.apply(session.request_signals().result())
        assert session.signals == [pt(50, 0)]
