"""Tests for coordinate spaces, transforms and the view controller."""
import itertools

import numpy as np
import pytest

from rftrack.coord import (
    Frame,
    Point,
    Rectangle,
    Size,
    Space,
    Transform,
    Vector,
    full_view,
    screen_to_plot_area,
)
from rftrack.view import ZOOM_MAX, ZOOM_MIN, ViewControls


DATA_BOUNDS = Rectangle(0.0, -25e3, 600.0, 50e3, Space.DATA_ABSOLUTE)
VIEW = Rectangle(0.2, 0.1, 0.5, 0.25, Space.DATA_NORMALIZED)
SCREEN = Size(800.0, 600.0, Space.SCREEN)


def approx_point(p: Point, q: Point, tol=1e-9):
    assert p.space is q.space
    assert p.x == pytest.approx(q.x, abs=tol)
    assert p.y == pytest.approx(q.y, abs=tol)


class TestValueTypes:
    def test_point_minus_point_is_vector(self):
        v = Point(3.0, 4.0, Space.PLOT_AREA) - Point(1.0, 1.0, Space.PLOT_AREA)
        assert v == Vector(2.0, 3.0, Space.PLOT_AREA)

    def test_point_plus_vector(self):
        p = Point(1.0, 1.0, Space.SCREEN) + Vector(2.0, -1.0, Space.SCREEN)
        assert p == Point(3.0, 0.0, Space.SCREEN)

    def test_mixing_spaces_rejected(self):
        with pytest.raises(TypeError):
            Point(0.0, 0.0, Space.SCREEN) + Vector(1.0, 1.0, Space.PLOT_AREA)
        with pytest.raises(TypeError):
            Vector(0.0, 0.0, Space.DATA_ABSOLUTE) - Vector(1.0, 1.0, Space.DATA_NORMALIZED)

    def test_vector_scaling(self):
        assert 2 * Vector(1.0, -2.0, Space.SCREEN) == Vector(2.0, -4.0, Space.SCREEN)
        assert -Vector(1.0, -2.0, Space.SCREEN) == Vector(-1.0, 2.0, Space.SCREEN)

    def test_rectangle(self):
        r = Rectangle(1.0, 2.0, -0.5, 4.0, Space.PLOT_AREA)
        assert r.x_range() == (0.5, 1.0)
        assert r.center == Point(0.75, 4.0, Space.PLOT_AREA)
        assert r.contains(Point(0.6, 3.0, Space.PLOT_AREA))
        assert not r.contains(Point(1.1, 3.0, Space.PLOT_AREA))


class TestTransform:
    def test_screen_to_plot_area_flips_y(self):
        t = screen_to_plot_area(SCREEN)
        approx_point(t(Point(0.0, 0.0, Space.SCREEN)), Point(0.0, 1.0, Space.PLOT_AREA))
        approx_point(t(Point(800.0, 600.0, Space.SCREEN)), Point(1.0, 0.0, Space.PLOT_AREA))

    def test_vectors_ignore_translation(self):
        t = Transform.affine(Space.PLOT_AREA, Space.DATA_NORMALIZED, (2.0, 3.0), (10.0, 20.0))
        assert t(Vector(1.0, 1.0, Space.PLOT_AREA)) == Vector(2.0, 3.0, Space.DATA_NORMALIZED)
        assert t(Size(1.0, 1.0, Space.PLOT_AREA)) == Size(2.0, 3.0, Space.DATA_NORMALIZED)
        assert t(Point(1.0, 1.0, Space.PLOT_AREA)) == Point(12.0, 23.0, Space.DATA_NORMALIZED)

    def test_rectangle_maps_origin_and_size(self):
        frame = Frame(view=full_view(), data_bounds=DATA_BOUNDS)
        t = frame.transform(Space.DATA_NORMALIZED, Space.DATA_ABSOLUTE)
        assert t(full_view()) == DATA_BOUNDS

    def test_wrong_source_space(self):
        t = screen_to_plot_area(SCREEN)
        with pytest.raises(TypeError):
            t(Point(0.0, 0.0, Space.PLOT_AREA))

    def test_then_checks_spaces(self):
        a = Transform.identity(Space.SCREEN)
        b = Transform.identity(Space.PLOT_AREA)
        with pytest.raises(TypeError):
            a.then(b)

    @pytest.mark.parametrize(
        "source,target",
        [(s, t) for s, t in itertools.permutations(Space, 2)],
    )
    def test_round_trip_every_pair(self, source, target):
        frame = Frame(view=VIEW, data_bounds=DATA_BOUNDS, screen_size=SCREEN)
        t = frame.transform(source, target)
        assert t.source is source and t.target is target

        p = Point(0.37, 0.81, source)
        approx_point(t.inverse()(t(p)), p)
        approx_point(frame.transform(target, source)(t(p)), p)

    def test_chain_matches_composition(self):
        frame = Frame(view=VIEW, data_bounds=DATA_BOUNDS, screen_size=SCREEN)
        direct = frame.transform(Space.SCREEN, Space.DATA_ABSOLUTE)
        composed = (
            frame.transform(Space.SCREEN, Space.PLOT_AREA)
            .then(frame.transform(Space.PLOT_AREA, Space.DATA_NORMALIZED))
            .then(frame.transform(Space.DATA_NORMALIZED, Space.DATA_ABSOLUTE))
        )
        np.testing.assert_allclose(direct.matrix, composed.matrix)

    def test_screen_center_of_full_view(self):
        frame = Frame(view=full_view(), data_bounds=DATA_BOUNDS, screen_size=SCREEN)
        t = frame.transform(Space.SCREEN, Space.DATA_ABSOLUTE)
        approx_point(t(Point(400.0, 300.0, Space.SCREEN)), Point(300.0, 0.0, Space.DATA_ABSOLUTE))

    def test_screen_needs_size(self):
        frame = Frame(view=full_view(), data_bounds=DATA_BOUNDS)
        with pytest.raises(ValueError):
            frame.transform(Space.SCREEN, Space.PLOT_AREA)

    def test_same_space_is_identity(self):
        frame = Frame(view=VIEW, data_bounds=DATA_BOUNDS)
        t = frame.transform(Space.DATA_ABSOLUTE, Space.DATA_ABSOLUTE)
        np.testing.assert_array_equal(t.matrix, np.eye(3))


def in_unit_square(controls: ViewControls) -> bool:
    b = controls.bounds()
    eps = 1e-12
    return b.x >= -eps and b.y >= -eps and b.x + b.width <= 1 + eps and b.y + b.height <= 1 + eps


class TestViewControls:
    def test_initial_view(self):
        c = ViewControls()
        assert c.bounds() == full_view()

    def test_zoom_at_center(self):
        c = ViewControls()
        c.zoom(Point(0.5, 0.5, Space.PLOT_AREA), 5.0)
        assert c.zoom_x == pytest.approx(1.0)
        assert c.zoom_y == pytest.approx(1.0)
        b = c.bounds()
        assert (b.x, b.y, b.width, b.height) == pytest.approx((0.25, 0.25, 0.5, 0.5))

    def test_zoom_keeps_cursor_fixed(self):
        c = ViewControls()
        cursor = Point(0.25, 0.75, Space.PLOT_AREA)
        before = c.data_normalized()(cursor)
        c.zoom(cursor, 5.0)
        approx_point(c.data_normalized()(cursor), before)

    def test_zoom_single_axis(self):
        c = ViewControls()
        c.zoom(Point(0.5, 0.5, Space.PLOT_AREA), 10.0, axis="x")
        assert c.zoom_x == pytest.approx(2.0)
        assert c.zoom_y == ZOOM_MIN

    def test_zoom_invalid_axis(self):
        with pytest.raises(ValueError):
            ViewControls().zoom(Point(0.5, 0.5, Space.PLOT_AREA), 1.0, axis="z")

    def test_zoom_clamped(self):
        c = ViewControls()
        c.zoom(Point(0.5, 0.5, Space.PLOT_AREA), 1000.0)
        assert c.zoom_x == ZOOM_MAX
        c.zoom(Point(0.5, 0.5, Space.PLOT_AREA), -1000.0)
        assert c.zoom_x == ZOOM_MIN
        assert c.bounds() == full_view()

    def test_pan_snaps_to_bounds(self):
        c = ViewControls()
        c.set_zoom(1.0, 1.0)
        c.pan(Vector(-10.0, 0.0, Space.PLOT_AREA))
        b = c.bounds()
        assert b.x + b.width == pytest.approx(1.0)
        assert b.width == pytest.approx(0.5)
        assert c.center.y == pytest.approx(0.5)

    def test_view_stays_in_unit_square(self):
        c = ViewControls()
        ops = [
            lambda: c.zoom(Point(0.9, 0.1, Space.PLOT_AREA), 7.0),
            lambda: c.pan(Vector(0.8, -0.6, Space.PLOT_AREA)),
            lambda: c.zoom(Point(0.0, 1.0, Space.PLOT_AREA), -3.0, axis="y"),
            lambda: c.pan(Vector(-3.0, 2.5, Space.PLOT_AREA)),
            lambda: c.set_zoom(x=8.0),
            lambda: c.zoom(Point(1.0, 0.0, Space.PLOT_AREA), -20.0),
        ]
        for op in ops:
            op()
            assert in_unit_square(c)

    def test_reset(self):
        c = ViewControls()
        c.zoom(Point(0.1, 0.1, Space.PLOT_AREA), 8.0)
        c.reset()
        assert c.bounds() == full_view()

    def test_tracker_settings_clamped(self):
        c = ViewControls()
        c.set_signal_sigma(100.0)
        assert c.signal_sigma == 20.0
        c.set_signal_sigma(0.0)
        assert c.signal_sigma == 0.1
        c.set_track_bw(1.0)
        assert c.track_bw == 1e3
        c.set_track_bw(1e6)
        assert c.track_bw == 100e3

    def test_power_range(self):
        c = ViewControls()
        c.set_power_bounds((-30.0, 10.0))
        assert c.power_range == (-30.0, 10.0)
        c.set_min_power(-20.0)
        c.set_max_power(-25.0)
        assert c.power_range == (-20.0, -20.0)
        c.set_power_bounds((-15.0, 5.0))
        assert c.power_range == (-15.0, -15.0)

    def test_power_setters_clamp_to_bounds(self):
        c = ViewControls()
        c.set_power_bounds((-30.0, 10.0))
        c.set_min_power(-50.0)
        c.set_max_power(40.0)
        assert c.power_range == (-30.0, 10.0)
