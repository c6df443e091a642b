import pytest

from bitmap_engine.viewport import (
    MAX_ZOOM,
    ViewState,
    ZoomController,
    compute_view_for_image,
    zoom_to_fit,
)


def test_fit_zoom_is_limited_to_actual_size():
    view = compute_view_for_image(100, 50, (800, 600), auto_mode="fit", current_zoom=3, zoom_limit=1.0)
    assert view.zoom == 1.0
    assert (view.translate_x, view.translate_y) == (350, 275)


def test_fit_zoom_without_limit_scales_up():
    view = compute_view_for_image(100, 50, (800, 600), auto_mode=True, current_zoom=3, zoom_limit=None)
    assert view.zoom == 8.0


def test_manual_mode_keeps_zoom_and_centres():
    view = compute_view_for_image(400, 400, (200, 100), auto_mode=False, current_zoom=0.5)
    assert view.zoom == 0.5
    assert (view.translate_x, view.translate_y) == (0, -50)


def test_zoom_to_fit_picks_tighter_axis():
    assert zoom_to_fit(1000, 500, 500, 500) == 0.5


def test_zoom_levels_step():
    controller = ZoomController()
    controller.set_zoom(1.0)
    assert controller.next_zoom_level() == 1.25
    assert controller.previous_zoom_level() == 0.75
    controller.set_zoom(10)
    assert controller.next_zoom_level() is None


def test_zoom_is_clamped():
    controller = ZoomController()
    controller.set_zoom(1e6)
    assert controller.zoom == MAX_ZOOM


def test_zoom_to_point_keeps_point_fixed():
    controller = ZoomController()
    controller.set_state(ViewState(10, 20, 1.0, "fit"))
    before = ((50 - 10) / 1.0, (60 - 20) / 1.0)
    state = controller.zoom_to_point(2.0, 50, 60)
    after = ((50 - state.translate_x) / state.zoom, (60 - state.translate_y) / state.zoom)
    assert after == pytest.approx(before)
    assert state.auto_mode is False


def test_pan_disables_auto():
    controller = ZoomController()
    controller.enable_auto("fit")
    state = controller.pan(5, -5)
    assert (state.translate_x, state.translate_y) == (5, -5)
    assert state.auto_mode is False


def test_view_state_dict_round_trip():
    state = ViewState(1.5, 2.5, 0.75, "fit")
    assert ViewState.from_dict(state.to_dict()) == state
    assert ViewState.from_dict({"translateX": 3, "translateY": 4, "zoom": 2, "auto": True}) == ViewState(3, 4, 2, True)
    assert ViewState.from_dict(None) == ViewState()
