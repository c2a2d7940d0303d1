"""
Tests for the edit state machine and the session driver.

The reducer is exercised directly; the driver runs against a real
QueryCoordinator with a fake server and a manual job queue.
"""

import unittest

from pop_explorer.edit_session import (
    NO_TARGET,
    BufferTarget,
    CancelQueries,
    CheckIn,
    CheckOut,
    ClearDisplay,
    ClearTarget,
    DrawCompleted,
    DrawnTarget,
    EditEnd,
    EditSession,
    EditStart,
    GeometryChanged,
    IssueQuery,
    MapClicked,
    Mode,
    RadiusChanged,
    RegionCleared,
    Rejected,
    RenderTarget,
    SavedQuerySelected,
    SavedTarget,
    SessionState,
    reduce,
)
from pop_explorer.errors import CapacityExceeded
from pop_explorer.geometry import Geometry
from pop_explorer.population_query import QueryCoordinator
from pop_explorer.saved_queries import METHOD_BUFFER, METHOD_POLYGON, SavedQuerySet

from fakes import FakeDisplay, FakeRenderer, FakeServer, ManualSpawn, square

P = (174.7633, -36.8485)
TRIANGLE = ((174.70, -36.80), (174.80, -36.80), (174.75, -36.90))


def _types(effects):
    return [type(e) for e in effects]


class TestReducer(unittest.TestCase):

    def _buffer_state(self):
        state, _ = reduce(SessionState(radius_km=1.0), MapClicked(P))
        return state

    def _saved_state(self):
        state, _ = reduce(SessionState(), SavedQuerySelected("q1", Geometry(square(174.0, -37.0, 0.1))))
        return state

    def test_click_from_idle_starts_buffer(self):
        state, effects = reduce(SessionState(radius_km=1.0), MapClicked(P))
        self.assertEqual(state.mode, Mode.EDITING_BUFFER)
        self.assertEqual(state.target.spec.center, P)
        self.assertEqual(state.version, 1)
        self.assertEqual(_types(effects), [RenderTarget, IssueQuery])
        self.assertEqual(effects[1].version, 1)
        self.assertIs(effects[1].geometry, state.geometry)

    def test_click_recentres_buffer(self):
        state = self._buffer_state()
        state, effects = reduce(state, MapClicked((175.0, -37.0)))
        self.assertEqual(state.target.spec.center, (175.0, -37.0))
        self.assertEqual(state.version, 2)
        self.assertEqual(_types(effects), [RenderTarget, IssueQuery])

    def test_click_ignored_with_drawn_or_saved_target_or_drag(self):
        drawn, _ = reduce(SessionState(), DrawCompleted(TRIANGLE))
        self.assertEqual(reduce(drawn, MapClicked(P)), (drawn, []))

        saved = self._saved_state()
        self.assertEqual(reduce(saved, MapClicked(P)), (saved, []))

        dragging, _ = reduce(self._buffer_state(), EditStart("buffer"))
        self.assertEqual(reduce(dragging, MapClicked(P)), (dragging, []))

    def test_radius_change_rebuilds_buffer(self):
        state = self._buffer_state()
        before = state.geometry.area_km2()
        state, effects = reduce(state, RadiusChanged(2.0))
        self.assertEqual(state.radius_km, 2.0)
        self.assertEqual(state.target.spec.radius_km, 2.0)
        self.assertGreater(state.geometry.area_km2(), before)
        self.assertEqual(_types(effects), [RenderTarget, IssueQuery])

    def test_radius_change_when_idle_only_stores(self):
        state, effects = reduce(SessionState(), RadiusChanged(3.5))
        self.assertEqual(state.radius_km, 3.5)
        self.assertEqual(effects, [])
        state, _ = reduce(state, MapClicked(P))
        self.assertEqual(state.target.spec.radius_km, 3.5)

    def test_radius_change_cancels_drag(self):
        state = self._buffer_state()
        state, _ = reduce(state, EditStart("buffer"))
        state, _ = reduce(state, GeometryChanged(state.geometry.translated(0.01, 0)))
        state, _ = reduce(state, RadiusChanged(2.0))
        self.assertFalse(state.dragging)
        self.assertAlmostEqual(state.target.spec.center[0], P[0], places=6)

    def test_non_positive_radius_rejected(self):
        state = self._buffer_state()
        after, effects = reduce(state, RadiusChanged(0))
        self.assertIs(after, state)
        self.assertEqual(_types(effects), [Rejected])

    def test_draw_discards_buffer(self):
        state = self._buffer_state()
        buffer_target = state.target
        state, effects = reduce(state, DrawCompleted(TRIANGLE))
        self.assertEqual(state.mode, Mode.EDITING_DRAWN)
        self.assertEqual(_types(effects), [ClearTarget, RenderTarget, IssueQuery])
        self.assertIs(effects[0].target, buffer_target)

    def test_invalid_draw_rejected_state_unchanged(self):
        state = self._buffer_state()
        after, effects = reduce(state, DrawCompleted(((0, 0), (1, 1))))
        self.assertIs(after, state)
        self.assertEqual(_types(effects), [Rejected])

    def test_draw_from_saved_checks_in_first(self):
        state = self._saved_state()
        state, effects = reduce(state, DrawCompleted(TRIANGLE))
        self.assertEqual(_types(effects), [ClearTarget, CheckIn, RenderTarget, IssueQuery])
        self.assertIsNone(effects[1].population_version)

    def test_select_saved_discards_adhoc(self):
        state = self._buffer_state()
        geom = Geometry(square(174.0, -37.0, 0.1))
        state, effects = reduce(state, SavedQuerySelected("q1", geom))
        self.assertEqual(state.mode, Mode.EDITING_SAVED)
        self.assertEqual(_types(effects), [ClearTarget, CheckOut, RenderTarget, IssueQuery])
        self.assertIsNot(state.geometry, geom)

    def test_select_other_saved_checks_in_current(self):
        state = self._saved_state()
        state, effects = reduce(state, SavedQuerySelected("q2", Geometry(square(0, 0))))
        self.assertEqual(_types(effects), [ClearTarget, CheckIn, CheckOut, RenderTarget, IssueQuery])
        self.assertEqual(effects[1].query_id, "q1")
        self.assertEqual(state.target.query_id, "q2")

    def test_edit_start_must_name_current_target(self):
        state = self._buffer_state()
        after, effects = reduce(state, EditStart("drawn"))
        self.assertIs(after, state)
        self.assertEqual(_types(effects), [Rejected])

        after, effects = reduce(SessionState(), EditStart("buffer"))
        self.assertEqual(_types(effects), [Rejected])

    def test_second_edit_start_rejected(self):
        state, _ = reduce(self._buffer_state(), EditStart("buffer"))
        self.assertTrue(state.dragging)
        after, effects = reduce(state, EditStart("buffer"))
        self.assertIs(after, state)
        self.assertEqual(_types(effects), [Rejected])

    def test_drag_updates_live_and_recentres_buffer(self):
        state, _ = reduce(self._buffer_state(), EditStart("buffer"))
        moved = state.geometry.translated(0.05, 0.02)
        state, effects = reduce(state, GeometryChanged(moved))

        self.assertEqual(state.version, 2)
        self.assertEqual(_types(effects), [RenderTarget, IssueQuery])
        lon, lat = state.target.spec.center
        self.assertAlmostEqual(lon, moved.centroid[0])
        self.assertAlmostEqual(lat, moved.centroid[1])

    def test_geometry_change_outside_drag_ignored(self):
        state = self._buffer_state()
        self.assertEqual(reduce(state, GeometryChanged(Geometry(square(0, 0)))), (state, []))

    def test_commit_keeps_adhoc_target(self):
        state, _ = reduce(self._buffer_state(), EditStart("buffer"))
        state, _ = reduce(state, GeometryChanged(state.geometry.translated(0.01, 0.0)))
        state, effects = reduce(state, EditEnd(committed=True))
        self.assertFalse(state.dragging)
        self.assertEqual(state.mode, Mode.EDITING_BUFFER)
        self.assertEqual(effects, [])

    def test_cancel_restores_pre_drag_geometry(self):
        start = self._buffer_state()
        state, _ = reduce(start, EditStart("buffer"))
        state, _ = reduce(state, GeometryChanged(state.geometry.translated(0.01, 0.0)))
        state, _ = reduce(state, GeometryChanged(state.geometry.translated(0.01, 0.0)))
        state, effects = reduce(state, EditEnd(committed=False))

        self.assertFalse(state.dragging)
        self.assertEqual(state.geometry, start.geometry)
        self.assertEqual(_types(effects), [RenderTarget, IssueQuery])
        self.assertEqual(effects[1].version, state.version)

    def test_saved_commit_checks_in_and_goes_idle(self):
        state, _ = reduce(self._saved_state(), EditStart("q1"))
        moved = state.geometry.translated(0.1, 0.0)
        state, _ = reduce(state, GeometryChanged(moved))
        version = state.version
        state, effects = reduce(state, EditEnd(committed=True))

        self.assertEqual(state.mode, Mode.IDLE)
        self.assertEqual(state.version, version)
        self.assertEqual(_types(effects), [ClearTarget, CheckIn])
        self.assertEqual(effects[1].geometry, moved)
        self.assertEqual(effects[1].population_version, version)

    def test_saved_cancel_checks_in_unchanged(self):
        start = self._saved_state()
        state, _ = reduce(start, EditStart("q1"))
        state, _ = reduce(state, GeometryChanged(state.geometry.translated(0.1, 0.0)))
        state, effects = reduce(state, EditEnd(committed=False))

        self.assertEqual(state.mode, Mode.IDLE)
        check_in = [e for e in effects if isinstance(e, CheckIn)][0]
        self.assertEqual(check_in.geometry, start.geometry)
        self.assertIsNone(check_in.population_version)

    def test_region_cleared(self):
        state, _ = reduce(self._saved_state(), EditStart("q1"))
        state, effects = reduce(state, RegionCleared())
        self.assertIs(state.target, NO_TARGET)
        self.assertFalse(state.dragging)
        self.assertEqual(_types(effects), [CancelQueries, ClearDisplay, ClearTarget, CheckIn])

    def test_unknown_event(self):
        with self.assertRaises(TypeError):
            reduce(SessionState(), object())


class SessionHarness(unittest.TestCase):
    """Session wired to a real coordinator; 1 km buffers hold 1,000 people, 2 km ones 4,000."""

    def setUp(self):
        self.spawn = ManualSpawn()
        self.server = FakeServer(lambda g: 1000.0 if g.area_km2() < 5 else 4000.0)
        self.coord = QueryCoordinator(self.server, None, spawn=self.spawn)
        self.saved = SavedQuerySet()
        self.display = FakeDisplay()
        self.renderer = FakeRenderer()
        self.status = []
        self.session = EditSession(
            self.coord, self.saved,
            renderer=self.renderer, display=self.display,
            on_status=self.status.append, radius_km=1.0,
        )


class TestEditSessionDriver(SessionHarness):

    def test_click_radius_save_delete_scenario(self):
        self.session.click(*P)
        self.spawn.run_all()
        self.assertEqual(self.display.last.population_value, 1000)

        self.session.set_radius(2.0)
        self.session.set_radius(2.0)
        self.assertEqual(len(self.spawn.jobs), 2)
        # Latest first; the late one must not overwrite it
        self.spawn.run(1)
        self.spawn.run(0)
        self.assertEqual(self.display.last.population_value, 4000)
        self.assertEqual(len(self.display.shown), 2)

        entry = self.session.save_current()
        self.assertEqual(len(self.saved), 1)
        self.assertEqual(entry.method, METHOD_BUFFER)
        self.assertEqual(entry.radius_km, 2.0)
        self.assertEqual(entry.population, 4000.0)

        self.session.remove_saved(entry.id)
        self.assertEqual(len(self.saved), 0)
        self.assertTrue(self.session.can_save)

    def test_stale_result_never_displayed(self):
        self.session.click(*P)
        self.session.set_radius(2.0)
        self.spawn.run(1)
        self.spawn.run(0)
        self.assertEqual([r.population_value for r in self.display.shown], [4000])

    def test_transport_failure_keeps_value(self):
        self.session.click(*P)
        self.spawn.run_all()
        self.server.fail = "Timeout on example.org"
        self.session.set_radius(2.0)
        self.spawn.run_all()

        self.assertEqual(self.display.last.population_value, 1000)
        self.assertEqual(self.session.displayed_population, 1000.0)
        self.assertTrue(self.status[-1].startswith("Population query failed"))

    def test_can_save_tracks_capacity_and_target(self):
        self.assertFalse(self.session.can_save)
        self.session.click(*P)
        self.assertTrue(self.session.can_save)

        ids = [self.session.save_current().id for _ in range(5)]
        self.assertFalse(self.session.can_save)
        with self.assertRaises(CapacityExceeded):
            self.session.save_current()
        self.assertEqual(len(self.saved), 5)

        self.session.remove_saved(ids[0])
        self.assertTrue(self.session.can_save)

    def test_save_before_result_gets_late_population(self):
        self.session.click(*P)
        entry = self.session.save_current()
        self.assertEqual(entry.population, 0.0)

        self.spawn.run_all()
        self.assertEqual(entry.population, 1000.0)

    def test_save_drawn_region(self):
        self.session.finish_drawing(TRIANGLE)
        self.spawn.run_all()
        entry = self.session.save_current(label="Triangle")
        self.assertEqual(entry.method, METHOD_POLYGON)
        self.assertIsNone(entry.radius_km)
        self.assertEqual(entry.label, "Triangle")

    def test_save_refused_while_dragging_or_idle(self):
        self.assertIsNone(self.session.save_current())
        self.session.click(*P)
        self.session.dispatch(EditStart("buffer"))
        self.assertFalse(self.session.can_save)
        self.assertIsNone(self.session.save_current())
        self.assertEqual(len(self.saved), 0)

    def test_saved_edit_round_trip(self):
        self.session.click(*P)
        self.spawn.run_all()
        entry = self.session.save_current()

        self.session.select_saved(entry.id)
        self.assertTrue(entry.checked_out)
        self.assertIsInstance(self.renderer.shown[-1], SavedTarget)
        # Selecting a saved query discards the ad-hoc buffer
        self.assertIsInstance(self.renderer.cleared[0], BufferTarget)

        self.session.dispatch(EditStart(entry.id))
        moved = self.session.state.geometry.translated(0.2, 0.0)
        self.session.dispatch(GeometryChanged(moved))
        self.session.dispatch(EditEnd(committed=True))

        self.assertEqual(self.session.mode, Mode.IDLE)
        self.assertFalse(entry.checked_out)
        self.assertEqual(entry.geometry, moved)

        # The drag's query finishes after check-in and still lands on the entry
        self.server.value_for = lambda g: 777.0
        self.spawn.run_all()
        self.assertEqual(entry.population, 777.0)
        self.assertEqual(self.display.last.population_value, 777)

    def test_remove_checked_out_entry_clears_session(self):
        self.session.finish_drawing(TRIANGLE)
        entry = self.session.save_current()
        self.session.select_saved(entry.id)

        self.session.remove_saved(entry.id)

        self.assertEqual(self.session.mode, Mode.IDLE)
        self.assertEqual(len(self.saved), 0)
        self.assertEqual(self.display.cleared, 1)

    def test_clear_cancels_in_flight(self):
        self.session.click(*P)
        self.session.clear()
        self.spawn.run_all()
        self.assertEqual(self.display.shown, [])
        self.assertIsNone(self.session.displayed_population)
        self.assertIsInstance(self.renderer.cleared[-1], BufferTarget)

    def test_state_listener_called_after_each_dispatch(self):
        states = []
        self.session.on_state_changed = states.append
        self.session.click(*P)
        self.session.clear()
        self.assertEqual([s.mode for s in states], [Mode.EDITING_BUFFER, Mode.IDLE])

    def test_rejection_reported_as_status(self):
        self.session.finish_drawing([(0, 0), (1, 1)])
        self.assertTrue(self.status)
        self.assertEqual(self.session.mode, Mode.IDLE)


class TestDeferredDelivery(SessionHarness):
    """Completions queued for the UI loop, as root.after(0, ...) does in the app."""

    def setUp(self):
        super().setUp()
        self.posted = []
        self.coord._post = lambda fn: self.posted.append(fn)

    def flush(self):
        posted, self.posted = self.posted, []
        for fn in posted:
            fn()

    def test_failure_of_current_query_reported_after_flush(self):
        self.session.click(*P)
        self.spawn.run_all()
        self.flush()
        self.assertEqual(self.display.last.population_value, 1000)

        self.server.fail = "Timeout on example.org"
        self.session.set_radius(2.0)
        self.spawn.run_all()
        self.assertEqual(len(self.posted), 1)
        self.flush()

        self.assertTrue(self.status[-1].startswith("Population query failed"))
        self.assertIn("Timeout", self.status[-1])
        self.assertEqual(len(self.display.shown), 1)
        self.assertEqual(self.display.last.population_value, 1000)
        self.assertEqual(self.session.displayed_population, 1000.0)

    def test_queued_result_superseded_before_flush_is_dropped(self):
        self.session.click(*P)
        self.spawn.run_all()
        self.session.set_radius(2.0)
        self.spawn.run_all()
        self.assertEqual(len(self.posted), 2)

        self.flush()

        self.assertEqual([r.population_value for r in self.display.shown], [4000])

    def test_queued_failure_superseded_before_flush_is_silent(self):
        self.server.fail = "boom"
        self.session.click(*P)
        self.spawn.run_all()
        self.server.fail = None
        self.session.set_radius(2.0)
        self.spawn.run_all()
        self.flush()

        self.assertFalse(any(s.startswith("Population query failed") for s in self.status))
        self.assertEqual(self.display.last.population_value, 4000)


if __name__ == "__main__":
    unittest.main()
