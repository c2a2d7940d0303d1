"""
Interactive editing of the active region.

At any moment exactly one thing can be edited: the ad-hoc buffer, the
ad-hoc drawn polygon, or one saved query checked out of the saved set.
`reduce` is the whole state machine: it takes the current SessionState and
one input event and returns the next state plus a list of effects. It never
touches the map, the network or the saved set; `EditSession` runs the
effects against those collaborators.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from pop_explorer import config
from pop_explorer.display import format_population
from pop_explorer.errors import InvalidGeometry
from pop_explorer.geometry import BufferSpec, Geometry, LonLat, drawn_geometry
from pop_explorer.population_query import PopulationResult, QueryCoordinator
from pop_explorer.saved_queries import (
    METHOD_BUFFER,
    METHOD_POLYGON,
    SavedQuery,
    SavedQuerySet,
)

log = logging.getLogger(__name__)

BUFFER_TARGET_ID = "buffer"
DRAWN_TARGET_ID = "drawn"


# ------------------------------
# Edit targets
# ------------------------------
@dataclass(frozen=True)
class NoTarget:
    target_id = None
    geometry = None


@dataclass(frozen=True)
class BufferTarget:
    spec: BufferSpec
    geometry: Geometry
    target_id = BUFFER_TARGET_ID

    @classmethod
    def from_spec(cls, spec: BufferSpec) -> "BufferTarget":
        return cls(spec=spec, geometry=spec.geometry())

    def with_geometry(self, geometry: Geometry) -> "BufferTarget":
        return BufferTarget(spec=self.spec.moved_to(geometry.centroid), geometry=geometry)


@dataclass(frozen=True)
class DrawnTarget:
    geometry: Geometry
    target_id = DRAWN_TARGET_ID

    def with_geometry(self, geometry: Geometry) -> "DrawnTarget":
        return DrawnTarget(geometry=geometry)


@dataclass(frozen=True)
class SavedTarget:
    query_id: str
    geometry: Geometry

    @property
    def target_id(self):
        return self.query_id

    def with_geometry(self, geometry: Geometry) -> "SavedTarget":
        return SavedTarget(query_id=self.query_id, geometry=geometry)


NO_TARGET = NoTarget()


class Mode(Enum):
    IDLE = "idle"
    EDITING_BUFFER = "editing_buffer"
    EDITING_DRAWN = "editing_drawn"
    EDITING_SAVED = "editing_saved"


@dataclass(frozen=True)
class SessionState:
    target: object = NO_TARGET
    radius_km: float = config.DEFAULT_RADIUS_KM
    dragging: bool = False
    drag_origin: object = None
    version: int = 0

    @property
    def mode(self) -> Mode:
        if isinstance(self.target, BufferTarget):
            return Mode.EDITING_BUFFER
        if isinstance(self.target, DrawnTarget):
            return Mode.EDITING_DRAWN
        if isinstance(self.target, SavedTarget):
            return Mode.EDITING_SAVED
        return Mode.IDLE

    @property
    def geometry(self) -> Optional[Geometry]:
        return self.target.geometry


# ------------------------------
# Events
# ------------------------------
@dataclass(frozen=True)
class MapClicked:
    point: LonLat


@dataclass(frozen=True)
class RadiusChanged:
    radius_km: float


@dataclass(frozen=True)
class DrawCompleted:
    points: Tuple[LonLat, ...]


@dataclass(frozen=True)
class SavedQuerySelected:
    query_id: str
    geometry: Geometry


@dataclass(frozen=True)
class EditStart:
    target_id: str


@dataclass(frozen=True)
class GeometryChanged:
    geometry: Geometry


@dataclass(frozen=True)
class EditEnd:
    committed: bool = True


@dataclass(frozen=True)
class RegionCleared:
    pass


# ------------------------------
# Effects
# ------------------------------
@dataclass(frozen=True)
class IssueQuery:
    geometry: Geometry
    version: int


@dataclass(frozen=True)
class CancelQueries:
    pass


@dataclass(frozen=True)
class RenderTarget:
    target: object


@dataclass(frozen=True)
class ClearTarget:
    target: object


@dataclass(frozen=True)
class CheckOut:
    query_id: str


@dataclass(frozen=True)
class CheckIn:
    query_id: str
    geometry: Geometry
    # Version whose population belongs to the checked-in geometry; None keeps
    # the stored population.
    population_version: Optional[int] = None


@dataclass(frozen=True)
class ClearDisplay:
    pass


@dataclass(frozen=True)
class Rejected:
    reason: str


Effects = List[object]


# ------------------------------
# Reducer
# ------------------------------
def _moved(state: SessionState, target, **changes) -> Tuple[SessionState, Effects]:
    """Make `target` live with a new geometry version and ask for its population."""
    version = state.version + 1
    state = replace(state, target=target, version=version, **changes)
    return state, [RenderTarget(target), IssueQuery(target.geometry, version)]


def _cancel_drag(state: SessionState) -> SessionState:
    if not state.dragging:
        return state
    return replace(state, target=state.drag_origin, dragging=False, drag_origin=None)


def _release(state: SessionState) -> Tuple[SessionState, Effects]:
    """Cancel any drag, then let go of the current target: ad-hoc regions are
    discarded, a saved query goes back to the saved set unchanged."""
    state = _cancel_drag(state)
    target = state.target
    effects: Effects = []
    if isinstance(target, SavedTarget):
        effects += [ClearTarget(target), CheckIn(target.query_id, target.geometry)]
    elif isinstance(target, (BufferTarget, DrawnTarget)):
        effects.append(ClearTarget(target))
    return replace(state, target=NO_TARGET, dragging=False, drag_origin=None), effects


def _on_map_clicked(state: SessionState, event: MapClicked):
    if state.dragging or isinstance(state.target, (DrawnTarget, SavedTarget)):
        return state, []
    try:
        target = BufferTarget.from_spec(BufferSpec(center=tuple(event.point), radius_km=state.radius_km))
    except InvalidGeometry as e:
        return state, [Rejected(str(e))]
    return _moved(state, target)


def _on_radius_changed(state: SessionState, event: RadiusChanged):
    radius = event.radius_km
    if radius is None or not radius > 0:
        return state, [Rejected(f"Radius must be positive, got {radius!r}")]

    state = replace(state, radius_km=float(radius))
    if not isinstance(state.target, BufferTarget):
        return state, []

    state = _cancel_drag(state)
    target = BufferTarget.from_spec(state.target.spec.with_radius(radius))
    return _moved(state, target)


def _on_draw_completed(state: SessionState, event: DrawCompleted):
    try:
        geom = drawn_geometry(event.points)
    except InvalidGeometry as e:
        return state, [Rejected(str(e))]

    state, effects = _release(state)
    state, more = _moved(state, DrawnTarget(geom))
    return state, effects + more


def _on_saved_selected(state: SessionState, event: SavedQuerySelected):
    current = state.target
    if isinstance(current, SavedTarget) and current.query_id == event.query_id:
        return state, []

    state, effects = _release(state)
    target = SavedTarget(query_id=event.query_id, geometry=event.geometry.clone())
    effects.append(CheckOut(event.query_id))
    state, more = _moved(state, target)
    return state, effects + more


def _on_edit_start(state: SessionState, event: EditStart):
    target = state.target
    if isinstance(target, NoTarget):
        return state, [Rejected("Nothing to drag: place a buffer, draw a region or pick a saved query")]
    if state.dragging:
        return state, [Rejected("A region is already being dragged")]
    if event.target_id != target.target_id:
        return state, [Rejected(f"{event.target_id!r} is not the region being edited")]
    return replace(state, dragging=True, drag_origin=target), []


def _on_geometry_changed(state: SessionState, event: GeometryChanged):
    if not state.dragging:
        return state, []
    if not event.geometry.is_usable():
        return state, [Rejected("Dragged region is not a valid polygon")]
    return _moved(state, state.target.with_geometry(event.geometry.clone()))


def _on_edit_end(state: SessionState, event: EditEnd):
    if not state.dragging:
        return state, []

    if event.committed:
        target = state.target
        state = replace(state, dragging=False, drag_origin=None)
        if isinstance(target, SavedTarget):
            # Version is kept so a result still in flight lands on the checked-in entry.
            effects = [ClearTarget(target), CheckIn(target.query_id, target.geometry, state.version)]
            return replace(state, target=NO_TARGET), effects
        return state, []

    state, effects = _moved(_cancel_drag(state), state.drag_origin)
    target = state.target
    if isinstance(target, SavedTarget):
        effects += [ClearTarget(target), CheckIn(target.query_id, target.geometry)]
        state = replace(state, target=NO_TARGET)
    return state, effects


def _on_region_cleared(state: SessionState, event: RegionCleared):
    state, effects = _release(state)
    state = replace(state, version=state.version + 1)
    return state, [CancelQueries(), ClearDisplay()] + effects


_HANDLERS = {
    MapClicked: _on_map_clicked,
    RadiusChanged: _on_radius_changed,
    DrawCompleted: _on_draw_completed,
    SavedQuerySelected: _on_saved_selected,
    EditStart: _on_edit_start,
    GeometryChanged: _on_geometry_changed,
    EditEnd: _on_edit_end,
    RegionCleared: _on_region_cleared,
}


def reduce(state: SessionState, event) -> Tuple[SessionState, Effects]:
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"Unknown edit event: {event!r}")
    return handler(state, event)


# ------------------------------
# Driver
# ------------------------------
class EditSession:
    """
    Runs the reducer against the real collaborators.

    renderer: object with show_target(target) / clear_target(target)
    display:  object with show(PopulationReading) / clear()
    on_status: callable(str) for short user-facing messages
    """

    def __init__(self, coordinator: QueryCoordinator, saved: SavedQuerySet, *,
                 renderer=None, display=None, on_status: Callable[[str], None] = None,
                 on_state_changed: Callable[[SessionState], None] = None,
                 radius_km: float = None):
        self.coordinator = coordinator
        self.saved = saved
        self.renderer = renderer
        self.display = display
        self.on_status = on_status
        self.on_state_changed = on_state_changed

        self.state = SessionState(radius_km=radius_km or config.DEFAULT_RADIUS_KM)
        self.displayed_population: Optional[float] = None
        self._displayed_version: Optional[int] = None
        self._late_checkin: Optional[Tuple[int, str]] = None

        coordinator.on_result = self._on_result
        coordinator.on_error = self._on_error

        self._runners = {
            IssueQuery: self._run_issue_query,
            CancelQueries: self._run_cancel_queries,
            RenderTarget: self._run_render_target,
            ClearTarget: self._run_clear_target,
            CheckOut: self._run_check_out,
            CheckIn: self._run_check_in,
            ClearDisplay: self._run_clear_display,
            Rejected: self._run_rejected,
        }

    # ---- input ----
    def dispatch(self, event) -> Effects:
        self.state, effects = reduce(self.state, event)
        for effect in effects:
            self._runners[type(effect)](effect)
        if self.on_state_changed:
            self.on_state_changed(self.state)
        return effects

    @property
    def mode(self) -> Mode:
        return self.state.mode

    def click(self, lon: float, lat: float) -> Effects:
        return self.dispatch(MapClicked((lon, lat)))

    def set_radius(self, radius_km: float) -> Effects:
        return self.dispatch(RadiusChanged(radius_km))

    def finish_drawing(self, points: Sequence[LonLat]) -> Effects:
        return self.dispatch(DrawCompleted(tuple(tuple(p) for p in points)))

    def select_saved(self, query_id: str) -> Effects:
        entry = self.saved.get(query_id)
        if entry is None:
            return []
        return self.dispatch(SavedQuerySelected(query_id, entry.geometry.clone()))

    def clear(self) -> Effects:
        return self.dispatch(RegionCleared())

    # ---- saved set actions ----
    @property
    def can_save(self) -> bool:
        st = self.state
        return (
            isinstance(st.target, (BufferTarget, DrawnTarget))
            and not st.dragging
            and not self.saved.is_full
        )

    def save_current(self, label: str = None) -> Optional[SavedQuery]:
        """
        Add the ad-hoc region to the saved set with the last displayed population.

        Raises CapacityExceeded when the set is full; returns None when there is
        nothing saveable right now.
        """
        st = self.state
        target = st.target
        if st.dragging:
            self._status("Finish dragging before saving")
            return None
        if isinstance(target, BufferTarget):
            method, radius = METHOD_BUFFER, target.spec.radius_km
        elif isinstance(target, DrawnTarget):
            method, radius = METHOD_POLYGON, None
        else:
            self._status("Place a buffer or draw a region first")
            return None

        entry = self.saved.save(
            target.geometry,
            method,
            self.displayed_population or 0,
            radius_km=radius,
            label=label,
        )
        if self._displayed_version != st.version:
            # Result for the saved geometry is still in flight
            self._late_checkin = (st.version, entry.id)
        return entry

    def remove_saved(self, query_id: str) -> None:
        target = self.state.target
        if isinstance(target, SavedTarget) and target.query_id == query_id:
            self.dispatch(RegionCleared())
        self.saved.remove(query_id)

    def relabel_saved(self, query_id: str, label: str) -> bool:
        return self.saved.relabel(query_id, label)

    # ---- query completions ----
    def _on_result(self, result: PopulationResult) -> None:
        if self._late_checkin and self._late_checkin[0] == result.for_version:
            self.saved.update_population(self._late_checkin[1], result.value)
            self._late_checkin = None

        if result.for_version != self.state.version:
            log.debug("Result for version %d arrived at version %d, dropped",
                      result.for_version, self.state.version)
            return

        self.displayed_population = result.value
        self._displayed_version = result.for_version
        if self.display is not None:
            self.display.show(format_population(result.value))

    def _on_error(self, err: Exception) -> None:
        self._status(f"Population query failed: {err}")

    # ---- effect runners ----
    def _run_issue_query(self, effect: IssueQuery):
        self.coordinator.query(effect.geometry, effect.version)

    def _run_cancel_queries(self, _effect):
        self.coordinator.cancel()

    def _run_render_target(self, effect: RenderTarget):
        if self.renderer is not None:
            self.renderer.show_target(effect.target)

    def _run_clear_target(self, effect: ClearTarget):
        if self.renderer is not None:
            self.renderer.clear_target(effect.target)

    def _run_check_out(self, effect: CheckOut):
        self.saved.check_out(effect.query_id)

    def _run_check_in(self, effect: CheckIn):
        population = None
        if effect.population_version is not None:
            population = self.displayed_population
            if self._displayed_version != effect.population_version:
                self._late_checkin = (effect.population_version, effect.query_id)
        self.saved.check_in(effect.query_id, effect.geometry, population)

    def _run_clear_display(self, _effect):
        self.displayed_population = None
        self._displayed_version = None
        if self.display is not None:
            self.display.clear()

    def _run_rejected(self, effect: Rejected):
        log.info("Edit rejected: %s", effect.reason)
        self._status(effect.reason)

    def _status(self, text: str):
        if self.on_status:
            self.on_status(text)
