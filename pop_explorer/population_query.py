"""
Population aggregate queries.

Two sources can answer "how many people live inside this polygon":

  - PopulationIndex: grid cells already pulled down for the area around the
    last query, held locally in a pandas table behind a shapely STRtree.
  - ServerDataset: the ArcGIS FeatureServer layer itself, asked for a
    sum statistic over all cells intersecting the polygon.

QueryCoordinator decides which one answers and makes sure only the latest
request ever reaches the display.
"""
from __future__ import annotations

import json
import logging
import socket
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlparse

import pandas as pd
import requests
from shapely.geometry import box, shape
from shapely.strtree import STRtree

from pop_explorer import config
from pop_explorer.errors import QueryCancelled, QueryTransportFailure
from pop_explorer.geometry import Geometry

log = logging.getLogger(__name__)


def _short_host(url: str) -> str:
    try:
        return urlparse(url).netloc or url
    except Exception:
        return url


def _is_timeout_error(e: Exception) -> bool:
    s = str(e).lower()
    return (
        isinstance(e, (TimeoutError, socket.timeout, requests.Timeout))
        or "timed out" in s
    )


def _run_in_thread(fn: Callable[[], None]) -> None:
    threading.Thread(target=fn, daemon=True).start()


def _call_now(fn: Callable[[], None]) -> None:
    fn()


# ------------------------------
# Request / response shapes
# ------------------------------
def statistics_params(geometry: Geometry, field: str = None, out_name: str = None) -> dict:
    """Query parameters for a sum-of-field aggregate over features intersecting `geometry`."""
    field = field or config.POPULATION_FIELD
    out_name = out_name or config.POPULATION_OUT_NAME
    return {
        "f": "json",
        "where": "1=1",
        "geometry": json.dumps(geometry.to_esri_json()),
        "geometryType": "esriGeometryPolygon",
        "inSR": geometry.wkid,
        "spatialRel": "esriSpatialRelIntersects",
        "outStatistics": json.dumps([{
            "statisticType": "sum",
            "onStatisticField": field,
            "outStatisticFieldName": out_name,
        }]),
        "returnGeometry": "false",
    }


def population_from_payload(payload: Optional[dict], out_name: str = None) -> float:
    """
    Pull the summed value out of an aggregate response.

    No features, or a null sum (ArcGIS returns null when nothing intersects),
    both mean zero people.
    """
    out_name = out_name or config.POPULATION_OUT_NAME
    if not payload:
        return 0.0
    features = payload.get("features") or []
    if not features:
        return 0.0
    attrs = features[0].get("attributes") or {}
    value = attrs.get(out_name)
    return float(value) if value else 0.0


@dataclass(frozen=True)
class PopulationResult:
    value: float
    for_version: int
    token: int
    source: str = "server"


# ------------------------------
# Remote dataset
# ------------------------------
class ServerDataset:
    def __init__(self, layer_url: str = None, *, field: str = None, timeout: float = None, session=None):
        self.layer_url = (layer_url or config.POPULATION_LAYER_URL).rstrip("/")
        self.field = field or config.POPULATION_FIELD
        self.timeout = timeout or config.REQUEST_TIMEOUT_S
        self.session = session or requests.Session()

    @property
    def query_url(self) -> str:
        return self.layer_url + "/query"

    def _post(self, params: dict) -> dict:
        host = _short_host(self.layer_url)
        try:
            r = self.session.post(self.query_url, data=params, timeout=self.timeout)
            r.raise_for_status()
            payload = r.json()
        except requests.RequestException as e:
            if _is_timeout_error(e):
                raise QueryTransportFailure(f"Timeout on {host}") from e
            raise QueryTransportFailure(f"Request to {host} failed: {e}") from e
        except ValueError as e:
            raise QueryTransportFailure(f"{host} returned a non-JSON body") from e

        if not isinstance(payload, dict):
            raise QueryTransportFailure(f"{host} returned an unexpected body")
        err = payload.get("error")
        if err:
            if isinstance(err, dict):
                raise QueryTransportFailure(
                    f"{host}: {err.get('code', '?')} {err.get('message', 'unknown error')}"
                )
            raise QueryTransportFailure(f"{host}: {err}")
        return payload

    def aggregate(self, geometry: Geometry) -> float:
        payload = self._post(statistics_params(geometry, self.field))
        return population_from_payload(payload)

    def fetch_cells(self, bbox: Tuple[float, float, float, float], *, page_size: int = None,
                    max_pages: int = None) -> List[dict]:
        """
        GeoJSON features for every grid cell inside bbox (west, south, east, north).

        Pages through the layer with resultOffset until the server stops
        reporting exceededTransferLimit. The offset advances by the rows
        actually returned, since the server may cap a page below page_size.
        Raises QueryTransportFailure if the extent is still incomplete after
        max_pages, so a partial load is never cached as covering the bbox.
        """
        page_size = page_size or config.INDEX_PAGE_SIZE
        max_pages = max_pages or config.INDEX_MAX_PAGES
        west, south, east, north = bbox

        features: List[dict] = []
        offset = 0
        for _page in range(max_pages):
            params = {
                "f": "geojson",
                "where": "1=1",
                "outFields": self.field,
                "outSR": 4326,
                "geometry": json.dumps({
                    "xmin": west, "ymin": south, "xmax": east, "ymax": north,
                    "spatialReference": {"wkid": 4326},
                }),
                "geometryType": "esriGeometryEnvelope",
                "spatialRel": "esriSpatialRelIntersects",
                "inSR": 4326,
                "resultOffset": offset,
                "resultRecordCount": page_size,
            }
            payload = self._post(params)
            batch = payload.get("features") or []
            features.extend(batch)
            offset += len(batch)

            more = payload.get("exceededTransferLimit") or (
                payload.get("properties") or {}
            ).get("exceededTransferLimit")
            if not more:
                return features
            if not batch:
                raise QueryTransportFailure(
                    f"{_short_host(self.layer_url)} reported more cells but returned an empty page"
                )

        log.warning("Stopped paging %s after %d pages", _short_host(self.layer_url), max_pages)
        raise QueryTransportFailure(
            f"More than {len(features)} cells in extent; not caching a partial index"
        )


# ------------------------------
# Client-side index
# ------------------------------
class PopulationIndex:
    """
    Locally cached grid cells for one rectangular extent.

    `ready` is False until the first load finishes and while a refresh runs;
    callers must not trust `aggregate` in that window.
    """

    def __init__(self, dataset: ServerDataset, *, field: str = None, padding_deg: float = None,
                 spawn: Callable[[Callable[[], None]], None] = None):
        self.dataset = dataset
        self.field = field or dataset.field
        self.padding_deg = config.INDEX_PADDING_DEG if padding_deg is None else padding_deg
        self._spawn = spawn or _run_in_thread

        self._lock = threading.Lock()
        self._cells: Optional[pd.DataFrame] = None
        self._tree: Optional[STRtree] = None
        self._extent = None
        self._loading = False
        self._failed_extent = None

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def ready(self) -> bool:
        return not self._loading and self._cells is not None

    def __len__(self):
        return 0 if self._cells is None else len(self._cells)

    def covers(self, geometry: Geometry) -> bool:
        extent = self._extent
        return extent is not None and extent.contains(geometry.to_shapely())

    def load_features(self, features: List[dict], extent) -> None:
        """Replace the cached cells with GeoJSON `features` loaded for `extent`."""
        geoms = []
        values = []
        for feat in features:
            gj = feat.get("geometry")
            if not gj:
                continue
            try:
                geoms.append(shape(gj))
            except Exception as e:
                log.debug("Skipping unreadable cell geometry: %s", e)
                continue
            props = feat.get("properties") or feat.get("attributes") or {}
            values.append(float(props.get(self.field) or 0))

        cells = pd.DataFrame({self.field: values})
        cells["geometry"] = geoms
        tree = STRtree(geoms)

        with self._lock:
            self._cells = cells
            self._tree = tree
            self._extent = extent
        log.info("Population index holds %d cells", len(cells))

    def aggregate(self, geometry: Geometry) -> float:
        with self._lock:
            cells, tree = self._cells, self._tree
        if cells is None or tree is None or cells.empty:
            return 0.0
        hits = tree.query(geometry.to_shapely(), predicate="intersects")
        if len(hits) == 0:
            return 0.0
        return float(cells[self.field].to_numpy()[hits].sum())

    def padded_extent(self, geometry: Geometry):
        west, south, east, north = geometry.bounds
        pad = self.padding_deg
        return box(west - pad, south - pad, east + pad, north + pad)

    def request_extent(self, geometry: Geometry) -> bool:
        """
        Start a background load around `geometry`.

        False if one is already running, or if `geometry` lies inside an
        extent whose last load failed (too many cells, server error).
        """
        with self._lock:
            if self._loading:
                return False
            failed = self._failed_extent
            if failed is not None and failed.contains(geometry.to_shapely()):
                return False
            self._loading = True

        extent = self.padded_extent(geometry)

        def work():
            try:
                features = self.dataset.fetch_cells(extent.bounds)
                self.load_features(features, extent)
                self._failed_extent = None
            except QueryTransportFailure as e:
                log.warning("Population index refresh failed: %s", e)
                self._failed_extent = extent
            except Exception:
                log.exception("Population index refresh crashed")
                self._failed_extent = extent
            finally:
                self._loading = False

        self._spawn(work)
        return True


# ------------------------------
# Coordinator
# ------------------------------
class QueryCoordinator:
    """
    Issues population queries with single-flight semantics.

    Every `query` takes a fresh token; results and failures are handed to
    `on_result` / `on_error` (through `post`, so a Tk app can hop back onto its
    own thread) only while their token is still the latest one issued.
    """

    def __init__(self, server: ServerDataset, index: Optional[PopulationIndex] = None, *,
                 on_result: Callable[[PopulationResult], None] = None,
                 on_error: Callable[[Exception], None] = None,
                 spawn: Callable[[Callable[[], None]], None] = None,
                 post: Callable[[Callable[[], None]], None] = None):
        self.server = server
        self.index = index
        self.on_result = on_result
        self.on_error = on_error
        self._spawn = spawn or _run_in_thread
        self._post = post or _call_now
        self._token = 0

    @property
    def latest_token(self) -> int:
        return self._token

    def is_current(self, token: int) -> bool:
        return token == self._token

    def cancel(self) -> None:
        """Supersede whatever is in flight without issuing anything new."""
        self._token += 1

    def query(self, geometry: Geometry, version: int = 0) -> int:
        self._token += 1
        token = self._token
        geom = geometry.clone()
        self._spawn(lambda: self._work(geom, version, token))
        return token

    def resolve(self, geometry: Geometry, token: int) -> Tuple[float, str]:
        """
        Client index first, server second.

        A client sum of exactly zero is not trusted: it can mean an empty area
        or cells that have not been pulled down yet, and there is no way to
        tell them apart here, so zero always costs a server round trip.
        """
        index = self.index
        if index is not None:
            if index.ready and index.covers(geometry):
                try:
                    value = index.aggregate(geometry)
                except Exception as e:
                    log.warning("Client aggregate failed, asking server: %s", e)
                    value = 0.0
                if not self.is_current(token):
                    raise QueryCancelled()
                if value:
                    return value, "client"
                log.debug("Client aggregate was 0 for token %d, asking server", token)
            elif not index.loading:
                index.request_extent(geometry)

        if not self.is_current(token):
            raise QueryCancelled()
        value = self.server.aggregate(geometry)
        if not self.is_current(token):
            raise QueryCancelled()
        return value, "server"

    def _work(self, geometry: Geometry, version: int, token: int) -> None:
        try:
            value, source = self.resolve(geometry, token)
        except QueryCancelled:
            log.debug("Query %d superseded", token)
            return
        except QueryTransportFailure as e:
            self._post(lambda err=e: self._fail(token, err))
            return
        except Exception as e:
            log.exception("Population query %d failed unexpectedly", token)
            wrapped = QueryTransportFailure(f"Unexpected error: {e}")
            self._post(lambda err=wrapped: self._fail(token, err))
            return

        result = PopulationResult(value=value, for_version=version, token=token, source=source)
        self._post(lambda: self._deliver(result))

    def _deliver(self, result: PopulationResult) -> None:
        if not self.is_current(result.token):
            log.debug("Dropping stale result for token %d", result.token)
            return
        if self.on_result:
            self.on_result(result)

    def _fail(self, token: int, err: Exception) -> None:
        if not self.is_current(token):
            log.debug("Dropping failure of superseded query %d: %s", token, err)
            return
        log.warning("Population query failed: %s", err)
        if self.on_error:
            self.on_error(err)
