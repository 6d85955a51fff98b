from dataclasses import dataclass, replace
from enum import Enum
from itertools import count
from typing import Any, Callable
import json
import logging
import weakref

from .categorizer import MEASUREMENTS
from .dataset import Dataset, DatasetStore
from .errors import DatasetUnavailable, InvalidAxis

logger = logging.getLogger(__name__)

AXES = ("x", "y")
DEFAULT_X_VARIABLE = "CV"
DEFAULT_Y_VARIABLE = "HI"
TITLE_TEMPLATE = "Scatter Plot of {x} vs {y}"


class ViewState(Enum):
    IDLE = "idle"
    RENDERING = "rendering"


@dataclass(frozen=True)
class AxisSelection:
    x: str = DEFAULT_X_VARIABLE
    y: str = DEFAULT_Y_VARIABLE

    def __post_init__(self):
        for axis in AXES:
            variable = getattr(self, axis)
            if variable not in MEASUREMENTS:
                raise InvalidAxis(axis, variable)

    def with_axis(self, axis: str, variable: str) -> "AxisSelection":
        if axis not in AXES:
            raise InvalidAxis(axis, variable)
        return replace(self, **{axis: variable})


@dataclass(frozen=True)
class RenderPoint:
    x: float
    y: float
    category: str
    sample_id: Any


@dataclass(frozen=True)
class RenderDescription:
    points: tuple[RenderPoint, ...]
    x_label: str
    y_label: str
    title: str

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "x_label": self.x_label,
            "y_label": self.y_label,
            "points": [
                {
                    "x": point.x,
                    "y": point.y,
                    "category": point.category,
                    "sample_id": point.sample_id,
                }
                for point in self.points
            ],
        }

    def to_json(self) -> bytes:
        return json.dumps(
            self.to_dict(), sort_keys=True, separators=(",", ":"), default=str
        ).encode("utf-8")


def describe(dataset: Dataset, selection: AxisSelection) -> RenderDescription:
    x_values = dataset.column(selection.x)
    y_values = dataset.column(selection.y)
    points = tuple(
        RenderPoint(x=float(x), y=float(y), category=str(category), sample_id=sample_id)
        for x, y, category, sample_id in zip(
            x_values, y_values, dataset.categories, dataset.ids
        )
    )
    return RenderDescription(
        points=points,
        x_label=selection.x,
        y_label=selection.y,
        title=TITLE_TEMPLATE.format(x=selection.x, y=selection.y),
    )


RenderCallback = Callable[["ViewController", RenderDescription], None]


class ViewController:
    """
    Owns the axis selection of one session and renders the dataset for it.

    Every render goes IDLE -> RENDERING -> IDLE synchronously; subscribers
    are called once the controller is back in IDLE.
    """

    def __init__(self, dataset: Dataset | None = None):
        self._cb_id_gen = count(1)
        self._callbacks: dict[int, weakref.ReferenceType] = {}
        self._store_cb_id: int | None = None
        self._store: DatasetStore | None = None

        self._dataset: Dataset | None = None
        self._selection = AxisSelection()
        self._state = ViewState.IDLE
        self._cache: dict[tuple[str, str], RenderDescription] = {}
        self._last_render: RenderDescription | None = None
        if dataset is not None:
            self.initialize(dataset)

    @property
    def selection(self) -> AxisSelection:
        return self._selection

    @property
    def state(self) -> ViewState:
        return self._state

    @property
    def dataset(self) -> Dataset | None:
        return self._dataset

    @property
    def last_render(self) -> RenderDescription | None:
        return self._last_render

    def subscribe(self, cb: RenderCallback) -> int:
        cb_id = next(self._cb_id_gen)
        try:
            ref = weakref.WeakMethod(cb)  # bound method
        except TypeError:
            ref = weakref.ref(cb)  # function
        self._callbacks[cb_id] = ref
        return cb_id

    def unsubscribe(self, cb_id: int) -> None:
        self._callbacks.pop(cb_id, None)

    def _notify(self, render: RenderDescription) -> None:
        dead = []
        for cb_id, ref in list(self._callbacks.items()):
            cb = ref()
            if cb is None:
                dead.append(cb_id)
            else:
                cb(self, render)
        for cb_id in dead:
            self._callbacks.pop(cb_id, None)

    def initialize(self, dataset: Dataset) -> RenderDescription:
        if dataset is None:
            raise DatasetUnavailable("A dataset is required to initialize the view")
        self._dataset = dataset
        self._cache = {}
        self._selection = AxisSelection()
        return self._render(self._selection)

    def on_axis_changed(self, axis: str, new_variable: str) -> RenderDescription:
        if axis not in AXES or new_variable not in MEASUREMENTS:
            logger.warning(
                "Rejected axis change: %s axis to %r", axis, new_variable
            )
            raise InvalidAxis(axis, new_variable)
        return self._render(self._selection.with_axis(axis, new_variable))

    def render(self) -> RenderDescription:
        return self._render(self._selection)

    def replace_dataset(self, dataset: Dataset) -> RenderDescription:
        if dataset is None:
            raise DatasetUnavailable("The new dataset is missing")
        self._dataset = dataset
        self._cache = {}
        return self._render(self._selection)

    def follow(self, store: DatasetStore) -> RenderDescription:
        """Render the store's dataset and re-render every time it is refreshed."""
        self.unfollow()
        self._store = store
        self._store_cb_id = store.subscribe(self._on_dataset_refreshed)
        return self.replace_dataset(store.dataset)

    def unfollow(self) -> None:
        if self._store is not None and self._store_cb_id is not None:
            self._store.unsubscribe(self._store_cb_id)
        self._store = None
        self._store_cb_id = None

    def _on_dataset_refreshed(self, store: DatasetStore, event: str) -> None:
        if store is not self._store:
            return
        self.replace_dataset(store.dataset)

    def _render(self, selection: AxisSelection) -> RenderDescription:
        dataset = self._dataset
        if dataset is None:
            raise DatasetUnavailable("The view has not been initialized with a dataset")

        self._state = ViewState.RENDERING
        try:
            key = (selection.x, selection.y)
            render = self._cache.get(key)
            if render is None:
                render = describe(dataset, selection)
                self._cache[key] = render
            else:
                logger.debug("Render cache hit for %s vs %s", *key)
            self._selection = selection
            self._last_render = render
        finally:
            self._state = ViewState.IDLE

        logger.debug("Rendered %d points for %s vs %s", len(render.points), *key)
        self._notify(render)
        return render
