import logging
import os
from pathlib import Path

import anywidget
import numpy
import traitlets

from .categorizer import MEASUREMENTS
from .coding import CategoryCoding
from .errors import DatasetUnavailable, InvalidAxis
from .view import RenderDescription, ViewController

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).parent
JAVASCRIPT_DIR = PACKAGE_DIR / "static"
PROD_ESM = JAVASCRIPT_DIR / "scatter.js"
DEF_DEV_ESM = "http://127.0.0.1:5173/src/index.ts"


def _esm_source() -> str | Path:
    if os.environ.get("ROCK_SCATTER_DEV", ""):
        return os.environ.get("ROCK_SCATTER_DEV_URL", DEF_DEV_ESM)
    return PROD_ESM


class ScatterWidget(anywidget.AnyWidget):
    _esm = _esm_source()

    # Dropdown options and the current selection, both ends can change them.
    variables_t = traitlets.List(
        traitlets.Unicode(), default_value=list(MEASUREMENTS)
    ).tag(sync=True)
    x_variable_t = traitlets.Unicode(default_value=MEASUREMENTS[0]).tag(sync=True)
    y_variable_t = traitlets.Unicode(default_value=MEASUREMENTS[1]).tag(sync=True)

    # Packed float32 array of shape (N, 2), row-major.
    # TS interprets as Float32Array with length 2*N.
    xy_bytes_t = traitlets.Bytes(
        default_value=b"",
        help="Packed float32 Nx2, row-major.",
    ).tag(sync=True)

    # Packed uint16 array of length N.
    # Codes 1..K correspond to labels_t[0..K-1], 0 is unassigned.
    coded_values_t = traitlets.Bytes(
        default_value=b"",
        help="Packed uint16 length N. 0=missing, 1..K correspond to labels_t.",
    ).tag(sync=True)

    labels_t = traitlets.List(
        traitlets.Unicode(),
        default_value=[],
        help="Label list (length K), where code = index+1.",
    ).tag(sync=True)

    colors_t = traitlets.List(
        traitlets.List(traitlets.Float(), minlen=3, maxlen=3),
        default_value=[],
        help="Per-label RGB colors (length K) aligned with labels_t; floats in [0,1].",
    ).tag(sync=True)

    missing_color_t = traitlets.List(
        traitlets.Float(),
        default_value=[0.6, 0.6, 0.6],
        minlen=3,
        maxlen=3,
    ).tag(sync=True)

    # hover text, one per point
    sample_ids_t = traitlets.List(traitlets.Unicode(), default_value=[]).tag(
        sync=True
    )
    title_t = traitlets.Unicode(default_value="").tag(sync=True)
    x_label_t = traitlets.Unicode(default_value="").tag(sync=True)
    y_label_t = traitlets.Unicode(default_value="").tag(sync=True)
    # last rejected selection, empty when the last change was accepted
    error_t = traitlets.Unicode(default_value="").tag(sync=True)

    def __init__(self, controller: ViewController, color_palette=None):
        super().__init__()
        self._controller = controller
        self._color_palette = color_palette
        self._updating_from_controller = False
        self._render_cb_id: int | None = None
        self._coding: CategoryCoding | None = None
        self._coding_dataset = None
        if controller.last_render is None:
            raise DatasetUnavailable(
                "The view controller should be initialized before creating the widget"
            )

        # Keep a stable callback object so unsubscribe works.
        self._render_cb = self._on_render
        self._render_cb_id = controller.subscribe(self._render_cb)

        self._sync_traitlets_from_render(controller.last_render)

    @property
    def controller(self) -> ViewController:
        return self._controller

    def _on_render(self, controller: ViewController, render: RenderDescription) -> None:
        if controller is not self._controller:
            return
        self._sync_traitlets_from_render(render)

    @staticmethod
    def _pack_xy_float32_c(xy: numpy.ndarray) -> bytes:
        if xy.ndim != 2 or xy.shape[1] != 2:
            raise ValueError("xy should have shape (N, 2)")
        xy_f32 = numpy.asarray(xy, dtype=numpy.float32, order="C")
        if not xy_f32.flags["C_CONTIGUOUS"]:
            xy_f32 = numpy.ascontiguousarray(xy_f32)
        return xy_f32.tobytes(order="C")

    @staticmethod
    def _pack_u16_c(arr: numpy.ndarray) -> bytes:
        arr_u16 = numpy.asarray(arr, dtype=numpy.uint16, order="C")
        if not arr_u16.flags["C_CONTIGUOUS"]:
            arr_u16 = numpy.ascontiguousarray(arr_u16)
        return arr_u16.tobytes(order="C")

    def _get_category_coding(self) -> CategoryCoding:
        # categories do not depend on the axes, code them once per dataset
        dataset = self._controller.dataset
        if self._coding is None or self._coding_dataset is not dataset:
            self._coding = CategoryCoding(
                dataset.categories, color_palette=self._color_palette
            )
            self._coding_dataset = dataset
        return self._coding

    def _sync_traitlets_from_render(self, render: RenderDescription) -> None:
        """
        Push a render into the synced transport traitlets.
        """
        points = render.points
        xy = numpy.array(
            [(point.x, point.y) for point in points], dtype=numpy.float64
        ).reshape(-1, 2)
        coding = self._get_category_coding()
        palette = coding.color_palette

        self._updating_from_controller = True
        try:
            with self.hold_sync():
                self.x_variable_t = render.x_label
                self.y_variable_t = render.y_label
                self.xy_bytes_t = self._pack_xy_float32_c(xy)
                self.labels_t = [str(label) for label in coding.label_list]
                self.coded_values_t = self._pack_u16_c(coding.coded_values)
                self.colors_t = [
                    list(map(float, palette[label])) for label in coding.label_list
                ]
                self.missing_color_t = list(map(float, coding.missing_color))
                self.sample_ids_t = [str(point.sample_id) for point in points]
                self.title_t = render.title
                self.x_label_t = render.x_label
                self.y_label_t = render.y_label
        finally:
            self._updating_from_controller = False

    @property
    def num_points(self) -> int:
        return len(self.xy_bytes_t) // (2 * numpy.dtype(numpy.float32).itemsize)

    def _revert_selection(self) -> None:
        selection = self._controller.selection
        self._updating_from_controller = True
        try:
            self.x_variable_t = selection.x
            self.y_variable_t = selection.y
        finally:
            self._updating_from_controller = False

    @traitlets.observe("x_variable_t", "y_variable_t")
    def _on_variable_t(self, change) -> None:
        if self._updating_from_controller:
            return
        axis = "x" if change["name"] == "x_variable_t" else "y"
        logger.debug(
            "Selection from the frontend: %s axis to %r", axis, change["new"]
        )
        try:
            self._controller.on_axis_changed(axis, change["new"])
        except InvalidAxis as error:
            self._revert_selection()
            self.error_t = str(error)
            return
        self.error_t = ""

    def close(self):
        # detach callback to avoid keeping references around.
        if self._render_cb_id is not None:
            self._controller.unsubscribe(self._render_cb_id)
            self._render_cb_id = None
        super().close()
