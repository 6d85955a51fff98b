from collections import OrderedDict
from itertools import cycle
from typing import Any

import narwhals
import numpy
import pandas

from .categorizer import CATEGORY_LABELS

CATEGORY_CODES_DTYPE = numpy.uint16
MISSING_COLOR = (0.6, 0.6, 0.6)
TAB20_COLORS_RGB = [
    (0.12156862745098039, 0.4666666666666667, 0.7058823529411765),
    (1.0, 0.4980392156862745, 0.054901960784313725),
    (0.17254901960784313, 0.6274509803921569, 0.17254901960784313),
    (0.8392156862745098, 0.15294117647058825, 0.1568627450980392),
    (0.5803921568627451, 0.403921568627451, 0.7411764705882353),
    (0.5490196078431373, 0.33725490196078434, 0.29411764705882354),
    (0.8901960784313725, 0.4666666666666667, 0.7607843137254902),
    (0.4980392156862745, 0.4980392156862745, 0.4980392156862745),
    (0.7372549019607844, 0.7411764705882353, 0.13333333333333333),
    (0.09019607843137255, 0.7450980392156863, 0.8117647058823529),
]
# Suitable in green, MostlyHomogeneous in blue, Heterogeneous in red
CATEGORY_COLORS_RGB = {
    "Suitable": TAB20_COLORS_RGB[2],
    "MostlyHomogeneous": TAB20_COLORS_RGB[0],
    "Heterogeneous": TAB20_COLORS_RGB[3],
}


def _is_valid_color(color):
    if not isinstance(color, tuple):
        raise ValueError(f"Invalid color, should be tuples with three floats {color}")
    if len(color) != 3:
        raise ValueError(f"Invalid color, should be tuples with three floats {color}")
    for value in color:
        if value < 0 or value > 1:
            raise ValueError(
                f"Invalid color, should be coded as floats from 0 to 1 {color}"
            )


class CategoryCoding:
    """
    Integer coding of a category column for the frontend.

    Code 0 is reserved for missing values and codes 1..K follow label_list.
    """

    def __init__(
        self,
        values,
        label_list: list[str] | None = None,
        color_palette: dict[Any, tuple[float, float, float]] | None = None,
        missing_color: tuple[float, float, float] = MISSING_COLOR,
    ):
        if isinstance(values, numpy.ndarray):
            values = pandas.Series(values, name="category", dtype=object)
        values = narwhals.from_native(values, series_only=True)

        if label_list is None:
            label_list = list(CATEGORY_LABELS)
        unknown_labels = set(values.drop_nulls().unique().to_list()).difference(
            label_list
        )
        if unknown_labels:
            raise ValueError(
                f"The label list should include all the values, these are missing: {unknown_labels}"
            )

        self._label_coding = OrderedDict(
            [(label, idx) for idx, label in enumerate(label_list, start=1)]
        )
        self._coded_values = values.replace_strict(
            self._label_coding, default=0, return_dtype=narwhals.UInt16
        ).to_numpy()
        self._coded_values = numpy.asarray(
            self._coded_values, dtype=CATEGORY_CODES_DTYPE
        )

        self._color_palette = self._create_color_palette(color_palette)
        _is_valid_color(missing_color)
        self._missing_color = missing_color

    def _create_color_palette(self, color_palette):
        default_colors = cycle(TAB20_COLORS_RGB)

        palette = {}
        for label in self.label_list:
            if color_palette:
                try:
                    color = color_palette[label]
                except KeyError:
                    raise KeyError(
                        f"Color palette given, but color missing for label: {label}"
                    )
                _is_valid_color(color)
            elif label in CATEGORY_COLORS_RGB:
                color = CATEGORY_COLORS_RGB[label]
            else:
                color = next(default_colors)
            palette[label] = tuple(color)
        return palette

    @property
    def label_list(self) -> list:
        return list(self._label_coding.keys())

    @property
    def label_coding(self) -> list[tuple[str, int]]:
        return list(self._label_coding.items())

    @property
    def coded_values(self) -> numpy.ndarray:
        return self._coded_values

    @property
    def color_palette(self):
        return self._color_palette.copy()

    @property
    def missing_color(self):
        return self._missing_color

    @property
    def num_values(self) -> int:
        return self._coded_values.size
