import math
from enum import Enum
from collections.abc import Mapping
from typing import Any, Callable

import numpy

from .errors import InvalidMeasurement


MEASUREMENTS = ("CV", "HI", "RQI", "FZI")

# rock quality thresholds
SUITABLE_MAX_CV = 0.3
SUITABLE_MAX_HI = 0.5
SUITABLE_MIN_RQI = 10
SUITABLE_MIN_FZI = 2.0
HOMOGENEOUS_MAX_CV = 0.5
HOMOGENEOUS_MAX_HI = 0.7
HOMOGENEOUS_MIN_RQI = 8
HOMOGENEOUS_MIN_FZI = 1.5


class Category(str, Enum):
    SUITABLE = "Suitable"
    MOSTLY_HOMOGENEOUS = "MostlyHomogeneous"
    HETEROGENEOUS = "Heterogeneous"


CATEGORY_LABELS = [category.value for category in Category]


# Predicates take a mapping from measurement name to a float or to a numpy
# array, so the same rules drive the scalar and the column categorization.
Predicate = Callable[[Mapping[str, Any]], Any]


def _is_suitable(m):
    return (
        (m["CV"] < SUITABLE_MAX_CV)
        & (m["HI"] < SUITABLE_MAX_HI)
        & (m["RQI"] > SUITABLE_MIN_RQI)
        & (m["FZI"] > SUITABLE_MIN_FZI)
    )


def _is_mostly_homogeneous(m):
    return ((m["CV"] < HOMOGENEOUS_MAX_CV) & (m["HI"] < HOMOGENEOUS_MAX_HI)) | (
        (m["RQI"] > HOMOGENEOUS_MIN_RQI) & (m["FZI"] > HOMOGENEOUS_MIN_FZI)
    )


def _always(m):
    return True


# Evaluated in order, first match wins. The clauses overlap, so the order
# is part of the rule set.
RULES: tuple[tuple[Predicate, Category], ...] = (
    (_is_suitable, Category.SUITABLE),
    (_is_mostly_homogeneous, Category.MOSTLY_HOMOGENEOUS),
    (_always, Category.HETEROGENEOUS),
)


def _get_measurements(measurements) -> dict[str, float]:
    if isinstance(measurements, Mapping):
        sample_id = measurements.get("id")
    else:
        sample_id = getattr(measurements, "id", None)
        try:
            measurements = measurements.measurements
        except AttributeError:
            raise InvalidMeasurement(
                f"measurements should be a mapping with the keys {MEASUREMENTS}, got {type(measurements)}",
                sample_id=sample_id,
            )

    values = {}
    for name in MEASUREMENTS:
        try:
            value = measurements[name]
        except KeyError:
            raise InvalidMeasurement(
                f"Measurement missing: {name}", sample_id=sample_id
            )
        if isinstance(value, bool):
            raise InvalidMeasurement(
                f"Measurement {name} should be a number, got {value!r}",
                sample_id=sample_id,
            )
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise InvalidMeasurement(
                f"Measurement {name} should be a number, got {value!r}",
                sample_id=sample_id,
            )
        if not math.isfinite(value):
            raise InvalidMeasurement(
                f"Measurement {name} should be finite, got {value}",
                sample_id=sample_id,
            )
        values[name] = value
    return values


def categorize(measurements) -> Category:
    values = _get_measurements(measurements)
    for predicate, category in RULES:
        if predicate(values):
            return category
    raise RuntimeError("The last rule should match any measurements")


def categorize_columns(
    cv: numpy.ndarray, hi: numpy.ndarray, rqi: numpy.ndarray, fzi: numpy.ndarray
) -> numpy.ndarray:
    """
    Categorize whole measurement columns at once.

    Returns an object array with the category label of every row, computed
    with the same ordered rules as categorize.
    """
    columns = {}
    num_rows = None
    for name, values in zip(MEASUREMENTS, (cv, hi, rqi, fzi)):
        values = numpy.asarray(values, dtype=numpy.float64)
        if values.ndim != 1:
            raise ValueError(f"Column {name} should be one dimensional")
        if num_rows is None:
            num_rows = values.shape[0]
        elif values.shape[0] != num_rows:
            raise ValueError(
                f"All columns should have the same length, {name} has {values.shape[0]} values and {num_rows} were expected"
            )
        if not numpy.all(numpy.isfinite(values)):
            raise InvalidMeasurement(f"Column {name} has non-finite values")
        columns[name] = values

    labels = numpy.empty(num_rows, dtype=object)
    unassigned = numpy.ones(num_rows, dtype=bool)
    for predicate, category in RULES:
        matches = unassigned & numpy.broadcast_to(predicate(columns), (num_rows,))
        labels[matches] = category.value
        unassigned &= ~matches
    return labels
