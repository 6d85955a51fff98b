from collections import Counter
from dataclasses import dataclass
from itertools import count
from pathlib import Path
from typing import Any, Callable, Iterator
import logging
import weakref

import narwhals
import numpy
import pandas

from .categorizer import MEASUREMENTS, Category, categorize_columns
from .errors import DatasetUnavailable

logger = logging.getLogger(__name__)

ID_COLUMN = "id"
CATEGORY_COLUMN = "category"
REQUIRED_COLUMNS = (ID_COLUMN,) + MEASUREMENTS


@dataclass(frozen=True)
class Sample:
    id: Any
    CV: float
    HI: float
    RQI: float
    FZI: float

    @property
    def measurements(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in MEASUREMENTS}


@dataclass(frozen=True)
class CategorizedSample(Sample):
    category: Category


def _read_only(array: numpy.ndarray) -> numpy.ndarray:
    array.setflags(write=False)
    return array


class Dataset:
    """
    Categorized samples, in the order given by the provider.

    The measurements and categories are computed once and stored in read-only
    arrays, so a Dataset can be shared by several views.
    """

    def __init__(
        self,
        ids: list,
        measurements: numpy.ndarray,
        categories: numpy.ndarray,
        excluded_ids: list | None = None,
    ):
        if measurements.ndim != 2 or measurements.shape[1] != len(MEASUREMENTS):
            raise ValueError(
                f"measurements should have shape (N, {len(MEASUREMENTS)})"
            )
        if len(ids) != measurements.shape[0] or len(ids) != categories.shape[0]:
            raise ValueError(
                "ids, measurements and categories should have the same number of rows"
            )
        self._ids = tuple(ids)
        self._index = {sample_id: idx for idx, sample_id in enumerate(self._ids)}
        if len(self._index) != len(self._ids):
            raise ValueError("Sample ids should be unique")
        self._measurements = _read_only(
            numpy.array(measurements, dtype=numpy.float64, order="C")
        )
        self._categories = _read_only(numpy.array(categories, dtype=object))
        self._excluded_ids = tuple(excluded_ids or ())

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[CategorizedSample]:
        for idx in range(len(self)):
            yield self._get_sample(idx)

    def __getitem__(self, sample_id) -> CategorizedSample:
        try:
            idx = self._index[sample_id]
        except KeyError:
            raise KeyError(f"Sample not found in dataset: {sample_id!r}")
        return self._get_sample(idx)

    def __contains__(self, sample_id) -> bool:
        return sample_id in self._index

    def _get_sample(self, idx: int) -> CategorizedSample:
        values = dict(zip(MEASUREMENTS, map(float, self._measurements[idx])))
        return CategorizedSample(
            id=self._ids[idx], category=Category(self._categories[idx]), **values
        )

    @property
    def ids(self) -> tuple:
        return self._ids

    @property
    def measurements(self) -> numpy.ndarray:
        return self._measurements

    def column(self, name: str) -> numpy.ndarray:
        try:
            idx = MEASUREMENTS.index(name)
        except ValueError:
            raise KeyError(f"Unknown measurement: {name!r}")
        return self._measurements[:, idx]

    @property
    def categories(self) -> numpy.ndarray:
        return self._categories

    @property
    def excluded_ids(self) -> tuple:
        return self._excluded_ids

    def category_counts(self) -> dict[Category, int]:
        counts = Counter(self._categories)
        return {category: counts.get(category.value, 0) for category in Category}

    def to_native(self, backend="pandas"):
        data = {ID_COLUMN: list(self._ids)}
        for name in MEASUREMENTS:
            data[name] = self.column(name).copy()
        data[CATEGORY_COLUMN] = list(self._categories)
        return narwhals.from_dict(data, backend=backend).to_native()


def _to_float_array(series) -> numpy.ndarray:
    # nulls become nan so that they are caught with the non-finite values
    is_null = numpy.asarray(series.is_null().to_numpy(), dtype=bool)
    values = series.fill_null(0).cast(narwhals.Float64).to_numpy()
    values = numpy.array(values, dtype=numpy.float64)
    values[is_null] = numpy.nan
    return values


def build_dataset(frame) -> Dataset:
    try:
        frame = narwhals.from_native(frame, eager_only=True)
    except (TypeError, ValueError) as error:
        raise DatasetUnavailable(
            f"The sample table should be a dataframe, got {type(frame)}"
        ) from error

    missing_columns = [col for col in REQUIRED_COLUMNS if col not in frame.columns]
    if missing_columns:
        raise DatasetUnavailable(
            f"The sample table lacks the required columns: {missing_columns}"
        )
    if frame.shape[0] == 0:
        raise DatasetUnavailable("The sample table has no rows")

    null_id_rows = numpy.flatnonzero(
        numpy.asarray(frame[ID_COLUMN].is_null().to_numpy(), dtype=bool)
    )
    if null_id_rows.size:
        raise DatasetUnavailable(
            f"Samples without id in the rows: {null_id_rows.tolist()}"
        )

    ids = frame[ID_COLUMN].to_list()
    if len(set(ids)) != len(ids):
        duplicated = sorted(
            str(sample_id) for sample_id, num in Counter(ids).items() if num > 1
        )
        raise DatasetUnavailable(f"Duplicated sample ids: {duplicated}")

    for name in MEASUREMENTS:
        dtype = frame[name].dtype
        if dtype == narwhals.Boolean or not dtype.is_numeric():
            raise DatasetUnavailable(
                f"The measurement column {name} should be numeric, its type is {dtype}"
            )

    try:
        measurements = numpy.column_stack(
            [_to_float_array(frame[name]) for name in MEASUREMENTS]
        )
    except Exception as error:
        raise DatasetUnavailable(
            f"The measurement columns {MEASUREMENTS} should be numeric"
        ) from error

    finite_rows = numpy.all(numpy.isfinite(measurements), axis=1)
    excluded_ids = [
        sample_id for sample_id, finite in zip(ids, finite_rows) if not finite
    ]
    if excluded_ids:
        logger.warning(
            "Excluded %d samples with missing or non-finite measurements: %s",
            len(excluded_ids),
            excluded_ids,
        )
    if not numpy.any(finite_rows):
        raise DatasetUnavailable(
            "No sample in the table has finite values for all the measurements"
        )

    ids = [sample_id for sample_id, finite in zip(ids, finite_rows) if finite]
    measurements = measurements[finite_rows]
    categories = categorize_columns(*measurements.T)

    return Dataset(
        ids=ids,
        measurements=measurements,
        categories=categories,
        excluded_ids=excluded_ids,
    )


def _read_table(path: Path):
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pandas.read_csv(path)
    elif suffix == ".parquet":
        return pandas.read_parquet(path)
    else:
        raise DatasetUnavailable(f"Unsupported sample table format: {path}")


def load_dataset(source) -> Dataset:
    """
    Load and categorize a sample table.

    source may be a path to a csv or parquet file, a dataframe or a callable
    that takes no arguments and returns a dataframe.
    """
    try:
        if isinstance(source, (str, Path)):
            frame = _read_table(Path(source))
        elif callable(source):
            frame = source()
        else:
            frame = source
    except DatasetUnavailable:
        raise
    except Exception as error:
        raise DatasetUnavailable(f"The sample provider failed: {error}") from error

    if frame is None:
        raise DatasetUnavailable("The sample provider returned no data")

    dataset = build_dataset(frame)
    logger.info(
        "Loaded %d samples (%d excluded)", len(dataset), len(dataset.excluded_ids)
    )
    return dataset


StoreCallback = Callable[["DatasetStore", str], None]


class DatasetStore:
    def __init__(self, source):
        self._cb_id_gen = count(1)
        self._callbacks: dict[int, weakref.ReferenceType] = {}
        self._source = source
        self._dataset = load_dataset(source)

    @property
    def dataset(self) -> Dataset:
        return self._dataset

    def subscribe(self, cb: StoreCallback) -> int:
        cb_id = next(self._cb_id_gen)
        try:
            ref = weakref.WeakMethod(cb)  # bound method
        except TypeError:
            ref = weakref.ref(cb)  # function
        self._callbacks[cb_id] = ref
        return cb_id

    def unsubscribe(self, cb_id: int) -> None:
        self._callbacks.pop(cb_id, None)

    def _notify(self, event: str) -> None:
        dead = []
        for cb_id, ref in list(self._callbacks.items()):
            cb = ref()
            if cb is None:
                dead.append(cb_id)
            else:
                cb(self, event)
        for cb_id in dead:
            self._callbacks.pop(cb_id, None)

    def refresh(self) -> Dataset:
        # The new dataset is fully built before the reference is swapped,
        # readers see either the old or the new one.
        dataset = load_dataset(self._source)
        self._dataset = dataset
        logger.info("Dataset refreshed")
        self._notify("refreshed")
        return dataset
