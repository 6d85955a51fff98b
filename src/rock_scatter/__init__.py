from .categorizer import MEASUREMENTS, RULES, Category, categorize, categorize_columns
from .coding import CategoryCoding
from .dataset import (
    CategorizedSample,
    Dataset,
    DatasetStore,
    Sample,
    build_dataset,
    load_dataset,
)
from .errors import (
    DatasetUnavailable,
    InvalidAxis,
    InvalidMeasurement,
    RockScatterError,
)
from .view import (
    AxisSelection,
    RenderDescription,
    RenderPoint,
    ViewController,
    ViewState,
)
from .widget import ScatterWidget

__all__ = [
    "MEASUREMENTS",
    "RULES",
    "AxisSelection",
    "CategorizedSample",
    "Category",
    "CategoryCoding",
    "Dataset",
    "DatasetStore",
    "DatasetUnavailable",
    "InvalidAxis",
    "InvalidMeasurement",
    "RenderDescription",
    "RenderPoint",
    "RockScatterError",
    "Sample",
    "ScatterWidget",
    "ViewController",
    "ViewState",
    "build_dataset",
    "categorize",
    "categorize_columns",
    "load_dataset",
]
