import numpy
import pandas
import pytest

from rock_scatter.dataset import DatasetStore, build_dataset
from rock_scatter.errors import DatasetUnavailable
from rock_scatter.view import AxisSelection, ViewController
from rock_scatter.widget import ScatterWidget


def get_sample_frame(ids=(1, 2, 3, 4)):
    return pandas.DataFrame(
        {
            "id": list(ids),
            "CV": [0.1, 0.5, 1.2, 0.9],
            "HI": [0.3, 0.7, 1.5, 0.8],
            "RQI": [15.0, 12.0, 8.0, 10.0],
            "FZI": [3.5, 2.5, 1.0, 1.8],
        }
    )


def get_widget():
    controller = ViewController(build_dataset(get_sample_frame()))
    return ScatterWidget(controller)


def decode_xy(buf: bytes) -> numpy.ndarray:
    return numpy.frombuffer(buf, dtype=numpy.float32).reshape(-1, 2)


def decode_u16(buf: bytes) -> numpy.ndarray:
    return numpy.frombuffer(buf, dtype=numpy.uint16)


def test_initial_traitlets():
    w = get_widget()

    assert w.variables_t == ["CV", "HI", "RQI", "FZI"]
    assert w.x_variable_t == "CV"
    assert w.y_variable_t == "HI"
    assert w.title_t == "Scatter Plot of CV vs HI"
    assert w.x_label_t == "CV"
    assert w.y_label_t == "HI"
    assert w.sample_ids_t == ["1", "2", "3", "4"]
    assert w.num_points == 4
    assert w.error_t == ""

    expected = numpy.array(
        [[0.1, 0.3], [0.5, 0.7], [1.2, 1.5], [0.9, 0.8]], dtype=numpy.float32
    )
    numpy.testing.assert_array_equal(decode_xy(w.xy_bytes_t), expected)

    assert w.labels_t == ["Suitable", "MostlyHomogeneous", "Heterogeneous"]
    # Suitable=1, MostlyHomogeneous=2, Heterogeneous=3
    expected_codes = numpy.array([1, 2, 3, 2], dtype=numpy.uint16)
    numpy.testing.assert_array_equal(decode_u16(w.coded_values_t), expected_codes)
    assert len(w.colors_t) == 3


def test_selecting_a_variable_rerenders():
    w = get_widget()

    w.x_variable_t = "RQI"

    assert w.controller.selection == AxisSelection("RQI", "HI")
    assert w.title_t == "Scatter Plot of RQI vs HI"
    assert w.x_label_t == "RQI"
    numpy.testing.assert_allclose(
        decode_xy(w.xy_bytes_t)[:, 0], [15.0, 12.0, 8.0, 10.0]
    )

    w.y_variable_t = "FZI"
    assert w.controller.selection == AxisSelection("RQI", "FZI")
    numpy.testing.assert_allclose(decode_xy(w.xy_bytes_t)[:, 1], [3.5, 2.5, 1.0, 1.8])
    # categories do not depend on the axes
    expected_codes = numpy.array([1, 2, 3, 2], dtype=numpy.uint16)
    numpy.testing.assert_array_equal(decode_u16(w.coded_values_t), expected_codes)


def test_invalid_variable_is_reverted_and_reported():
    w = get_widget()
    w.x_variable_t = "FZI"
    before = bytes(w.xy_bytes_t)

    w.y_variable_t = "PHI"

    assert w.y_variable_t == "HI"
    assert w.controller.selection == AxisSelection("FZI", "HI")
    assert "PHI" in w.error_t
    assert bytes(w.xy_bytes_t) == before
    assert w.title_t == "Scatter Plot of FZI vs HI"

    w.y_variable_t = "RQI"
    assert w.error_t == ""
    assert w.title_t == "Scatter Plot of FZI vs RQI"


def test_controller_changes_reach_the_widget():
    controller = ViewController(build_dataset(get_sample_frame()))
    w = ScatterWidget(controller)

    controller.on_axis_changed("x", "HI")
    assert w.x_variable_t == "HI"
    assert w.title_t == "Scatter Plot of HI vs HI"


def test_store_refresh_reaches_the_widget():
    ids = iter([(1, 2, 3, 4), ("a", "b", "c", "d")])
    store = DatasetStore(lambda: get_sample_frame(next(ids)))
    controller = ViewController()
    controller.follow(store)
    w = ScatterWidget(controller)
    w.x_variable_t = "RQI"

    store.refresh()

    assert w.sample_ids_t == ["a", "b", "c", "d"]
    assert w.x_variable_t == "RQI"
    assert w.title_t == "Scatter Plot of RQI vs HI"


def test_widget_needs_an_initialized_controller():
    with pytest.raises(DatasetUnavailable):
        ScatterWidget(ViewController())


def test_close_unsubscribes():
    controller = ViewController(build_dataset(get_sample_frame()))
    w = ScatterWidget(controller)
    w.close()

    controller.on_axis_changed("x", "RQI")
    assert w.title_t == "Scatter Plot of CV vs HI"


def test_custom_palette():
    palette = {
        "Suitable": (0.0, 1.0, 0.0),
        "MostlyHomogeneous": (0.0, 0.0, 1.0),
        "Heterogeneous": (1.0, 0.0, 0.0),
    }
    controller = ViewController(build_dataset(get_sample_frame()))
    w = ScatterWidget(controller, color_palette=palette)
    assert w.colors_t == [[0.0, 1.0, 0.0], [0.0, 0.0, 1.0], [1.0, 0.0, 0.0]]


def test_category_coding_is_computed_once_per_dataset():
    ids = iter([(1, 2, 3, 4), (5, 6, 7, 8)])
    store = DatasetStore(lambda: get_sample_frame(next(ids)))
    controller = ViewController()
    controller.follow(store)
    w = ScatterWidget(controller)
    coding = w._get_category_coding()

    w.x_variable_t = "RQI"
    w.y_variable_t = "FZI"
    assert w._get_category_coding() is coding

    store.refresh()
    new_coding = w._get_category_coding()
    assert new_coding is not coding
    expected_codes = numpy.array([1, 2, 3, 2], dtype=numpy.uint16)
    numpy.testing.assert_array_equal(decode_u16(w.coded_values_t), expected_codes)
