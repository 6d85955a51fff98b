import marimo

__generated_with = "0.18.4"
app = marimo.App(width="medium")


@app.cell
def _():
    import logging

    import marimo
    import numpy as np
    import pandas

    from rock_scatter import DatasetStore, ScatterWidget, ViewController

    logging.basicConfig(level=logging.INFO)

    num_samples = 500
    rng = np.random.default_rng(42)

    def fetch_samples():
        return pandas.DataFrame(
            {
                "id": np.arange(1, num_samples + 1),
                "CV": rng.uniform(0, 1.5, num_samples),
                "HI": rng.uniform(0, 1.5, num_samples),
                "RQI": rng.uniform(0, 20, num_samples),
                "FZI": rng.uniform(0, 4, num_samples),
                "well": rng.choice(["W1", "W2", "W3"], num_samples),
            }
        )

    store = DatasetStore(fetch_samples)
    controller = ViewController()
    controller.follow(store)
    w = ScatterWidget(controller)
    ui = marimo.ui.anywidget(w)
    ui
    return store, ui


@app.cell
def _(store, ui):
    ui.title_t
    print(store.dataset.category_counts())
    return


if __name__ == "__main__":
    app.run()
