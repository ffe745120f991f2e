import sys
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def settings_file(tmp_path, monkeypatch):
    """Keep stored settings out of the user's home folder."""
    path = tmp_path / "settings.json"
    monkeypatch.setenv("FIGEXPORT_CONFIG", str(path))
    return path


@pytest.fixture
def figure():
    import matplotlib.pyplot as plt

    fig, ax = plt.subplots(figsize=(2, 1.5), dpi=50)
    ax.plot([0, 1, 2], [0, 1, 0], color="black", linewidth=4)
    ax.set_axis_off()
    yield fig
    plt.close(fig)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    import matplotlib.pyplot as plt

    plt.close("all")
