import numpy as np
import pytest

from docquery.bpm.belief import BeliefState


def format_record(class_id, values, query_id="WT04-176", doc_id="G22-48-2409366"):
    features = " ".join(f"{i}:{v:.6f}" for i, v in enumerate(values, 1))
    return f"{class_id} qid:{query_id} {features} #docid = {doc_id}"


def write_records(path, records):
    """records: iterable of (class_id, values)."""
    lines = [format_record(c, v, doc_id=f"D-{n}") for n, (c, v) in enumerate(records)]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


# --- Fixtures ---


@pytest.fixture
def separable_records():
    # Class 1 leans towards +x, class 0 towards -x
    return [
        (1, [1.0, 0.2, 0.0]),
        (1, [0.8, -0.1, 0.1]),
        (1, [1.2, 0.0, -0.2]),
        (0, [-1.0, 0.1, 0.0]),
        (0, [-0.9, -0.2, 0.1]),
        (0, [-1.1, 0.0, 0.2]),
    ]


@pytest.fixture
def separable_batch(separable_records):
    batch = [[], []]
    for c, v in separable_records:
        batch[c].append(np.array(v))
    return batch


@pytest.fixture
def three_class_batch():
    return [
        [np.array([-1.0, 0.0]), np.array([-0.8, 0.1])],
        [np.array([1.0, 0.0]), np.array([0.9, -0.1])],
        [np.array([0.0, 1.0]), np.array([0.1, 0.9])],
    ]


@pytest.fixture
def train_file(tmp_path, separable_records):
    return write_records(tmp_path / "train.txt", separable_records * 2)


@pytest.fixture
def test_file(tmp_path):
    return write_records(tmp_path / "test.txt", [
        (1, [1.0, 0.0, 0.0]),
        (0, [-1.0, 0.0, 0.0]),
    ])


@pytest.fixture
def gaussian_belief():
    precision = np.array([[2.0, 0.3], [0.3, 1.5]])
    return BeliefState(np.array([0.5, -0.25]), precision)
