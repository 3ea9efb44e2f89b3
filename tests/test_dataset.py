import numpy as np
import pytest

from conftest import write_records
from docquery.bpm.errors import FeatureSelectionError
from docquery.dataset import ClassifiedDataset, DatasetFormatError, UnclassifiedDataset

RECORD = ("0 qid:WT04-176 1:0.028359 2:0.005208 3:0.000000 4:0.047619 5:0.029054 6:0.075475 "
          "7:0.023407 8:0.032020 9:0.037712 10:0.075876 #docid = G22-48-2409366")
FEATURES = ["1:0.006077", "2:0.010417", "3:0.076923", "4:0.000000", "5:0.008108",
            "6:0.196020", "7:0.265382", "8:0.250778", "9:0.264915", "10:0.194877"]


@pytest.fixture
def dataset():
    return ClassifiedDataset("nosuchfile.txt", 10, 2)


# --- Record grammar ---
@pytest.mark.parametrize("token, expected", [("0", 0), ("+3", 3), ("123456789", 123456789), ("-123", -123)])
def test_parse_class_id(token, expected):
    assert ClassifiedDataset.parse_class_id(token) == expected


@pytest.mark.parametrize("token", ["1.234", "1.23e7", "test", "0x10", ""])
def test_parse_class_id_rejects(token):
    with pytest.raises(DatasetFormatError):
        ClassifiedDataset.parse_class_id(token)


@pytest.mark.parametrize("token, expected", [
    ("qid:WT04-170", "WT04-170"), ("qid:12345", "12345"), ("qid:WT04:170", "WT04:170")])
def test_parse_query_id(token, expected):
    assert ClassifiedDataset.parse_query_id(token) == expected


@pytest.mark.parametrize("token", ["qid:", "pid:WT04-170", "qid=WT04-170", ""])
def test_parse_query_id_rejects(token):
    with pytest.raises(DatasetFormatError):
        ClassifiedDataset.parse_query_id(token)


@pytest.mark.parametrize("tokens, expected", [
    (["#docid", "=", "G31-19-4091944"], "G31-19-4091944"),
    (["#docid", "=", "G31=19=4091944"], "G31=19=4091944"),
])
def test_parse_document_id(tokens, expected):
    assert ClassifiedDataset.parse_document_id(tokens) == expected


@pytest.mark.parametrize("tokens", [
    ["#docid=G31-19-4091944"],
    ["#docid", "=G31-19-4091944"],
    ["#docid=", "G31-19-4091944"],
    ["#docid", ":", "G31-19-4091944"],
    ["#docid", "=", ""],
])
def test_parse_document_id_rejects(tokens):
    with pytest.raises(DatasetFormatError):
        ClassifiedDataset.parse_document_id(tokens)


def test_parse_feature():
    assert ClassifiedDataset.parse_feature("33:0.732063", 33) == pytest.approx(0.732063)
    assert ClassifiedDataset.parse_feature("1:0.000000", 1) == 0.0


@pytest.mark.parametrize("token, index", [("24:0.168218", 28), ("12:", 12), ("a:0.1", 1),
                                          ("1:0.007abc", 1), ("1=0.007427", 1), ("1:nan", 1)])
def test_parse_feature_rejects(token, index):
    with pytest.raises(DatasetFormatError):
        ClassifiedDataset.parse_feature(token, index)


def test_parse_features(dataset):
    values = dataset.parse_features(FEATURES)
    assert values[0] == pytest.approx(0.006077)
    assert values[9] == pytest.approx(0.194877)


def test_parse_features_with_too_few_tokens():
    dataset = ClassifiedDataset("nosuchfile.txt", 11, 2)
    with pytest.raises(IndexError):
        dataset.parse_features(FEATURES)


def test_parse_features_out_of_order(dataset):
    shuffled = [FEATURES[0], FEATURES[3]] + FEATURES[1:3] + FEATURES[4:]
    with pytest.raises(DatasetFormatError):
        dataset.parse_features(shuffled)


@pytest.mark.parametrize("selection", [[2, 5, 6, 9], [6, 5, 9, 2]])
def test_parse_selected_features_keeps_selection_order(selection):
    dataset = ClassifiedDataset("nosuchfile.txt", 10, 2, selection)
    values = dataset.parse_selected_features(FEATURES)
    full = [float(t.split(":")[1]) for t in FEATURES]
    assert values == pytest.approx([full[f - 1] for f in selection])


def test_selection_beyond_feature_count_is_rejected():
    with pytest.raises(FeatureSelectionError):
        ClassifiedDataset("nosuchfile.txt", 10, 2, [1, 11])


def test_create_data_vector(dataset):
    record = dataset.create_data_vector(RECORD)
    assert record.class_id == 0
    assert record.query_id == "WT04-176"
    assert record.document_id == "G22-48-2409366"
    assert record.feature_vector.shape == (10,)
    assert record.feature_vector[9] == pytest.approx(0.075876)
    assert not record.feature_vector.flags.writeable


@pytest.mark.parametrize("num_features", [8, 11])
def test_create_data_vector_with_wrong_feature_count(num_features):
    dataset = ClassifiedDataset("nosuchfile.txt", num_features, 2)
    with pytest.raises(DatasetFormatError):
        dataset.create_data_vector(RECORD)


def test_create_data_vector_with_selection():
    dataset = UnclassifiedDataset("nosuchfile.txt", 10, [10, 1])
    record = dataset.create_data_vector(RECORD)
    np.testing.assert_allclose(record.feature_vector, [0.075876, 0.028359])


# --- Reading files ---
@pytest.fixture
def mixed_file(tmp_path):
    path = write_records(tmp_path / "mixed.txt", [
        (0, [0.1, 0.2]), (1, [0.3, 0.4]), (2, [0.5, 0.6]), (1, [0.7, 0.8]), (0, [0.9, 1.0])])
    with open(path, "a", encoding="utf-8") as f:
        f.write("this is not a record\n")
    return path


def test_get_data_vectors_skips_malformed_lines(mixed_file):
    dataset = UnclassifiedDataset(mixed_file, 2)
    records = dataset.get_data_vectors()
    assert [r.class_id for r in records] == [0, 1, 2, 1, 0]
    assert [r.document_id for r in records] == ["D-0", "D-1", "D-2", "D-3", "D-4"]
    assert dataset.skipped_records == 1


def test_malformed_lines_raise_when_not_skipped(mixed_file):
    dataset = UnclassifiedDataset(mixed_file, 2)
    dataset.skip_parsing_errors = False
    with pytest.raises(DatasetFormatError):
        dataset.get_data_vectors()


def test_iter_chunks(mixed_file):
    chunks = list(UnclassifiedDataset(mixed_file, 2).iter_chunks(2))
    assert [len(c) for c in chunks] == [2, 2, 1]


def test_iter_chunks_rejects_bad_size(mixed_file):
    with pytest.raises(ValueError):
        list(UnclassifiedDataset(mixed_file, 2).iter_chunks(0))


def test_classified_vectors_drop_out_of_range_classes(mixed_file):
    groups = ClassifiedDataset(mixed_file, 2, 2).get_classified_vectors()
    assert [len(g) for g in groups] == [2, 2]
    np.testing.assert_allclose(groups[1][1], [0.7, 0.8])


def test_out_of_range_class_raises_when_not_skipped(mixed_file):
    dataset = ClassifiedDataset(mixed_file, 2, 2)
    dataset.skip_class_out_of_range = False
    with pytest.raises(DatasetFormatError):
        dataset.get_classified_vectors()


def test_iter_classified_chunks(mixed_file):
    chunks = list(ClassifiedDataset(mixed_file, 2, 3).iter_classified_chunks(2))
    assert [[len(g) for g in chunk] for chunk in chunks] == [[1, 1, 0], [0, 1, 1], [1, 0, 0]]


def test_missing_file_raises_on_read():
    dataset = UnclassifiedDataset("nosuchfile.txt", 2)
    with pytest.raises(FileNotFoundError):
        dataset.get_data_vectors()
