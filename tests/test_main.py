import json
import logging

import pytest

import main
from conftest import write_records


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "num_features": 3,
        "chunk_size": 4,
        "num_chunks": 3,
        "log_dir": str(tmp_path / "logs"),
        "models_dir": str(tmp_path / "models"),
        "show_progress": False,
    }), encoding="utf-8")
    return path


def test_parse_feature_selection():
    assert main.parse_feature_selection("1:2:3:7") == [1, 2, 3, 7]


def test_command_line_overrides_config(config_file, tmp_path):
    args, config = main.parse_arguments([
        "-t", "train.txt", "-p", "test.txt", "-r", "out.txt",
        "-s", "7", "-n", "0.3", "-f", "3:1", "--config", str(config_file)])
    assert args.train == "train.txt"
    assert config["chunk_size"] == 7
    assert config["noise"] == 0.3
    assert config["feature_selection"] == [3, 1]
    assert config["num_chunks"] == 3
    assert config["solver"]["max_iterations"] == 100


def test_passes_reach_the_shared_machine(config_file):
    args, config = main.parse_arguments([
        "-t", "train.txt", "-p", "test.txt", "-r", "out.txt",
        "--passes", "4", "--config", str(config_file)])
    assert config["shared_passes"] == 4
    machines = main.build_machines(config)
    assert machines["Shared-variables"].passes == 4
    assert machines["Shared-variables"].pass_tolerance == config["shared_tolerance"]


def test_format_result_line():
    line = main.format_result_line(1, 0.75, [0.25, 0.75], [0.5, 0.5])
    assert line == "1 0.750000\t0.250000,0.750000\t0.500000,0.500000"


def test_full_run_writes_results(config_file, tmp_path, train_file, test_file):
    result = tmp_path / "result.txt"
    main.main(["-t", str(train_file), "-p", str(test_file), "-r", str(result),
               "--config", str(config_file), "--evaluate", "--save-model"])

    lines = result.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    class_id, rest = lines[0].split(" ", 1)
    binary, multi, shared = rest.split("\t")
    assert class_id == "1"
    assert float(binary) > 0.5
    assert float(multi.split(",")[1]) > 0.5
    assert float(shared.split(",")[1]) > 0.5
    assert (tmp_path / "models" / "multiclass" / "model.pkl").exists()


def test_missing_training_file_exits(config_file, tmp_path, test_file):
    with pytest.raises(SystemExit):
        main.main(["-t", str(tmp_path / "missing.txt"), "-p", str(test_file),
                   "-r", str(tmp_path / "result.txt"), "--config", str(config_file)])


def test_uneven_test_file_is_fully_written(config_file, tmp_path, train_file):
    test_path = write_records(tmp_path / "five.txt", [(n % 2, [1.0 - n, 0.0, 0.0]) for n in range(5)])
    result = tmp_path / "result.txt"
    main.main(["-t", str(train_file), "-p", str(test_path), "-r", str(result), "--config", str(config_file)])
    assert len(result.read_text(encoding="utf-8").splitlines()) == 5
