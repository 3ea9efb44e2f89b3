import json

from docquery.utils.bootstrap import DEFAULT_CONFIG, load_config, save_config
from docquery.utils.profiler import Profiler


def test_missing_config_is_created(tmp_path):
    path = tmp_path / "config.json"
    config = load_config(str(path))
    assert config == DEFAULT_CONFIG
    assert json.loads(path.read_text(encoding="utf-8"))["noise"] == 0.1


def test_config_is_merged_over_defaults(tmp_path):
    path = tmp_path / "config.json"
    save_config({"noise": 0.5, "solver": {"tolerance": 1e-4}}, str(path))
    config = load_config(str(path))
    assert config["noise"] == 0.5
    assert config["num_features"] == 64
    assert config["solver"] == {"max_iterations": 100, "tolerance": 1e-4, "damping": 1.0}


def test_unreadable_config_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    assert load_config(str(path))["chunk_size"] == 100


def test_profiler_report(tmp_path):
    profiler = Profiler()
    profiler.start_global_timer()
    with profiler.timer("Train"):
        pass
    profiler.log_message("trained")
    profiler.end_global_timer()
    report = profiler.generate_report(record_count=3, filename=str(tmp_path / "report.txt"))
    assert "Train:" in report
    assert "trained" in report
    assert "Test Records: 3" in report
    assert (tmp_path / "report.txt").read_text(encoding="utf-8") == report
