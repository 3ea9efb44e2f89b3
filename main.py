# main.py
"""
DocQuery - Bayes Point Machines for Ranked Document Records

This module is the command-line entry point. It trains three Bayes Point
Machines on the same training file (binary, multi-class and
shared-variables multi-class), predicts every record of the test file with
each of them and writes one result line per record:

    <class id> <P(relevant)>\t<p0,p1,...>\t<p0,p1,...>
"""

import argparse
import os
from typing import Dict, List, Sequence

from docquery.bpm import (
    BayesPointMachineError,
    BinaryBayesPointMachine,
    MultiClassMachine,
    SharedVariablesMachine
)
from docquery.dataset import UnclassifiedDataset
from docquery.utils import (
    Profiler,
    setup_logger,
    display_banner,
    display_settings,
    display_evaluation,
    load_config,
    ensure_directories_exist,
    verify_local_file
)


def parse_feature_selection(value: str) -> List[int]:
    """Parse a colon-separated feature list such as 1:2:3:7."""
    try:
        return [int(f) for f in value.split(":") if f != ""]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Feature selection must be colon-separated integers, got '{value}'")


def parse_arguments(argv=None):
    """
    Parse command-line arguments and load configuration.

    Returns:
        tuple: (parsed arguments, configuration dictionary updated with them)
    """
    parser = argparse.ArgumentParser(description="Train Bayes Point Machines and predict ranked document records")
    parser.add_argument('-t', '--train', type=str, required=True, help="Training record file")
    parser.add_argument('-p', '--test', type=str, required=True, help="Test record file")
    parser.add_argument('-r', '--result', type=str, required=True, help="Result file to write")
    parser.add_argument('-s', '--chunk-size', type=int, help="Number of records per training chunk")
    parser.add_argument('-c', '--num-chunks', type=int,
                        help="Number of training chunks (shared-variables machine only)")
    parser.add_argument('--passes', type=int,
                        help="Most passes over the training chunks (shared-variables machine only)")
    parser.add_argument('-n', '--noise', type=float, help="Noise level")
    parser.add_argument('-v', '--num-features', type=int, help="Number of features in each record")
    parser.add_argument('-f', '--features', type=parse_feature_selection,
                        help="Colon-separated list of selected features, e.g. 1:2:3:7")
    parser.add_argument('--config', type=str, default='config.json', help="Path to configuration file")
    parser.add_argument('--evaluate', action='store_true',
                        help="Report accuracy, precision, recall and F1 on the test file")
    parser.add_argument('--save-model', action='store_true',
                        help="Save the trained multi-class machine to the models directory")
    parser.add_argument('--verbose', action='store_true', help="Show debug messages on the console")
    args = parser.parse_args(argv)

    # Command-line values override the configuration file
    config = load_config(args.config)
    overrides = {
        "chunk_size": args.chunk_size,
        "num_chunks": args.num_chunks,
        "shared_passes": args.passes,
        "noise": args.noise,
        "num_features": args.num_features,
        "feature_selection": args.features,
    }
    config.update({k: v for k, v in overrides.items() if v is not None})

    return args, config


def format_result_line(class_id: int, binary: float, multi: Sequence[float], shared: Sequence[float]) -> str:
    """Format one record's predictions."""
    return (f"{class_id} {binary:.6f}\t{','.join(f'{p:.6f}' for p in multi)}"
            f"\t{','.join(f'{p:.6f}' for p in shared)}")


def build_machines(config: Dict, logger=None) -> Dict[str, object]:
    """Create the three machines from the configuration."""
    solver = config["solver"]
    common = dict(feature_selection=config["feature_selection"], noise=config["noise"],
                  max_iterations=solver["max_iterations"], tolerance=solver["tolerance"],
                  damping=solver["damping"], logger=logger)

    machines = {
        "Binary": BinaryBayesPointMachine(config["num_features"], **common),
        "Multi-class": MultiClassMachine(config["num_classes"], config["num_features"], **common),
        "Shared-variables": SharedVariablesMachine(config["num_classes"], config["num_features"],
                                                   config["num_chunks"], passes=config["shared_passes"],
                                                   pass_tolerance=config["shared_tolerance"], **common),
    }
    for machine in machines.values():
        machine.show_progress = config.get("show_progress", False)
    return machines


def write_results(machines: Dict[str, object], test_file: str, result_file: str, config: Dict,
                  logger=None) -> int:
    """
    Predict the test file chunk by chunk and write the result file.

    Returns:
        int: Number of records written
    """
    dataset = UnclassifiedDataset(test_file, config["num_features"], config["feature_selection"], logger=logger)
    binary = machines["Binary"]
    multi = machines["Multi-class"]
    shared = machines["Shared-variables"]

    count = 0
    with open(result_file, 'w', encoding='utf-8') as f:
        for chunk in dataset.iter_chunks(config["chunk_size"]):
            vectors = [r.feature_vector for r in chunk]
            relevant = binary.probabilities(vectors)
            multi_results = multi.test_vectors(vectors)
            shared_results = shared.test_vectors(vectors)

            for record, p, m, s in zip(chunk, relevant, multi_results, shared_results):
                f.write(format_result_line(record.class_id, p, m, s) + "\n")
            count += len(chunk)
    return count


def main(argv=None):
    """
    Main execution function.

    This function:
    1. Initializes configuration and logging
    2. Trains the binary, multi-class and shared-variables machines
    3. Predicts the test file and writes the result file
    4. Optionally evaluates and saves the models
    5. Generates a performance report
    """
    args, config = parse_arguments(argv)
    logger = setup_logger(config["log_dir"], verbose=args.verbose)
    logger.info("Logger initialized.")
    display_banner()
    display_settings(config)
    ensure_directories_exist(config, logger=logger)

    profiler = Profiler()
    profiler.start_global_timer()

    try:
        verify_local_file(args.train, "Training file", logger=logger)
        verify_local_file(args.test, "Test file", logger=logger)

        machines = build_machines(config, logger=logger)
        for name, machine in machines.items():
            logger.info(f"[+] Started training the {name.lower()} machine...")
            with profiler.timer(f"Train {name}"):
                machine.train(args.train, config["chunk_size"])
            logger.info(f"[+] Finished training the {name.lower()} machine.")

        logger.info("[+] Started testing...")
        with profiler.timer("Test"):
            count = write_results(machines, args.test, args.result, config, logger=logger)
        profiler.log_message(f"Wrote {count} result lines to {args.result}")
        logger.info(f"[+] Results have been written to {args.result}")

        if args.evaluate:
            with profiler.timer("Evaluate"):
                results = {name: machine.evaluate(args.test) for name, machine in machines.items()}
            display_evaluation(results)

        if args.save_model:
            models_dir = os.path.join(config["models_dir"], "multiclass")
            if machines["Multi-class"].save(models_dir):
                profiler.log_message(f"Saved multi-class machine to {models_dir}")

    except (BayesPointMachineError, OSError, ValueError) as e:
        logger.error(f"[X] Run failed: {e}")
        raise SystemExit(1)

    profiler.end_global_timer()
    report = profiler.generate_report(record_count=count)
    logger.info(report)
    logger.info("[+] Execution Complete.")


if __name__ == "__main__":
    main()
