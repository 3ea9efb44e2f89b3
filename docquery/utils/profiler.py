# docquery/utils/profiler.py
"""
DocQuery - Bayes Point Machines for Ranked Document Records

Module: profiler.py

Wall-clock timing of the training and testing phases of a run, with a short
message log, reported at the end of the run.
"""
import time
from io import StringIO


class Profiler:
    """
    Timing utility for the phases of a run.

    Attributes:
        timings (dict): Task name to elapsed seconds, in completion order
        start_time (float): Start timestamp of the global timer
        log_buffer (StringIO): Buffer for diagnostic messages
    """
    def __init__(self):
        self.timings = {}
        self.start_time = None
        self.end_time = None
        self.log_buffer = StringIO()

    def timer(self, task_name):
        """
        Create a context manager for timing a code block.

        Example:
            with profiler.timer("Train multi-class machine"):
                machine.train(path)
        """
        return Timer(task_name, self)

    def log_message(self, message):
        self.log_buffer.write(f"{message}\n")

    def start_global_timer(self):
        self.start_time = time.time()
        self.end_time = None

    def end_global_timer(self):
        self.end_time = time.time()

    def get_global_time(self):
        """
        Get the total elapsed time from the global timer.

        Returns:
            float: Elapsed seconds, up to end_global_timer() if it was called
        """
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.time()
        return end - self.start_time

    def generate_report(self, record_count: int = None, filename: str = None) -> str:
        """
        Generate a plain-text performance report.

        Args:
            record_count (int, optional): Number of test records processed
            filename (str, optional): Path to save the report file

        Returns:
            str: Report content
        """
        report = StringIO()

        report.write("=== Message Log ===\n")
        report.write(self.log_buffer.getvalue())
        report.write("\n=== Timing Breakdown ===\n")

        for task, duration in self.timings.items():
            report.write(f"{task}: {duration:.4f}s\n")

        tracked_total = sum(self.timings.values())
        report.write(f"\nTracked Operations Total: {tracked_total:.4f}s\n")
        report.write(f"Global Execution Time: {self.get_global_time():.4f}s\n")
        if record_count is not None:
            report.write(f"Test Records: {record_count}\n")

        report_content = report.getvalue()

        if filename:
            with open(filename, "w", encoding="utf-8") as f:
                f.write(report_content)

        return report_content


class Timer:
    """
    Context manager recording the elapsed time of a block in its Profiler.

    Attributes:
        task_name (str): Name of the task being timed
        profiler (Profiler): Parent profiler
        start (float): Start timestamp when entering the context
    """
    def __init__(self, task_name, profiler):
        self.task_name = task_name
        self.profiler = profiler

    def __enter__(self):
        self.start = time.time()
        return self

    def __exit__(self, *args):
        elapsed = time.time() - self.start
        self.profiler.timings[self.task_name] = elapsed
