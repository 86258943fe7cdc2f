"""
coursebench - Benchmark orchestration for course-generation models.

Run a model x scenario x repetition grid, score every artifact, rank models.
"""

from coursebench.config import BenchConfig, ConfigurationError, load_config
from coursebench.matrix import build_matrix
from coursebench.runner import RunExecutor, retry_failures, run_matrix
from coursebench.scoring import evaluate_results, score_cell
from coursebench.store import OutputStore

__version__ = "0.1.0"
__all__ = [
    "BenchConfig",
    "ConfigurationError",
    "OutputStore",
    "RunExecutor",
    "__version__",
    "build_matrix",
    "evaluate_results",
    "load_config",
    "retry_failures",
    "run_matrix",
    "score_cell",
]
