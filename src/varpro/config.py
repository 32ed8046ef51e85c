"""Output locations for the example scripts.

Results go under ``RESULTS_DIR``, which defaults to ``results/`` at the
project root and can be moved with the ``VARPRO_RESULTS_DIR`` environment
variable.
"""

import os
import shutil
from pathlib import Path

# src/varpro/config.py -> project root
PROJECT_ROOT = Path(__file__).parents[2].resolve()
RESULTS_DIR = Path(
    os.environ.get("VARPRO_RESULTS_DIR", PROJECT_ROOT / "results")
).resolve()


def prepare_output_dir(output_dir: Path) -> Path:
    """Empty (or create) one example's output directory.

    Args:
        output_dir: Directory strictly inside RESULTS_DIR

    Returns:
        ``output_dir``, existing and empty

    Raises:
        ValueError: If output_dir is RESULTS_DIR itself or lies outside it
    """
    resolved = output_dir.resolve()
    if not resolved.is_relative_to(RESULTS_DIR):
        raise ValueError(
            f"output_dir must be under RESULTS_DIR ({RESULTS_DIR}), got {resolved}"
        )
    if resolved in (RESULTS_DIR, PROJECT_ROOT):
        raise ValueError(f"Refusing to delete {resolved}")
    shutil.rmtree(resolved, ignore_errors=True)
    resolved.mkdir(parents=True)
    return output_dir
