"""
Output Manager for the Backtest-Learn Loop
==========================================
Writes loop artifacts to disk.

Output Files:
-------------
{output_dir}/
├── loop_history_{ts}.json     # Config, iteration records, extraction summary
├── training_data_{ts}.csv     # Full labeled corpus (booleans as 0/1)
└── history/                   # Archived runs
    ├── run_001/
    └── ...
{model_dir}/
└── best-model.json            # Trained model state plus run metadata

Usage:
    from smclearn.utils.output_manager import OutputManager

    om = OutputManager("data/learning-loop")
    paths = om.save_results(result, config)
"""

import json
import shutil
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd

from smclearn.config import LoopConfig
from smclearn.ml.learn_loop import LoopResult
from smclearn.strategy.features import FeatureRecord
from smclearn.utils.logger import get_logger

log = get_logger(__name__)


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%dT%H-%M-%S")


class OutputManager:
    """Persists iteration history, the trained model and the corpus."""

    def __init__(
        self,
        output_dir: Union[str, Path] = "data/learning-loop",
        model_dir: Optional[Union[str, Path]] = None,
    ):
        self.output_dir = Path(output_dir)
        self.model_dir = Path(model_dir) if model_dir else self.output_dir.parent / "models"

        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.model_dir.mkdir(parents=True, exist_ok=True)

        self.written: List[Path] = []

    def save_loop_history(
        self,
        result: LoopResult,
        config: Optional[LoopConfig] = None,
        timestamp: Optional[str] = None,
    ) -> Path:
        timestamp = timestamp or _timestamp()
        path = self.output_dir / f"loop_history_{timestamp}.json"

        payload = {
            "timestamp": datetime.now().isoformat(),
            "config": config.to_dict() if config is not None else None,
            "iterations": result.history(),
            "total_trades": len(result.corpus),
            "converged": result.converged,
            "duration_seconds": result.duration_seconds,
            "extraction": result.extraction.to_dict() if result.extraction else None,
        }
        with open(path, "w") as f:
            json.dump(payload, f, indent=2)

        self.written.append(path)
        return path

    def save_model(self, result: LoopResult, timestamp: Optional[str] = None) -> Path:
        timestamp = timestamp or _timestamp()
        path = self.model_dir / "best-model.json"

        payload = {
            "model_id": f"loop_model_{timestamp}",
            "trained_at": datetime.now().isoformat(),
            "iterations": len(result.iterations),
            "final_accuracy": result.final_accuracy,
            "trades_used": len(result.corpus),
            "algorithm": "backtest-learn-loop",
            "model": result.model.to_dict(),
        }
        with open(path, "w") as f:
            json.dump(payload, f, indent=2)

        self.written.append(path)
        return path

    def save_corpus(
        self,
        records: Sequence[FeatureRecord],
        timestamp: Optional[str] = None,
    ) -> Optional[Path]:
        """Write the corpus to CSV. Nothing is written for an empty corpus."""
        if not records:
            return None

        timestamp = timestamp or _timestamp()
        path = self.output_dir / f"training_data_{timestamp}.csv"

        df = pd.DataFrame([r.to_dict() for r in records])
        bool_cols = df.select_dtypes(include="bool").columns
        if len(bool_cols):
            df[bool_cols] = df[bool_cols].astype(int)
        df.to_csv(path, index=False)

        self.written.append(path)
        return path

    def save_results(self, result: LoopResult, config: Optional[LoopConfig] = None) -> Dict[str, Path]:
        """Write history, model and corpus with a shared timestamp."""
        timestamp = _timestamp()
        paths = {
            "history": self.save_loop_history(result, config, timestamp),
            "model": self.save_model(result, timestamp),
        }
        corpus_path = self.save_corpus(result.corpus, timestamp)
        if corpus_path is not None:
            paths["corpus"] = corpus_path

        for path in paths.values():
            log.info(f"Saved: {path}")
        return paths

    def _get_next_run_number(self, history_dir: Path) -> int:
        if not history_dir.exists():
            return 1

        numbers = []
        for run_dir in history_dir.iterdir():
            if not (run_dir.is_dir() and run_dir.name.startswith("run_")):
                continue
            try:
                numbers.append(int(run_dir.name.split("_")[1]))
            except (IndexError, ValueError):
                continue
        return max(numbers) + 1 if numbers else 1

    def archive_current_run(self) -> Optional[Path]:
        """
        Copy the files written by this manager into history/run_XXX/.
        Returns the run directory, or None if nothing was written.
        """
        existing = [p for p in self.written if p.exists()]
        if not existing:
            log.warning("No files to archive")
            return None

        history_dir = self.output_dir / "history"
        history_dir.mkdir(exist_ok=True)
        run_dir = history_dir / f"run_{self._get_next_run_number(history_dir):03d}"
        run_dir.mkdir(exist_ok=True)

        for path in existing:
            shutil.copy2(path, run_dir / path.name)

        log.info(f"Archived run to: {run_dir}")
        return run_dir
