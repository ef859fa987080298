import json

import pandas as pd

from run_learn_loop import main
from smclearn.config import LoopConfig
from smclearn.ml.learn_loop import BacktestLearnLoop
from smclearn.ml.model import HistogramModel
from smclearn.utils.output_manager import OutputManager
from tests.conftest import make_record, trend_candles


def small_result(seed=3):
    corpus = (
        [make_record(win=True, ob_near=True) for _ in range(40)]
        + [make_record(win=False, ob_near=False) for _ in range(40)]
    )
    config = LoopConfig(min_corpus_size=50, max_iterations=2, seed=seed)
    return BacktestLearnLoop(config=config).iterate(corpus), config


class TestOutputManager:
    def test_default_model_dir(self, tmp_path):
        om = OutputManager(tmp_path / "learning-loop")
        assert om.model_dir == tmp_path / "models"
        assert om.model_dir.is_dir()

    def test_save_results(self, tmp_path):
        result, config = small_result()
        om = OutputManager(tmp_path / "loop", tmp_path / "models")
        paths = om.save_results(result, config)

        assert set(paths) == {"history", "model", "corpus"}
        assert all(p.exists() for p in paths.values())

        with open(paths["history"]) as f:
            history = json.load(f)
        assert history["total_trades"] == 80
        assert history["config"]["seed"] == 3
        assert len(history["iterations"]) == len(result.iterations)

        with open(paths["model"]) as f:
            saved = json.load(f)
        assert saved["algorithm"] == "backtest-learn-loop"
        restored = HistogramModel.from_dict(saved["model"])
        query = make_record(ob_near=True)
        assert restored.predict(query) == result.model.predict(query)

        df = pd.read_csv(paths["corpus"])
        assert len(df) == 80
        assert set(df["ob_near"].unique()) == {0, 1}
        assert set(df["outcome"].unique()) == {"WIN", "LOSS"}

    def test_empty_corpus_not_written(self, tmp_path):
        om = OutputManager(tmp_path / "loop")
        assert om.save_corpus([]) is None
        assert om.written == []

    def test_archive_runs(self, tmp_path):
        result, config = small_result()
        om = OutputManager(tmp_path / "loop")
        assert om.archive_current_run() is None

        om.save_results(result, config)
        first = om.archive_current_run()
        second = om.archive_current_run()

        assert first.name == "run_001"
        assert second.name == "run_002"
        assert len(list(first.iterdir())) == 3


class TestRunner:
    def test_empty_data_dir_fails(self, tmp_path):
        code = main([
            "--data-path", str(tmp_path / "data"),
            "--symbols", "BTCUSDT",
            "--timeframes", "1h",
            "--workers", "1",
            "--output-dir", str(tmp_path / "out"),
        ])
        assert code == 1
        assert not (tmp_path / "out").exists()

    def test_full_run_writes_artifacts(self, tmp_path):
        data_dir = tmp_path / "data"
        data_dir.mkdir()
        frame = pd.DataFrame([c.to_dict() for c in trend_candles(320)])
        frame.to_csv(data_dir / "BTCUSDT_1h.csv", index=False)

        config = LoopConfig(
            symbols=["BTCUSDT"],
            timeframes=["1h"],
            workers=1,
            min_corpus_size=50,
            data_path=str(data_dir),
            output_dir=str(tmp_path / "out" / "loop"),
        )
        config_path = tmp_path / "loop.json"
        config.save(config_path)

        assert main(["--config", str(config_path), "--seed", "1"]) == 0
        out = tmp_path / "out" / "loop"
        assert list(out.glob("loop_history_*.json"))
        assert list(out.glob("training_data_*.csv"))
        assert (tmp_path / "out" / "models" / "best-model.json").exists()
        assert (out / "history" / "run_001").is_dir()
