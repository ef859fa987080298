import json

import pytest

from smclearn.config import (
    FeatureConfig,
    LoopConfig,
    ScoringWeights,
    load_feature_config,
)

SMC_VARS = [
    "SMC_SYMBOLS", "SMC_TIMEFRAMES", "SMC_WORKERS", "SMC_MAX_ITERATIONS",
    "SMC_ERROR_EMPHASIS", "SMC_MIN_CORPUS_SIZE", "SMC_SEED", "SMC_MIN_SCORE",
    "SMC_MIN_IMPROVEMENT", "SMC_TRAIN_TEST_SPLIT", "SMC_DATA_PATH",
    "SMC_OUTPUT_DIR", "SMC_RECORDED_TRADES_DIR", "SMC_FEATURES_CONFIG",
]


@pytest.fixture
def clean_env(monkeypatch):
    # setenv first so monkeypatch restores anything load_dotenv writes
    for var in SMC_VARS:
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)
    return monkeypatch


class TestFeatureConfig:
    def test_defaults(self):
        config = load_feature_config(None)
        assert config == FeatureConfig()
        assert config.lookback == 200
        assert config.ob_near_percent == 5.0
        assert config.mtf_periods == [20, 50, 100]

    def test_missing_file(self, tmp_path):
        assert load_feature_config(tmp_path / "missing.json") == FeatureConfig()

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "features.json"
        path.write_text("{not json")
        assert load_feature_config(path) == FeatureConfig()

    def test_non_object(self, tmp_path):
        path = tmp_path / "features.json"
        path.write_text("[1, 2]")
        assert load_feature_config(path) == FeatureConfig()

    def test_flat_layout(self, tmp_path):
        path = tmp_path / "features.json"
        path.write_text(json.dumps({"lookback": 120, "rsi_overbought": 80, "unknown": 1}))
        config = load_feature_config(path)
        assert config.lookback == 120
        assert config.rsi_overbought == 80
        assert config.rsi_oversold == 30.0

    def test_nested_layout(self, tmp_path):
        path = tmp_path / "features.json"
        path.write_text(json.dumps({
            "feature_extraction": {
                "lookback_periods": {"default": 150},
                "thresholds": {"fvg_near_percent": 3.0, "ob_age_max": 50},
            }
        }))
        config = load_feature_config(path)
        assert config.lookback == 150
        assert config.fvg_near_percent == 3.0
        assert config.ob_age_max == 50


class TestLoopConfig:
    def test_defaults(self):
        config = LoopConfig()
        assert config.min_score == 25.0
        assert config.max_iterations == 10
        assert config.train_test_split == 0.7
        assert config.error_emphasis_multiplier == 3
        assert config.workers >= 1
        assert config.weights.rsi_penalty == 15.0
        assert len(config.symbols) == 10

    def test_save_load_roundtrip(self, tmp_path):
        config = LoopConfig(
            symbols=["BTCUSDT"],
            max_iterations=3,
            seed=9,
            weights=ScoringWeights(mtf_bonus=0.0),
            features=FeatureConfig(lookback=80),
        )
        path = tmp_path / "nested" / "loop.json"
        config.save(path)

        loaded = LoopConfig.load(path)
        assert loaded == config
        assert isinstance(loaded.weights, ScoringWeights)
        assert loaded.features.lookback == 80

    def test_load_missing_uses_defaults(self, tmp_path):
        assert LoopConfig.load(tmp_path / "nope.json") == LoopConfig()

    def test_from_dict_ignores_unknown(self):
        config = LoopConfig.from_dict({"min_score": 40, "legacy_option": True})
        assert config.min_score == 40


class TestFromEnv:
    def test_no_env(self, clean_env, tmp_path):
        config = LoopConfig.from_env(tmp_path / ".env")
        assert config.symbols == LoopConfig().symbols
        assert config.recorded_trades_dir is None

    def test_environment_overrides(self, clean_env):
        clean_env.setenv("SMC_SYMBOLS", "BTCUSDT, ETHUSDT,")
        clean_env.setenv("SMC_WORKERS", "3")
        clean_env.setenv("SMC_TRAIN_TEST_SPLIT", "0.8")
        clean_env.setenv("SMC_DATA_PATH", "/data/candles")

        config = LoopConfig.from_env("/nonexistent/.env")
        assert config.symbols == ["BTCUSDT", "ETHUSDT"]
        assert config.workers == 3
        assert config.train_test_split == 0.8
        assert config.data_path == "/data/candles"

    def test_dotenv_file(self, clean_env, tmp_path):
        features = tmp_path / "features.json"
        features.write_text(json.dumps({"lookback": 64}))
        env_file = tmp_path / ".env"
        env_file.write_text(
            "SMC_MAX_ITERATIONS=4\n"
            "SMC_MIN_SCORE=30.5\n"
            "SMC_SEED=7\n"
            "SMC_TIMEFRAMES=1h,5m\n"
            f"SMC_FEATURES_CONFIG={features}\n"
        )

        config = LoopConfig.from_env(env_file)
        assert config.max_iterations == 4
        assert config.min_score == 30.5
        assert config.seed == 7
        assert config.timeframes == ["1h", "5m"]
        assert config.features.lookback == 64
