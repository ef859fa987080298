import pickle

import pytest

from smclearn.errors import (
    CorpusTooSmall,
    DataUnavailable,
    InsufficientData,
    NotTrained,
    SMCLearnError,
)


@pytest.mark.parametrize("error", [
    DataUnavailable("BTCUSDT", "1h"),
    DataUnavailable("BTCUSDT", "1h", "no CSV file"),
    InsufficientData("ETHUSDT", "5m", 120, 300),
    NotTrained(),
    CorpusTooSmall(199, 200),
])
def test_errors_survive_pickling(error):
    restored = pickle.loads(pickle.dumps(error))
    assert type(restored) is type(error)
    assert str(restored) == str(error)
    assert isinstance(restored, SMCLearnError)


def test_error_attributes():
    error = pickle.loads(pickle.dumps(InsufficientData("ETHUSDT", "5m", 120, 300)))
    assert (error.symbol, error.timeframe, error.count, error.minimum) == ("ETHUSDT", "5m", 120, 300)
    assert str(CorpusTooSmall(199, 200)) == "Not enough trades (199). Need 200+."
