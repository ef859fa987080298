"""
smclearn - Smart-money signal extraction and self-improving win-rate model.

Subpackages:
- strategy: indicators, confluence scoring, feature extraction, trade simulation
- ml: histogram model, corpus extraction, backtest-learn loop
- data: candle type and candle sources
- utils: logging and output files
"""

__version__ = "0.1.0"
