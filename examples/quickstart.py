import numpy as np
import pandas as pd

from sparse_hedge import BacktestEngine, EngineConfig, PenaltySpec, ReturnMatrix, Strategy

rng = np.random.default_rng(42)
n_dates, n_assets = 260, 8
market = rng.normal(0.0003, 0.01, n_dates)
betas = rng.uniform(0.5, 1.5, n_assets)
data = np.outer(market, betas) + rng.normal(0.0, 0.006, (n_dates, n_assets))
dates = pd.bdate_range("2022-01-03", periods=n_dates)
matrix = ReturnMatrix(data, dates, [f"asset_{i}" for i in range(n_assets)])

cfg = EngineConfig(separation_date=dates[119], penalty=PenaltySpec(alpha=0.1, lambda_=0.1))
result = BacktestEngine(matrix, cfg).run()
print(result.summary().round(4))
print("Last sparse-hedge weights:", np.round(result.weights[Strategy.SPARSE_HEDGE].iloc[-1].to_numpy(), 4))
