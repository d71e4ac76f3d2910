import pandas as pd

df = pd.read_csv("prices.csv", index_col=0, parse_dates=True)

df["signal"] = df["close"].rolling(20).mean() > df["close"].rolling(50).mean()
df["position"] = df["signal"].shift(1)
df["returns"] = df["close"].pct_change()
df["pnl"] = df["position"] * df["returns"]
