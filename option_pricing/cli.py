import argparse
import asyncio
import logging
import sys
from datetime import datetime

import numpy as np
import pandas as pd

from .config import PricingConfig
from .exceptions import MarketDataError
from .financial_instruments import Option, OptionType, Stock
from .market_data import MarketDataGateway
from .models import BlackScholes
from .visualization import Visualizer


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Price a European stock option with Black-Scholes.")
    parser.add_argument("symbol", help="Ticker of the underlying, e.g. NVDA")
    parser.add_argument("--strike", type=float, required=True, help="Strike price (K)")
    parser.add_argument("--expiry", type=datetime.fromisoformat, required=True, help="Expiry date, YYYY-MM-DD")
    parser.add_argument("--type", dest="option_type", default="call", choices=["call", "put"])
    parser.add_argument("--volatility", type=float, help="Annualized volatility; estimated from history if omitted")
    parser.add_argument("--rate", type=float, help="Risk-free rate as a decimal; Treasury bill rate if omitted")
    parser.add_argument("--plot", action="store_true", help="Plot Greeks over +/-20%% of spot")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


async def build_engine(args, gateway: MarketDataGateway) -> BlackScholes:
    stock = Stock(symbol=args.symbol.upper())
    option = Option(
        strike_price=args.strike,
        expiry_date=args.expiry,
        option_type=OptionType.from_string(args.option_type),
        underlying_asset=stock
    )
    engine = BlackScholes(stock, option, deviation=args.volatility, risk_free=args.rate)

    pending = [engine.load_market_data(gateway, fetch_rate=args.rate is None)]
    if args.volatility is None:
        pending.append(gateway.get_historical_volatility(stock.symbol))

    results = await asyncio.gather(*pending)
    if args.volatility is None:
        engine.set_deviation(results[-1])
    return engine


def report(engine: BlackScholes) -> pd.DataFrame:
    # One snapshot, so every column is priced at the same T
    inputs = engine.snapshot()
    greeks = engine.greeks(inputs)
    row = {
        "Ticker": engine.stock.symbol,
        "Type": engine.option.option_type.value,
        "Spot": inputs.spot,
        "Strike": inputs.strike,
        "T (years)": round(inputs.time, 4),
        "Vol": inputs.volatility,
        "Rate": inputs.rate,
        "Value": engine.value(inputs),
    }
    row.update({name.capitalize(): greek for name, greek in greeks.items()})
    return pd.DataFrame([row])


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    try:
        gateway = MarketDataGateway(PricingConfig.from_env())
        engine = asyncio.run(build_engine(args, gateway))
    except (MarketDataError, ValueError) as e:
        print(f"Error pricing {args.symbol}: {e}", file=sys.stderr)
        return 1

    df = report(engine)
    print("\n" + "=" * 110)
    print(df.to_string(index=False))
    print("=" * 110)

    if pd.isna(df.iloc[0]["Value"]):
        print("Option value is undefined for these inputs (expired or missing market data).")

    if args.plot:
        spot = engine.stock.price
        spot_range = np.linspace(spot * 0.8, spot * 1.2, 100)
        greeks_data = Visualizer.greek_profile(engine, spot_range)
        Visualizer.plot_greeks(
            spot_range, greeks_data,
            title=f"{engine.option.option_type.value.capitalize()} on {engine.stock.symbol} (Strike={engine.option.strike_price:.2f})"
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
