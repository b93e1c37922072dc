from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from typing import cast

from simple_term_menu import TerminalMenu  # type: ignore[import-untyped]

from src.rule_backtest.config import discover_configs, load_config
from src.rule_backtest.errors import BacktestError

DIM = "\033[2m"
BOLD = "\033[1m"
GREEN = "\033[32m"
RED = "\033[31m"
RESET = "\033[0m"

USAGE = """
Usage:
  uv run main.py backtest [config.json] [--data DIR] [--seed N] [--quiet]
"""


def _ts() -> str:
    """Current wall-clock timestamp for log prefixing."""
    return f"{DIM}{datetime.now().strftime('%H:%M:%S')}{RESET}"


def _pn(value: float, fmt: str) -> str:
    """Color a numeric value green if positive, red if negative."""
    color = GREEN if value >= 0 else RED
    return f"{color}{fmt.format(value)}{RESET}"


def _pick_config() -> Path | None:
    """Interactive menu over the rule sets in configs/."""
    paths = discover_configs()
    if not paths:
        print("No rule sets found in configs/")
        return None

    options = [p.stem.replace("_", " ").title() for p in paths]
    options.append("[Exit]")
    menu = TerminalMenu(
        options,
        title="Select a rule set to backtest:",
        cycle_cursor=True,
        clear_screen=False,
    )
    choice = cast("int | None", menu.show())
    if choice is None or choice == len(options) - 1:
        print("Exiting.")
        return None
    return paths[choice]


def backtest(config_path: Path | None, data_dir: Path | None, seed: int | None, quiet: bool) -> int:
    """Run one rule set over a parquet dataset and print a summary."""
    from src.rule_backtest.engine import Engine
    from src.rule_backtest.export import write_trades_csv
    from src.rule_backtest.feeds.parquet import ParquetFeed
    from src.rule_backtest.logger import BacktestLogger
    from src.rule_backtest.progress import PinnedProgress

    if config_path is None:
        config_path = _pick_config()
        if config_path is None:
            return 0

    config = load_config(config_path)
    if seed is not None:
        config.seed = seed
    name = config_path.stem

    feed = ParquetFeed(data_dir=data_dir)
    markets = feed.markets()
    resolved = [m for m in markets if m.resolved]
    snapshots = feed.snapshots(market_ids=[m.id for m in resolved]) if resolved else []

    print(f"\n{_ts()}  Running backtest: {name}")
    print(f"{_ts()}  Rules:            {len(config.rules)} ({config.rule_mode.value})")
    if config.fallback_rule is not None:
        print(f"{_ts()}  Fallback:         {config.fallback_rule.name} at TTC <= {config.fallback_trigger_ttc:.0f}s")
    print(f"{_ts()}  Starting balance: ${config.starting_balance:,.2f}")
    print(f"{_ts()}  Data:             {len(resolved)} resolved markets, {len(snapshots):,} price snapshots\n")

    with PinnedProgress(total=len(resolved), desc=name, enabled=not quiet) as bar:
        logger = BacktestLogger(print_live=not quiet, write_fn=bar.write)
        engine = Engine(config, resolved, snapshots, feed.outcomes(), on_progress=bar.update, logger=logger)
        result = engine.run()

    s = result.stats
    balance_color = GREEN if s.final_balance >= config.starting_balance else RED

    print(f"\n{_ts()}  {BOLD}Backtest Results: {name}{RESET}")
    print(f"{_ts()}  Markets replayed: {result.markets_processed}")
    print(f"{_ts()}  Final balance:    {balance_color}${s.final_balance:,.2f}{RESET}")
    print(f"{_ts()}  Settled trades:   {s.total_trades} ({s.wins} W / {s.losses} L)")
    print()

    print(f"{_ts()}  {BOLD}Performance:{RESET}")
    print(f"{_ts()}    Total P&L:      {_pn(s.total_pnl, '${:,.2f}')} ({_pn(s.total_pnl_pct, '{:.2%}')})")
    print(f"{_ts()}    Sharpe ratio:   {_pn(s.sharpe_ratio, '{:.3f}')}")
    print(f"{_ts()}    Max drawdown:   {RED}${s.max_drawdown:,.2f} ({s.max_drawdown_pct:.2%}){RESET}")
    print()

    print(f"{_ts()}  {BOLD}Trading:{RESET}")
    wr_color = GREEN if s.win_rate >= 0.5 else RED
    print(f"{_ts()}    Win rate:       {wr_color}{s.win_rate:.2%}{RESET}")
    print(f"{_ts()}    Profit factor:  {GREEN if s.profit_factor >= 1 else RED}{s.profit_factor:.3f}{RESET}")
    print(f"{_ts()}    Avg win:        {_pn(s.avg_win, '${:.4f}')}")
    print(f"{_ts()}    Avg loss:       {RED}${s.avg_loss:.4f}{RESET}")
    print(f"{_ts()}    Fees:           ${s.total_fees:.2f}\n")

    output_dir = Path("output")
    output_dir.mkdir(parents=True, exist_ok=True)
    log_path = output_dir / f"backtest_{name}.log"
    log_path.write_text("\n".join(result.event_log) + "\n")
    print(f"{_ts()}  Event log: {log_path} ({len(result.event_log)} events)")
    csv_path = write_trades_csv(result, output_dir / f"backtest_{name}_trades.csv")
    print(f"{_ts()}  Trades:    {csv_path} ({len(result.trades)} rows)\n")
    return 0


def _parse_backtest_args(args: list[str]) -> tuple[Path | None, Path | None, int | None, bool]:
    config_path: Path | None = None
    data_dir: Path | None = None
    seed: int | None = None
    quiet = False

    it = iter(args)
    for arg in it:
        if arg == "--quiet":
            quiet = True
        elif arg == "--data":
            data_dir = Path(next(it, ""))
        elif arg == "--seed":
            raw = next(it, "")
            if not raw.lstrip("-").isdigit():
                print(f"--seed expects an integer, got '{raw}'")
                sys.exit(2)
            seed = int(raw)
        elif config_path is None and not arg.startswith("--"):
            config_path = Path(arg)
        else:
            print(f"Unknown argument: {arg}")
            print(USAGE)
            sys.exit(2)
    return config_path, data_dir, seed, quiet


def main():
    if len(sys.argv) < 2:
        print(USAGE)
        sys.exit(0)

    command = sys.argv[1]

    if command == "backtest":
        try:
            sys.exit(backtest(*_parse_backtest_args(sys.argv[2:])))
        except BacktestError as exc:
            print(f"\n{_ts()}  {RED}Backtest failed: {exc}{RESET}")
            sys.exit(1)

    print(f"Unknown command: {command}")
    print(USAGE)
    sys.exit(1)


if __name__ == "__main__":
    main()
