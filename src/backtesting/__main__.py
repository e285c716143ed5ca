"""Entry point for: python -m src.backtesting"""

import argparse
import sys


def _config(args):
    from src.backtesting.types import BacktestConfig
    from src.core.config import settings

    overrides = {}
    if getattr(args, "workers", None) is not None:
        overrides["workers"] = args.workers
    if getattr(args, "batch_size", None) is not None:
        overrides["batch_size"] = args.batch_size
    return BacktestConfig.from_settings(settings, **overrides)


def _ledger(config):
    from src.backtesting.ledger import SqlBetLedger
    from src.core.db import create_db_engine

    return SqlBetLedger(create_db_engine(config.ledger_database_url), deduplicate=config.deduplicate_summary)


def cmd_run(args) -> int:
    from src.backtesting.checkpoint_store import SqlCheckpointStore
    from src.backtesting.coordinator import BacktestCoordinator
    from src.backtesting.round_source import SqlRoundSource
    from src.core.db import create_db_engine, init_rounds_schema

    config = _config(args)
    rounds_engine = create_db_engine(config.rounds_database_url)
    init_rounds_schema(rounds_engine)
    ledger = _ledger(config)

    coordinator = BacktestCoordinator(
        config,
        round_source=SqlRoundSource(rounds_engine),
        checkpoint_store=SqlCheckpointStore(ledger.engine),
        ledger=ledger,
    )
    result = coordinator.run()

    s = result.summary
    print(f"Rounds: {result.total_rounds} ({'resumed' if result.resumed else 'fresh run'})")
    print(f"  Total bets: {s.total_bets}")
    print(f"  Wins: {s.wins}  Losses: {s.losses}  Win rate: {s.win_rate:.2%}")
    print(f"  Total profit: {s.total_profit:.4f}")
    if result.failed:
        print(f"  Failed workers: {result.failed} (run again to resume)")
        return 1
    return 0


def cmd_import(args) -> int:
    from src.backtesting.round_source import import_rounds, load_rounds_json
    from src.core.db import create_db_engine

    config = _config(args)
    rounds = load_rounds_json(args.path)
    inserted = import_rounds(create_db_engine(config.rounds_database_url), rounds)
    print(f"Imported {inserted} of {len(rounds)} rounds from {args.path}")
    return 0


def cmd_summary(args) -> int:
    s = _ledger(_config(args)).summary()
    print(f"Total bets: {s.total_bets}")
    print(f"Wins: {s.wins}  Losses: {s.losses}  Win rate: {s.win_rate:.2%}")
    print(f"Total profit: {s.total_profit:.4f}")
    return 0


def cmd_clear(args) -> int:
    from src.backtesting.checkpoint_store import SqlCheckpointStore

    ledger = _ledger(_config(args))
    removed = ledger.clear()
    SqlCheckpointStore(ledger.engine).clear()
    print(f"Removed {removed} bets and all checkpoints")
    return 0


def cmd_report(args) -> int:
    from src.backtesting.metrics import calculate_metrics
    from src.backtesting.report import save_report

    config = _config(args)
    metrics = calculate_metrics(_ledger(config).records())
    path = save_report(metrics, args.output, config=config)
    print(f"Report saved: {path}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Replay historical prediction rounds")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run (or resume) the backtest")
    run.add_argument("--workers", type=int, default=None, help="Worker processes (default: cpu_count - 1)")
    run.add_argument("--batch-size", type=int, default=None, help="Rounds fetched per batch")
    run.set_defaults(func=cmd_run)

    imp = sub.add_parser("import", help="Import rounds from a JSON export")
    imp.add_argument("path", help="Path to the JSON export")
    imp.set_defaults(func=cmd_import)

    summary = sub.add_parser("summary", help="Print the ledger summary")
    summary.set_defaults(func=cmd_summary)

    clear = sub.add_parser("clear", help="Delete all bets and checkpoints")
    clear.set_defaults(func=cmd_clear)

    report = sub.add_parser("report", help="Write an HTML report of the ledger")
    report.add_argument("--output", default="backtest_results/report.html", help="Report path")
    report.set_defaults(func=cmd_report)

    args = parser.parse_args(argv)

    from src.core.config import settings
    from src.core.log import configure_logging

    configure_logging(settings.LOG_LEVEL)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
