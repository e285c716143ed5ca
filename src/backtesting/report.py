"""
Backtest report generator.

Produces a standalone HTML report from ``BacktestMetrics`` including:
- Ledger summary table
- Direction breakdown (bull vs bear)
- Risk metrics
- Cumulative profit curve (inline PNG via matplotlib if available, else text table)

No external template engine required; the output is self-contained HTML.
"""

from __future__ import annotations

import base64
import html
import io
from datetime import datetime
from pathlib import Path
from typing import Optional

from src.backtesting.types import BacktestConfig, BacktestMetrics

# rows shown by the text fallback for long curves
MAX_TABLE_POINTS = 200


def _metric_row(label: str, value, fmt: str = ".4f") -> str:
    if value is None:
        return f"<tr><td>{html.escape(label)}</td><td>N/A</td></tr>"
    if isinstance(value, float):
        return f"<tr><td>{html.escape(label)}</td><td>{value:{fmt}}</td></tr>"
    return f"<tr><td>{html.escape(label)}</td><td>{html.escape(str(value))}</td></tr>"


def _try_profit_chart_base64(metrics: BacktestMetrics) -> Optional[str]:
    """Return base64-encoded PNG of the profit curve, or None."""
    if not metrics.profit_curve:
        return None
    try:
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
    except ImportError:
        return None

    fig, ax = plt.subplots(figsize=(8, 3))
    ax.plot(range(1, len(metrics.profit_curve) + 1), metrics.profit_curve, linewidth=1.2, color="#2563eb")
    ax.axhline(0.0, color="#94a3b8", linewidth=0.8)
    ax.set_ylabel("Cumulative profit")
    ax.set_xlabel("Bet")
    ax.set_title("Profit Over Bets")
    ax.grid(True, alpha=0.3)
    fig.tight_layout()

    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=100)
    plt.close(fig)
    buf.seek(0)
    return base64.b64encode(buf.read()).decode()


def _profit_text_table(metrics: BacktestMetrics) -> str:
    """Fallback HTML table for the profit curve (sampled when long)."""
    curve = metrics.profit_curve
    if not curve:
        return "<p>No bets recorded.</p>"
    step = max(1, len(curve) // MAX_TABLE_POINTS)
    indices = list(range(0, len(curve), step))
    if indices[-1] != len(curve) - 1:
        indices.append(len(curve) - 1)
    rows = [f"<tr><td>{i + 1}</td><td>{curve[i]:,.4f}</td></tr>" for i in indices]
    return (
        '<table class="tbl"><tr><th>Bet</th><th>Cumulative profit</th></tr>'
        + "\n".join(rows)
        + "</table>"
    )


def _config_rows(config: BacktestConfig) -> str:
    keys = (
        "window_capacity",
        "lookback",
        "predictor_members",
        "min_stake",
        "max_stake",
        "bull_threshold",
        "bear_threshold",
        "platform_fee",
        "workers",
        "batch_size",
    )
    values = config.to_dict()
    return "\n".join(_metric_row(key, values[key]) for key in keys)


def generate_html_report(
    metrics: BacktestMetrics,
    config: Optional[BacktestConfig] = None,
    title: str = "Round Replay Backtest",
) -> str:
    """
    Generate a self-contained HTML report string from *metrics*.

    Returns:
        HTML string (UTF-8)
    """
    m = metrics

    chart_b64 = _try_profit_chart_base64(m)
    if chart_b64:
        curve_section = (
            f'<img src="data:image/png;base64,{chart_b64}" '
            f'alt="Profit curve" style="max-width:100%"/>'
        )
    else:
        curve_section = _profit_text_table(m)

    config_section = ""
    if config is not None:
        config_section = f'<h2>Configuration</h2>\n<table class="tbl">\n{_config_rows(config)}\n</table>'

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8"/>
<title>{html.escape(title)}</title>
<style>
  body {{ font-family: system-ui, sans-serif; max-width: 900px; margin: 2rem auto; color: #1e293b; }}
  h1 {{ color: #0f172a; }}
  h2 {{ border-bottom: 2px solid #e2e8f0; padding-bottom: 0.3rem; }}
  .tbl {{ border-collapse: collapse; width: 100%; margin: 1rem 0; }}
  .tbl th, .tbl td {{ border: 1px solid #cbd5e1; padding: 0.5rem 0.75rem; text-align: left; }}
  .tbl th {{ background: #f1f5f9; }}
  .meta {{ color: #64748b; font-size: 0.9rem; }}
</style>
</head>
<body>
<h1>{html.escape(title)}</h1>
<p class="meta">
  Generated: {datetime.now().strftime("%Y-%m-%d %H:%M")} |
  Bets: {m.total_bets}
</p>

<h2>Summary</h2>
<table class="tbl">
{_metric_row("Total Bets", m.total_bets)}
{_metric_row("Wins", m.wins)}
{_metric_row("Losses", m.losses)}
{_metric_row("Win Rate", m.win_rate)}
{_metric_row("Total Staked", m.total_staked)}
{_metric_row("Total Profit", m.total_profit)}
{_metric_row("ROI %", m.roi, ".2f")}
</table>

<h2>By Direction</h2>
<table class="tbl">
{_metric_row("Bull Bets", m.bull_bets)}
{_metric_row("Bull Win Rate", m.bull_win_rate)}
{_metric_row("Bear Bets", m.bear_bets)}
{_metric_row("Bear Win Rate", m.bear_win_rate)}
</table>

<h2>Risk Metrics</h2>
<table class="tbl">
{_metric_row("Max Drawdown", m.max_drawdown)}
{_metric_row("Longest Losing Streak", m.longest_losing_streak)}
{_metric_row("Sharpe Ratio", m.sharpe_ratio)}
</table>

<h2>Profit Curve</h2>
{curve_section}

{config_section}
</body>
</html>"""


def save_report(
    metrics: BacktestMetrics,
    path: str,
    config: Optional[BacktestConfig] = None,
) -> Path:
    """Generate and save report to *path*. Returns the Path written."""
    content = generate_html_report(metrics, config=config)
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(content, encoding="utf-8")
    return out
