from __future__ import annotations

import html
from datetime import datetime, timezone
from typing import Optional

from .models import LONG, Signal


def _fmt_ms(ts_ms: int, tz=timezone.utc) -> str:
    dt = datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc).astimezone(tz)
    return dt.strftime("%Y-%m-%d %H:%M UTC")


def _escape_markdown_v2(text: str) -> str:
    specials = r"\_*[]()~`>#+-=|{}.!"
    escaped = []
    for ch in str(text):
        if ch in specials:
            escaped.append("\\" + ch)
        else:
            escaped.append(ch)
    return "".join(escaped)


def _escape_text(text: str, parse_mode: str) -> str:
    if parse_mode == "MARKDOWNV2":
        return _escape_markdown_v2(text)
    return html.escape(str(text), quote=False)


def _bold(text: str, parse_mode: str) -> str:
    escaped = _escape_text(text, parse_mode)
    if parse_mode == "MARKDOWNV2":
        return f"*{escaped}*"
    return f"<b>{escaped}</b>"


def _fmt_price(val: Optional[float]) -> str:
    if val is None:
        return "-"
    return f"{val:.8g}"


def _pct_from(entry: float, level: float) -> str:
    if not entry:
        return ""
    return f" ({(level - entry) / entry * 100.0:+.2f}%)"


def format_signal(signal: Signal, cfg, *, detail_level: Optional[str] = None) -> str:
    """Telegram text for a signal. ``internal`` detail adds the evidence chain."""
    parse_mode = (getattr(cfg, "parse_mode", "HTML") or "HTML").upper()
    chosen_detail = (detail_level or getattr(cfg, "detail_level", "public") or "public").lower()
    side = "LONG" if signal.direction == LONG else "SHORT"
    pipe = "\\|" if parse_mode == "MARKDOWNV2" else "|"

    lines = [
        f"{_bold(signal.symbol, parse_mode)}  {pipe}  {_bold(side, parse_mode)}",
        _escape_text(f"Rating: {signal.rating} • Score: {signal.score:.0f}/100", parse_mode),
        "",
        _escape_text(f"Entry: {_fmt_price(signal.entry_price)}", parse_mode),
        _escape_text(f"Stop: {_fmt_price(signal.stop_loss)}{_pct_from(signal.entry_price, signal.stop_loss)}", parse_mode),
    ]
    for i, tp in enumerate(signal.take_profits, start=1):
        lines.append(_escape_text(f"TP{i}: {_fmt_price(tp)}{_pct_from(signal.entry_price, tp)}", parse_mode))
    lines.append(_escape_text(f"RRR: 1:{signal.risk_reward:.2f} | Leverage: {signal.leverage}x", parse_mode))
    lines.append(_escape_text(f"Valid until: {_fmt_ms(signal.expires_at_ms)}", parse_mode))

    if chosen_detail != "public":
        lines.append("")
        lines.append(_escape_text(f"Position size: {signal.position_size:.6g}", parse_mode))
        source = (signal.extra or {}).get("level_source")
        if source:
            lines.append(_escape_text(f"Levels: {source}", parse_mode))
        if signal.evidence:
            lines.append(_bold("Evidence:", parse_mode))
            for chk in signal.evidence:
                mark = "+" if chk.passed else "-"
                detail = chk.detail.replace("\n", "; ")
                lines.append(_escape_text(f"{mark} {chk.name}: {detail}", parse_mode))

    footer = (getattr(cfg, "footer", "") or "").strip()
    if footer:
        lines.append("")
        lines.append(_escape_text(footer, parse_mode))

    return "\n".join(lines)


def format_scan_summary(report, *, app_name: str = "SMC Sentinel") -> str:
    reasons = report.reason_counts()
    parts = [f"{app_name}: {len(report.outcomes)} symbols scanned"]
    parts.append(f"signals={len(report.signals)} filtered={len(report.filtered)} errors={len(report.errors)}")
    if reasons:
        parts.append(" ".join(f"{k}={v}" for k, v in sorted(reasons.items())))
    return "\n".join(parts)
