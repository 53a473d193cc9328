"""Telegram Bot API sink — HTML messages per event kind."""

from __future__ import annotations

import html

import httpx
import structlog

from signal_desk.notify.events import NotificationEvent

log = structlog.get_logger("telegram")


def _price(value) -> str:
    return f"${value:,.4f}" if isinstance(value, (int, float)) else "n/a"


def _signal_created(e: NotificationEvent) -> str:
    p = e.payload
    tps = p.get("take_profits") or []
    lines = [
        f"<b>NEW SIGNAL: {e.coin} {p.get('action', '')}</b>",
        "",
        f"Entry: {_price(p.get('entry_price'))}",
        f"Stop Loss: {_price(p.get('stop_loss'))}",
    ]
    lines += [f"TP{i}: {_price(tp)}" for i, tp in enumerate(tps, start=1)]
    lines += [
        f"Confidence: {p.get('confidence', 0):.0f}%",
        f"R:R: {p.get('risk_reward_ratio', 0):.2f}",
        f"Quality: {p.get('quality_rating', 'n/a')} ({p.get('quality_score', 0)}/100)",
        "",
        f"ID: {e.signal_id}",
    ]
    return "\n".join(lines)


def _tp_hit(e: NotificationEvent) -> str:
    p = e.payload
    return "\n".join([
        f"<b>TP{e.level} HIT: {e.coin} {p.get('action', '')}</b>",
        "",
        f"Entry: {_price(p.get('entry_price'))}",
        f"Price: {_price(p.get('price'))}",
        f"P&amp;L: ${p.get('pnl_usd', 0):,.2f} ({p.get('pnl_percentage', 0):+.2f}%)",
        f"Status: {p.get('status', '')}",
        "",
        f"ID: {e.signal_id}",
    ])


def _sl_hit(e: NotificationEvent) -> str:
    p = e.payload
    return "\n".join([
        f"<b>STOP LOSS HIT: {e.coin} {p.get('action', '')}</b>",
        "",
        f"Entry: {_price(p.get('entry_price'))}",
        f"Stop: {_price(p.get('stop_loss'))}",
        f"Price: {_price(p.get('price'))}",
        f"P&amp;L: ${p.get('pnl_usd', 0):,.2f} ({p.get('pnl_percentage', 0):+.2f}%)",
        "",
        f"ID: {e.signal_id}",
    ])


def _job_summary(e: NotificationEvent) -> str:
    p = dict(e.payload)
    job = p.pop("job", "job")
    lines = [f"<b>JOB SUMMARY: {html.escape(str(job))}</b>", ""]
    lines += [f"{html.escape(str(k))}: {html.escape(str(v))}" for k, v in p.items()]
    return "\n".join(lines)


def _job_error(e: NotificationEvent) -> str:
    p = e.payload
    return "\n".join([
        f"<b>JOB FAILED: {html.escape(str(p.get('job', 'job')))}</b>",
        "",
        html.escape(str(p.get("error", "unknown error"))),
    ])


def _daily_summary(e: NotificationEvent) -> str:
    p = e.payload
    return "\n".join([
        f"<b>DAILY SUMMARY {p.get('date', '')}</b>",
        "",
        f"Capital: ${p.get('current_capital', 0):,.2f} (start ${p.get('starting_capital', 0):,.2f})",
        f"Net profit: ${p.get('net_profit', 0):,.2f}",
        f"Trades: {p.get('total_trades', 0)} "
        f"(W {p.get('winning_trades', 0)} / L {p.get('losing_trades', 0)})",
        f"Win rate: {p.get('win_rate', 0):.1f}%",
        f"Profit factor: {p.get('profit_factor', 0):.2f}",
        f"Active positions: {p.get('active_positions', 0)}",
    ])


_FORMATTERS = {
    "signal_created": _signal_created,
    "tp_hit": _tp_hit,
    "sl_hit": _sl_hit,
    "job_summary": _job_summary,
    "job_error": _job_error,
    "daily_summary": _daily_summary,
}


def format_message(event: NotificationEvent) -> str:
    return _FORMATTERS[event.kind](event)


class TelegramSink:
    """Sends each event as one ``sendMessage`` call.  Raises on delivery failure."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        api_url: str = "https://api.telegram.org",
        timeout_s: float = 10.0,
    ):
        self.chat_id = chat_id
        self.url = f"{api_url.rstrip('/')}/bot{bot_token}/sendMessage"
        self.timeout_s = timeout_s
        self._http: httpx.AsyncClient | None = None

    async def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self.timeout_s)
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    async def notify(self, event: NotificationEvent) -> None:
        http = await self._get_http()
        resp = await http.post(
            self.url,
            json={
                "chat_id": self.chat_id,
                "text": format_message(event),
                "parse_mode": "HTML",
            },
        )
        resp.raise_for_status()
        log.debug("telegram_sent", kind=event.kind, signal_id=event.signal_id)
