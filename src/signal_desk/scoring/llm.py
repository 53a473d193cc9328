"""AI-backed scorer — OpenAI-compatible chat completions over httpx."""

from __future__ import annotations

import json
import re
from typing import Any

import httpx
import structlog

from signal_desk.config.schema import ScorerConfig
from signal_desk.errors import ProposalValidationError
from signal_desk.models.market import IndicatorSnapshot
from signal_desk.models.prediction import PerformanceSummary
from signal_desk.models.signal import SignalProposal
from signal_desk.scoring.base import parse_proposal

log = structlog.get_logger("llm_scorer")

SYSTEM_PROMPT = (
    "You are an expert crypto trading signal generator that learns from past performance. "
    "You provide precise entry, stop loss, and three take profit levels. "
    "You MUST respond with valid JSON only, no additional text."
)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def _rsi_status(rsi: float) -> str:
    if rsi >= 70:
        return "(OVERBOUGHT)"
    if rsi <= 30:
        return "(OVERSOLD)"
    return "(NEUTRAL)"


def _numbered(items: list[str], empty: str) -> str:
    if not items:
        return empty
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, start=1))


def build_prompt(snapshot: IndicatorSnapshot, summary: PerformanceSummary, capital: float) -> str:
    dominance = (
        f"- BTC Dominance: {snapshot.btc_dominance:.2f}%\n"
        if snapshot.btc_dominance is not None
        else ""
    )
    return f"""Generate a trading signal for {snapshot.coin}.

CURRENT MARKET DATA:
- Price: ${snapshot.current_price}
- 24h Change: {snapshot.price_change_24h:.2f}%
- RSI: {snapshot.rsi:.2f} {_rsi_status(snapshot.rsi)}
- MACD: {snapshot.macd:.4f} (Signal: {snapshot.macd_signal:.4f}, Histogram: {snapshot.macd_histogram:.4f})
- Bollinger Bands: Upper ${snapshot.bollinger.upper:.2f}, Middle ${snapshot.bollinger.middle:.2f}, Lower ${snapshot.bollinger.lower:.2f}
- Support: ${snapshot.support:.2f}
- Resistance: ${snapshot.resistance:.2f}
- Volume: ${snapshot.volume:,.0f} (Trend: {snapshot.volume_trend}, Ratio: {snapshot.volume_ratio:.2f}x)
{dominance}
CAPITAL ALLOCATION:
- Available Capital: ${capital:.2f}
- Max Risk per Trade: 2% (${capital * 0.02:.2f})

YOUR HISTORICAL PERFORMANCE ({summary.horizon.value} horizon):
- Total Predictions: {summary.total_predictions}
- Win Rate: {summary.win_rate:.1f}% ({summary.correct_predictions}/{summary.total_predictions})
- Average Profit: {summary.avg_profit:.2f}%
- Average Loss: {summary.avg_loss:.2f}%
- Profit Factor: {summary.profit_factor:.2f}
- Recent Trend: {summary.recent_trend}

YOUR COMMON MISTAKES:
{_numbered(summary.common_mistakes, "No significant mistakes recorded yet")}

CONDITIONS WHERE YOU PERFORM BEST:
{_numbered(summary.best_conditions, "Building performance history...")}

RULES:
1. If current conditions match your past mistakes, be MORE CONSERVATIVE (lower confidence, or HOLD)
2. If conditions match your best performance scenarios, you can be MORE CONFIDENT
3. For BUY: stop loss BELOW entry, TP1 < TP2 < TP3 ABOVE entry
4. For SELL: stop loss ABOVE entry, TP1 > TP2 > TP3 BELOW entry
5. TP1 conservative (~1-2% move), TP2 moderate (~3-5%), TP3 aggressive (~7-10%)

RESPOND IN THIS EXACT JSON FORMAT:
{{
  "action": "BUY" | "SELL" | "HOLD",
  "confidence": 0-100,
  "timeframe": "15m" | "1h" | "4h" | "24h",
  "entryPrice": {snapshot.current_price},
  "stopLoss": number,
  "takeProfit1": number,
  "takeProfit2": number,
  "takeProfit3": number,
  "riskPercentage": 2,
  "riskLevel": "LOW" | "MEDIUM" | "HIGH",
  "reasoning": "Brief explanation",
  "keyFactors": ["factor1", "factor2", "factor3"]
}}"""


def extract_json(content: str) -> dict[str, Any]:
    """Parse a JSON object, tolerating text around it."""
    if not isinstance(content, str):
        raise ProposalValidationError("Empty scorer response")
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(content)
        if match is None:
            raise ProposalValidationError("No JSON object in scorer response") from None
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            raise ProposalValidationError("Invalid JSON in scorer response") from exc


class LLMScorer:
    """Asks a chat-completions model for a proposal."""

    name = "llm"

    def __init__(self, config: ScorerConfig) -> None:
        if not config.api_key:
            raise ValueError("LLMScorer requires an API key")
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self._http: httpx.AsyncClient | None = None

    async def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self.config.timeout_s)
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    async def propose(
        self,
        snapshot: IndicatorSnapshot,
        summary: PerformanceSummary,
        capital: float,
    ) -> SignalProposal:
        http = await self._get_http()
        resp = await http.post(
            f"{self.base_url}/chat/completions",
            headers={"Authorization": f"Bearer {self.config.api_key}"},
            json={
                "model": self.config.model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(snapshot, summary, capital)},
                ],
                "temperature": self.config.temperature,
                "max_tokens": self.config.max_tokens,
                "response_format": {"type": "json_object"},
            },
        )
        resp.raise_for_status()
        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ProposalValidationError("Unexpected chat completion payload") from exc

        proposal = parse_proposal(extract_json(content), snapshot)
        log.info(
            "llm_proposal",
            coin=snapshot.coin,
            action=proposal.action,
            confidence=proposal.confidence,
        )
        return proposal
