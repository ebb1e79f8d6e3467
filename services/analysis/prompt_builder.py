# services/analysis/prompt_builder.py
"""
Prompt construction for AI portfolio analysis.

Pure and deterministic: the same PortfolioData always yields the same prompt.
The prompt carries the computed concentration / diversification / performance
metrics so the model reasons over numbers we trust instead of re-deriving
them, plus a strict JSON contract that parsing.validate_response enforces.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from schemas.ai_analysis import InvestmentStrategyData, PortfolioData, Position


@dataclass(frozen=True)
class ConcentrationMetrics:
    top_position: float
    top3_positions: float
    top5_positions: float


@dataclass(frozen=True)
class DiversificationMetrics:
    number_of_positions: int
    # Herfindahl index over portfolio weights; lower = better diversified
    herfindahl_index: float


@dataclass(frozen=True)
class PerformanceMetrics:
    total_profit_loss: float
    total_profit_loss_percentage: float
    winners_count: int
    losers_count: int


@dataclass(frozen=True)
class PortfolioMetrics:
    concentration: ConcentrationMetrics
    diversification: DiversificationMetrics
    performance: PerformanceMetrics


# ─── Lookup tables ───────────────────────────────────────────────

RISK_LEVEL_DESCRIPTIONS: Dict[str, str] = {
    "LOW": "Conservative: capital preservation, steady returns, minimal volatility",
    "MEDIUM": "Balanced: growth with moderate risk, diversified approach",
    "HIGH": "Aggressive: maximum growth potential, accepts high volatility",
}

TIME_HORIZON_DESCRIPTIONS: Dict[str, str] = {
    "SHORT_TERM": "< 3 years: liquidity needed soon, low tolerance for drawdowns",
    "MEDIUM_TERM": "3-10 years: wealth building, focus on sustainable growth",
    "LONG_TERM": "10+ years: retirement or long-range goals, can ride out volatility",
}

STRATEGY_GUIDANCE: Dict[Tuple[str, str], str] = {
    ("LOW", "SHORT_TERM"): (
        "Prioritise capital preservation and liquidity. Trim volatile or speculative positions, "
        "favour short-duration, dividend-paying and defensive names."
    ),
    ("LOW", "MEDIUM_TERM"): (
        "Favour stable dividend payers and quality blue chips. Avoid speculative positions; "
        "keep any single holding well below a quarter of the portfolio."
    ),
    ("LOW", "LONG_TERM"): (
        "Compounding with low volatility: broad quality exposure and dividend growers. "
        "Reduce concentration rather than chase upside."
    ),
    ("MEDIUM", "SHORT_TERM"): (
        "Balance modest growth against near-term liquidity needs. Lock in gains on stretched "
        "positions and avoid adding high-beta names."
    ),
    ("MEDIUM", "MEDIUM_TERM"): (
        "Mix stable blue chips with quality growth companies. Aim for moderate diversification "
        "across sectors; rebalance positions that drift far above target."
    ),
    ("MEDIUM", "LONG_TERM"): (
        "Growth-tilted core with a stable base. Volatility is acceptable for quality growth; "
        "consider undervalued opportunities that fit the goals."
    ),
    ("HIGH", "SHORT_TERM"): (
        "Growth opportunities are acceptable but the horizon is short: size positions so a "
        "large drawdown cannot derail the near-term need for cash."
    ),
    ("HIGH", "MEDIUM_TERM"): (
        "Pursue growth opportunities and accept some concentration in high-conviction names, "
        "while cutting clear laggards without a thesis."
    ),
    ("HIGH", "LONG_TERM"): (
        "Maximum growth orientation: concentration in compelling long-term themes is acceptable, "
        "volatility can be tolerated, and undervalued opportunities are welcome."
    ),
}

DIVERSIFICATION_BUCKETS: Sequence[Tuple[float, str]] = (
    (0.25, "Poor (high concentration risk)"),
    (0.15, "Fair (moderate concentration)"),
    (0.10, "Good (well diversified)"),
)
DIVERSIFICATION_BEST = "Excellent (highly diversified)"


def diversification_label(herfindahl_index: float) -> str:
    for threshold, label in DIVERSIFICATION_BUCKETS:
        if herfindahl_index > threshold:
            return label
    return DIVERSIFICATION_BEST


def strategy_guidance(risk_level: str, time_horizon: str) -> str:
    return STRATEGY_GUIDANCE.get((risk_level, time_horizon), "")


# ─── Builder ─────────────────────────────────────────────────────


class PromptBuilder:
    """Builds the analysis prompt. All methods are static; no state."""

    @staticmethod
    def build(portfolio: PortfolioData) -> str:
        metrics = PromptBuilder.calculate_metrics(portfolio)
        sections = [
            PromptBuilder._system_instructions(),
            PromptBuilder._portfolio_context(portfolio, metrics),
            PromptBuilder._analysis_requirements(portfolio.strategy),
            PromptBuilder._output_format(),
        ]
        return "\n\n".join(s.strip() for s in sections) + "\n"

    @staticmethod
    def calculate_metrics(portfolio: PortfolioData) -> PortfolioMetrics:
        positions = portfolio.positions
        by_value = sorted(positions, key=lambda p: p.total_value, reverse=True)

        def top(n: int) -> float:
            return sum(p.percentage_of_portfolio for p in by_value[:n])

        hhi = sum((p.percentage_of_portfolio / 100.0) ** 2 for p in positions)

        total_pl = sum(p.profit_loss for p in positions)
        cost_basis = portfolio.total_value - total_pl
        total_pl_pct = (total_pl / cost_basis * 100.0) if portfolio.total_value > 0 and cost_basis > 0 else 0.0

        return PortfolioMetrics(
            concentration=ConcentrationMetrics(
                top_position=top(1),
                top3_positions=top(3),
                top5_positions=top(5),
            ),
            diversification=DiversificationMetrics(
                number_of_positions=len(positions),
                herfindahl_index=hhi,
            ),
            performance=PerformanceMetrics(
                total_profit_loss=total_pl,
                total_profit_loss_percentage=total_pl_pct,
                winners_count=sum(1 for p in positions if p.profit_loss > 0),
                losers_count=sum(1 for p in positions if p.profit_loss < 0),
            ),
        )

    # ---- sections ----

    @staticmethod
    def _system_instructions() -> str:
        return """
# ROLE
You are an expert financial advisor specialising in investment portfolio analysis and strategy optimisation. Your goal is to deliver concrete, data-driven recommendations that help the investor reach their financial goals with appropriate risk management.

# CORE PRINCIPLES
1. **Risk awareness**: always account for the investor's risk tolerance and time horizon
2. **Evidence based**: ground every recommendation in the portfolio metrics, market fundamentals and the investor's goals
3. **Concrete actions**: give SPECIFIC, executable recommendations with clear reasoning (e.g. "SELL the entire ABC position")
4. **Balanced**: weigh opportunities and risks; avoid extreme optimism or pessimism
5. **Educational**: help the investor understand why each recommendation is made

# ANALYSIS FRAMEWORK
- Assess portfolio composition and diversification
- Identify concentration risk and exposures
- Check alignment with the investment strategy
- Find optimisation opportunities
- Give prioritised, SPECIFIC actions (BUY / SELL / INCREASE / REDUCE / HOLD)

**HARD REQUIREMENTS**
- EVERY recommendation MUST refer to a SPECIFIC ticker symbol
- EVERY recommendation MUST carry exactly one action: BUY, SELL, HOLD, REDUCE or INCREASE
- Generic statements such as "consider diversifying" without a ticker are FORBIDDEN
- If you suggest buying, you MUST name the ticker to buy
"""

    @staticmethod
    def _portfolio_context(portfolio: PortfolioData, metrics: PortfolioMetrics) -> str:
        s = portfolio.strategy
        c, d, p = metrics.concentration, metrics.diversification, metrics.performance

        return f"""
# PORTFOLIO OVERVIEW

## Investor Profile
- **Total Portfolio Value**: ${portfolio.total_value:.2f}
- **Number of Positions**: {d.number_of_positions}
- **Investment Strategy**: {PromptBuilder._format_strategy(s)}

## Risk Profile
- **Risk Tolerance**: {s.risk_level} ({RISK_LEVEL_DESCRIPTIONS.get(s.risk_level, '')})
- **Time Horizon**: {s.time_horizon} ({TIME_HORIZON_DESCRIPTIONS.get(s.time_horizon, '')})
- **Investment Goals**: {s.investment_goals or 'not specified'}
{PromptBuilder._sector_preferences(s)}
## Portfolio Metrics

### Concentration Risk
- **Largest Position**: {c.top_position:.1f}% of portfolio
- **Top 3 Positions**: {c.top3_positions:.1f}% of portfolio
- **Top 5 Positions**: {c.top5_positions:.1f}% of portfolio
- **Diversification Index (HHI)**: {d.herfindahl_index:.4f} - {diversification_label(d.herfindahl_index)}

### Performance
- **Total P&L**: {_signed_money(p.total_profit_loss)} ({p.total_profit_loss_percentage:+.2f}%)
- **Winning Positions**: {p.winners_count}
- **Losing Positions**: {p.losers_count}

## Current Positions

{PromptBuilder._positions_table(portfolio.positions)}

{PromptBuilder._detailed_positions(portfolio.positions)}
"""

    @staticmethod
    def _analysis_requirements(s: InvestmentStrategyData) -> str:
        return f"""
# ANALYSIS REQUIREMENTS

## Key Questions
1. **Diversification**: is the portfolio adequately diversified for the stated risk level?
2. **Concentration**: are there worrying concentration risks?
3. **Strategy fit**: do current positions match the strategy and goals?
4. **Risk management**: is the portfolio positioned for the investor's risk tolerance?
5. **Optimisation**: which changes would improve the risk/return balance?

## Strategy Guidance ({s.risk_level} risk, {s.time_horizon})
{strategy_guidance(s.risk_level, s.time_horizon)}
- Investment goals: consider how each recommendation supports "{s.investment_goals or 'not specified'}"

## Recommendation Priorities
1. **CRITICAL**: remove significant risks or misalignments (SELL / REDUCE with specific tickers)
2. **IMPORTANT**: improve diversification and strategy fit (BUY / INCREASE with specific tickers)
3. **OPTIMISATION**: fine-tune allocations (HOLD with guidance)

## Confidence Levels
- **HIGH**: strong evidence from portfolio metrics and a clear mismatch with the strategy
- **MEDIUM**: reasonable evidence, but depends on market conditions or other factors
- **LOW**: general best-practice suggestion; needs the investor's judgement

## EXAMPLES OF VALID RECOMMENDATIONS
✅ {{"ticker": "AAPL", "action": "SELL", "reasoning": "The position is 40% of the portfolio, creating excessive concentration risk...", "confidence": "HIGH"}}
✅ {{"ticker": "MSFT", "action": "BUY", "reasoning": "No exposure to large-cap software. Microsoft offers stable growth...", "confidence": "MEDIUM"}}
✅ {{"ticker": "GOOGL", "action": "REDUCE", "reasoning": "Cut the position from 25% to 15% to improve diversification...", "confidence": "HIGH", "currentAllocation": 25.0, "targetAllocation": 15.0}}

## EXAMPLES OF INVALID RECOMMENDATIONS (FORBIDDEN)
❌ {{"ticker": "DIVERSIFY", "action": "BUY", ...}} - "DIVERSIFY" is not a ticker
❌ {{"ticker": "N/A", "action": "HOLD", ...}} - a real ticker is mandatory
❌ {{"ticker": "TSLA", "action": "TRIM", ...}} - "TRIM" is not an allowed action
❌ Reasoning: "Consider more technology exposure" - without a concrete ticker this is FORBIDDEN
"""

    @staticmethod
    def _output_format() -> str:
        return """
# RESPONSE FORMAT

Respond ONLY with a JSON object (no extra text, no markdown fences):

{
  "summary": "3-5 sentence overview: portfolio state, main strengths, main concerns and the overall direction of the recommendations.",
  "recommendations": [
    {
      "ticker": "AAPL",
      "action": "SELL",
      "reasoning": "2-4 sentences: why this action, how it fits the strategy, which problem it solves or which opportunity it captures.",
      "confidence": "HIGH",
      "targetAllocation": null,
      "currentAllocation": 40.0
    }
  ]
}

## Field Rules
- "summary": non-empty string
- "recommendations": array (may be empty only if no action is warranted)
- "ticker": non-empty exchange ticker symbol; never "N/A", "DIVERSIFY", "PORTFOLIO", "GENERAL"
- "action": exactly one of BUY, SELL, HOLD, REDUCE, INCREASE
- "reasoning": non-empty string
- "confidence": exactly one of LOW, MEDIUM, HIGH
- "targetAllocation" / "currentAllocation": percentage numbers or null

## Action Definitions (always for a specific company)
- **BUY**: open a new position (ticker not currently held)
- **SELL**: exit the ENTIRE position because of misalignment or risk
- **HOLD**: keep the current position; it fits well
- **REDUCE**: shrink an over-concentrated position; give the target allocation
- **INCREASE**: add to an existing position; give the target allocation

## Notes
- Give 3-8 recommendations, most important first
- Balance risk management with opportunity
- Account for transaction costs; avoid churning well-performing, properly sized positions

**Return ONLY the JSON object.**
"""

    # ---- helpers ----

    @staticmethod
    def _format_strategy(s: InvestmentStrategyData) -> str:
        risk = s.risk_level.lower().replace("_", " ")
        horizon = s.time_horizon.lower().replace("_", " ")
        return f"{risk} risk, {horizon} horizon"

    @staticmethod
    def _sector_preferences(s: InvestmentStrategyData) -> str:
        lines: List[str] = []
        if s.preferred_sectors:
            lines.append(f"- **Preferred Sectors**: {', '.join(s.preferred_sectors)}")
        if s.avoided_sectors:
            lines.append(f"- **Avoided Sectors**: {', '.join(s.avoided_sectors)}")
        return ("\n".join(lines) + "\n") if lines else ""

    @staticmethod
    def _by_share(positions: Sequence[Position]) -> List[Position]:
        return sorted(positions, key=lambda p: p.percentage_of_portfolio, reverse=True)

    @staticmethod
    def _positions_table(positions: Sequence[Position]) -> str:
        if not positions:
            return "_No open positions._"

        header = (
            "| Ticker   | Value        | % Port. | P&L          | P&L %    |\n"
            "|----------|--------------|---------|--------------|----------|"
        )
        rows = [
            f"| {p.ticker:<8} | ${p.total_value:>12.2f} | {p.percentage_of_portfolio:>6.1f}% "
            f"| {_signed_money(p.profit_loss):>12} | {p.profit_loss_percentage:>+7.1f}% |"
            for p in PromptBuilder._by_share(positions)
        ]
        return header + "\n" + "\n".join(rows)

    @staticmethod
    def _detailed_positions(positions: Sequence[Position]) -> str:
        blocks = []
        for p in PromptBuilder._by_share(positions):
            status = "📈 Winning position" if p.profit_loss >= 0 else "📉 Losing position"
            blocks.append(
                f"### {p.ticker} ({p.percentage_of_portfolio:.1f}% of portfolio)\n"
                f"- **Position Size**: {p.quantity:g} shares @ ${p.average_price:.2f} avg.\n"
                f"- **Current Value**: ${p.total_value:.2f} (current price: ${p.current_price:.2f})\n"
                f"- **Result**: {status} - {_signed_money(p.profit_loss)} ({p.profit_loss_percentage:+.2f}%)"
            )
        return "\n\n".join(blocks)


def _signed_money(x: float) -> str:
    return f"+${x:.2f}" if x >= 0 else f"-${abs(x):.2f}"
