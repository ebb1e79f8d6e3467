import os
import unittest

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from schemas.ai_analysis import InvestmentStrategyData, PortfolioData, Position
from services.analysis.prompt_builder import (
    PromptBuilder,
    diversification_label,
    strategy_guidance,
)
from tests.support import sample_portfolio


class TestPortfolioMetrics(unittest.TestCase):
    def test_concentration_uses_largest_positions(self):
        m = PromptBuilder.calculate_metrics(sample_portfolio())
        self.assertAlmostEqual(m.concentration.top_position, 60.0)
        self.assertAlmostEqual(m.concentration.top3_positions, 100.0)
        self.assertAlmostEqual(m.concentration.top5_positions, 100.0)

    def test_herfindahl_index(self):
        m = PromptBuilder.calculate_metrics(sample_portfolio())
        # 0.6^2 + 0.3^2 + 0.1^2
        self.assertAlmostEqual(m.diversification.herfindahl_index, 0.46)
        self.assertEqual(m.diversification.number_of_positions, 3)

    def test_performance_counts_and_total_percentage(self):
        m = PromptBuilder.calculate_metrics(sample_portfolio())
        self.assertAlmostEqual(m.performance.total_profit_loss, 2_500.0)
        # 2500 / (10000 - 2500)
        self.assertAlmostEqual(m.performance.total_profit_loss_percentage, 2_500.0 / 7_500.0 * 100.0)
        self.assertEqual(m.performance.winners_count, 1)
        self.assertEqual(m.performance.losers_count, 1)

    def test_three_position_example(self):
        def pos(ticker, pct, pl):
            return Position(
                ticker=ticker, quantity=1, average_price=1.0, current_price=1.0,
                total_value=pct * 100.0, percentage_of_portfolio=pct, profit_loss=pl,
            )

        p = PortfolioData(
            user_id=1,
            total_value=10_000.0,
            positions=[pos("GOOGL", 10.4, -50.0), pos("AAPL", 18.0, 200.0), pos("MSFT", 16.0, 100.0)],
            strategy=InvestmentStrategyData(risk_level="MEDIUM", time_horizon="MEDIUM_TERM"),
        )
        m = PromptBuilder.calculate_metrics(p)
        self.assertAlmostEqual(m.diversification.herfindahl_index, 0.18 ** 2 + 0.16 ** 2 + 0.104 ** 2)
        self.assertTrue(diversification_label(m.diversification.herfindahl_index).startswith("Excellent"))
        self.assertAlmostEqual(m.concentration.top_position, 18.0)
        self.assertAlmostEqual(m.concentration.top3_positions, 44.4)
        self.assertEqual(m.performance.winners_count, 2)
        self.assertEqual(m.performance.losers_count, 1)

    def test_empty_portfolio_has_zero_metrics(self):
        p = PortfolioData(
            user_id=1,
            total_value=0.0,
            positions=[],
            strategy=InvestmentStrategyData(risk_level="LOW", time_horizon="SHORT_TERM"),
        )
        m = PromptBuilder.calculate_metrics(p)
        self.assertEqual(m.concentration.top_position, 0.0)
        self.assertEqual(m.diversification.herfindahl_index, 0.0)
        self.assertEqual(m.performance.total_profit_loss_percentage, 0.0)


class TestDiversificationLabel(unittest.TestCase):
    def test_buckets(self):
        self.assertTrue(diversification_label(0.30).startswith("Poor"))
        self.assertTrue(diversification_label(0.20).startswith("Fair"))
        self.assertTrue(diversification_label(0.12).startswith("Good"))
        self.assertTrue(diversification_label(0.05).startswith("Excellent"))

    def test_boundaries_fall_into_better_bucket(self):
        self.assertTrue(diversification_label(0.25).startswith("Fair"))
        self.assertTrue(diversification_label(0.10).startswith("Excellent"))


class TestPromptBuilder(unittest.TestCase):
    def test_build_is_deterministic(self):
        p = sample_portfolio()
        self.assertEqual(PromptBuilder.build(p), PromptBuilder.build(p))

    def test_prompt_contains_portfolio_and_contract(self):
        prompt = PromptBuilder.build(sample_portfolio())
        self.assertIn("$10000.00", prompt)
        self.assertIn("AAPL", prompt)
        self.assertIn("Retirement savings", prompt)
        self.assertIn("0.4600", prompt)
        for action in ("BUY", "SELL", "HOLD", "REDUCE", "INCREASE"):
            self.assertIn(action, prompt)
        self.assertIn('"recommendations"', prompt)

    def test_positions_are_listed_by_share(self):
        prompt = PromptBuilder.build(sample_portfolio())
        detail = prompt[prompt.index("### AAPL"):]
        self.assertLess(detail.index("### AAPL"), detail.index("### MSFT"))
        self.assertLess(detail.index("### MSFT"), detail.index("### KO"))

    def test_strategy_guidance_is_included(self):
        strategy = InvestmentStrategyData(risk_level="HIGH", time_horizon="LONG_TERM")
        prompt = PromptBuilder.build(sample_portfolio(strategy))
        self.assertIn(strategy_guidance("HIGH", "LONG_TERM"), prompt)
        self.assertNotIn(strategy_guidance("LOW", "SHORT_TERM"), prompt)

    def test_sector_preferences_only_when_present(self):
        plain = PromptBuilder.build(sample_portfolio())
        self.assertNotIn("Preferred Sectors", plain)

        strategy = InvestmentStrategyData(
            risk_level="MEDIUM",
            time_horizon="MEDIUM_TERM",
            preferred_sectors=["Healthcare", "Energy"],
            avoided_sectors=["Tobacco"],
        )
        prompt = PromptBuilder.build(sample_portfolio(strategy))
        self.assertIn("Healthcare, Energy", prompt)
        self.assertIn("Tobacco", prompt)

    def test_every_combination_has_guidance(self):
        for risk in ("LOW", "MEDIUM", "HIGH"):
            for horizon in ("SHORT_TERM", "MEDIUM_TERM", "LONG_TERM"):
                self.assertTrue(strategy_guidance(risk, horizon))


if __name__ == "__main__":
    unittest.main()
