import os
import unittest

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from config.settings import AnalysisSettings, ProviderSettings
from services.ai.providers.claude import ClaudeProvider
from services.ai.providers.registry import ProviderRegistry, build_provider_registry
from services.analysis.errors import ProviderNotConfigured, ProviderNotFound, ProviderUnavailable
from tests.support import FakeProvider


class TestProviderRegistry(unittest.TestCase):
    def setUp(self):
        self.registry = ProviderRegistry(default_provider="claude")
        self.claude = FakeProvider(name="claude")
        self.gemini = FakeProvider(name="gemini", configured=False)
        self.registry.register("Claude", self.claude)
        self.registry.register("gemini", self.gemini)

    def test_resolve_default(self):
        self.assertIs(self.registry.resolve(), self.claude)

    def test_names_are_case_insensitive(self):
        self.assertIs(self.registry.resolve("CLAUDE"), self.claude)
        self.assertEqual(self.registry.list_available(), ["claude", "gemini"])

    def test_unknown_provider_lists_available(self):
        with self.assertRaises(ProviderNotFound) as ctx:
            self.registry.resolve("mistral")
        self.assertIn("claude, gemini", ctx.exception.message)
        self.assertEqual(ctx.exception.status_code, 503)

    def test_unconfigured_provider(self):
        with self.assertRaises(ProviderNotConfigured) as ctx:
            self.registry.resolve("gemini")
        self.assertIsInstance(ctx.exception, ProviderUnavailable)

    def test_get_skips_configuration_check(self):
        self.assertIs(self.registry.get("gemini"), self.gemini)
        self.assertIsNone(self.registry.get("mistral"))

    def test_configured_listing(self):
        self.assertEqual(self.registry.list_configured(), ["claude"])
        self.assertTrue(self.registry.is_available("claude"))
        self.assertFalse(self.registry.is_available("gemini"))
        self.assertFalse(self.registry.is_available("mistral"))

    def test_clear(self):
        self.registry.clear()
        self.assertEqual(self.registry.list_available(), [])
        with self.assertRaises(ProviderNotFound):
            self.registry.resolve()


class TestBuildProviderRegistry(unittest.TestCase):
    def test_builtin_providers_registered(self):
        settings = AnalysisSettings(
            default_provider="claude",
            claude=ProviderSettings(api_key="sk-test", model="claude-test", base_url="https://x"),
        )
        registry = build_provider_registry(settings)

        self.assertEqual(set(registry.list_available()), {"claude", "gemini", "openai"})
        self.assertEqual(registry.list_configured(), ["claude"])
        provider = registry.resolve()
        self.assertIsInstance(provider, ClaudeProvider)
        self.assertEqual(provider.model, "claude-test")

    def test_default_without_key_is_not_configured(self):
        registry = build_provider_registry(AnalysisSettings(default_provider="openai"))
        with self.assertRaises(ProviderNotConfigured):
            registry.resolve()


if __name__ == "__main__":
    unittest.main()
