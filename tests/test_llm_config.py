import unittest
from unittest.mock import patch

from llm_config import (
    DEFAULT_GEMINI_MODEL, DEFAULT_LLAMA_MODEL, LLMProvider, ProviderConfig, load_provider_config,
    resolve_provider,
)


class TestResolveProvider(unittest.TestCase):
    def test_unset_defaults_to_gemini(self):
        self.assertIs(resolve_provider(None), LLMProvider.gemini)
        self.assertIs(resolve_provider(""), LLMProvider.gemini)

    def test_unknown_defaults_to_gemini(self):
        self.assertIs(resolve_provider("openai"), LLMProvider.gemini)

    def test_case_insensitive(self):
        self.assertIs(resolve_provider("llama"), LLMProvider.llama)
        self.assertIs(resolve_provider(" Llama_Azure "), LLMProvider.llama_azure)


class TestLoadProviderConfig(unittest.TestCase):
    def test_defaults_from_empty_env(self):
        config = load_provider_config({})
        self.assertIs(config.provider, LLMProvider.gemini)
        self.assertEqual(config.gemini_model_name, DEFAULT_GEMINI_MODEL)
        self.assertEqual(config.llama_model_name, DEFAULT_LLAMA_MODEL)
        self.assertEqual(config.llama_api_key, "EMPTY")
        self.assertEqual(config.max_retries, 3)
        self.assertEqual(config.retry_initial_delay_ms, 1000)

    def test_unrecognized_selector_falls_back_with_warning(self):
        with patch("llm_config.log_event") as log:
            config = load_provider_config({"LLM_PROVIDER": "claude"})
        self.assertIs(config.provider, LLMProvider.gemini)
        events = [c.args[1] for c in log.call_args_list]
        self.assertIn("llm_config_unknown_provider", events)

    def test_llama_settings(self):
        config = load_provider_config({
            "LLM_PROVIDER": "LLAMA",
            "LLAMA_API_ENDPOINT": "http://10.0.0.5:8000/v1",
            "LLAMA_API_KEY": "k",
            "LLAMA_MODEL_NAME": "llama-3",
            "LLM_MAX_RETRIES": "5",
        })
        self.assertIs(config.provider, LLMProvider.llama)
        self.assertTrue(config.is_self_hosted)
        self.assertEqual(config.active_model_name, "llama-3")
        self.assertEqual(config.max_retries, 5)

    def test_missing_endpoint_warns_but_does_not_raise(self):
        with patch("llm_config.log_event") as log:
            config = load_provider_config({"LLM_PROVIDER": "LLAMA_AZURE"})
        self.assertIs(config.provider, LLMProvider.llama_azure)
        events = [c.args[1] for c in log.call_args_list]
        self.assertIn("llm_config_missing_endpoint", events)
        self.assertIn("llm_config_missing_key", events)

    def test_bad_integer_uses_default(self):
        config = load_provider_config({"LLM_MAX_RETRIES": "many", "LLM_RETRY_INITIAL_DELAY_MS": "-4"})
        self.assertEqual(config.max_retries, 3)
        self.assertEqual(config.retry_initial_delay_ms, 1000)

    def test_gemini_key_fallback(self):
        config = load_provider_config({"GOOGLE_API_KEY": "g"})
        self.assertEqual(config.gemini_api_key, "g")

    def test_config_is_frozen(self):
        config = ProviderConfig()
        with self.assertRaises(Exception):
            config.provider = LLMProvider.llama


if __name__ == "__main__":
    unittest.main()
