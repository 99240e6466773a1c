"""
Tests for settings and the objects built from them
"""
import pytest

from ticketdesk.config import DEFAULT_SLA_MINUTES, Settings
from ticketdesk.models.schemas import AIProviderName, EscalationTier, RequestType


class TestAIConfig:
    """AI provider settings"""

    def test_no_provider(self):
        settings = Settings(ai_provider="", ai_api_key="")
        assert settings.ai_config() is None

    def test_provider_without_key(self):
        settings = Settings(ai_provider="openai", ai_api_key="")
        assert settings.ai_config() is None

    def test_openai(self):
        settings = Settings(
            ai_provider="OpenAI",
            ai_api_key="sk-env",
            ai_model="gpt-4o",
            ai_enable_caching=True,
            ai_cache_expiry=600,
        )

        config = settings.ai_config()

        assert config.provider == AIProviderName.OPENAI
        assert config.api_key.get_secret_value() == "sk-env"
        assert config.model == "gpt-4o"
        assert config.cache_expiry == 600
        assert config.system_prompt is None

    def test_unknown_provider(self):
        settings = Settings(ai_provider="watson", ai_api_key="k")
        with pytest.raises(ValueError):
            settings.ai_config()

    def test_masked_config_hides_key(self):
        config = Settings(ai_provider="gemini", ai_api_key="AIza-secret").ai_config()

        masked = config.masked()

        assert masked["apiKey"] == "***"
        assert "AIza-secret" not in str(masked)
        assert masked["provider"] == "gemini"


class TestSLAPolicy:
    """SLA settings"""

    def test_defaults(self):
        policy = Settings().sla_policy()

        assert policy.sla_minutes == DEFAULT_SLA_MINUTES
        assert policy.deadline_for(RequestType.COA) == 60
        assert policy.thresholds.warning == 0.75

    def test_overrides_merge_with_defaults(self):
        policy = Settings(sla_minutes={"coa": 30}).sla_policy()

        assert policy.deadline_for(RequestType.COA) == 30
        assert policy.deadline_for(RequestType.QUOTE) == 120

    def test_recipients_grow_with_tier(self):
        settings = Settings(
            escalation_supervisor_email="sup@example.com",
            escalation_manager_email="mgr@example.com",
            escalation_coo_email="coo@example.com",
        )

        recipients = settings.sla_policy().recipients

        assert recipients[EscalationTier.WARNING] == ["sup@example.com"]
        assert recipients[EscalationTier.URGENT] == ["sup@example.com", "mgr@example.com"]
        assert recipients[EscalationTier.BREACH][-1] == "coo@example.com"

    def test_misordered_thresholds_rejected(self):
        settings = Settings(sla_warning_threshold=0.95, sla_urgent_threshold=0.9)
        with pytest.raises(ValueError):
            settings.sla_policy()


class TestBearerSecret:
    def test_cron_secret_preferred(self):
        assert Settings(cron_secret="a", service_secret="b").bearer_secret == "a"

    def test_service_secret_fallback(self):
        assert Settings(cron_secret="", service_secret="b").bearer_secret == "b"
