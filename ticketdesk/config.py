"""
Ticket Desk - Configuration Management
"""
from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ticketdesk.models.schemas import (
    AIConfig,
    AIProviderName,
    EscalationTier,
    SLAPolicy,
    SLAThresholds,
)


DEFAULT_SLA_MINUTES: Dict[str, int] = {
    "quote": 120,
    "coa": 60,
    "freight": 240,
    "claim": 1440,
    "other": 240,
}


class Settings(BaseSettings):
    """Application settings"""

    # FastAPI
    fastapi_env: str = "development"
    fastapi_host: str = "0.0.0.0"
    fastapi_port: int = 8000
    app_url: str = "http://localhost:3000"

    # AI provider
    ai_provider: str = ""
    ai_api_key: str = ""
    ai_model: str = ""
    ai_temperature: float = 0.7
    ai_max_tokens: int = 2000
    ai_system_prompt: str = ""
    ai_enable_caching: bool = False
    ai_cache_expiry: int = 300  # seconds
    ai_cache_max_entries: int = 100
    ai_timeout_seconds: float = 30.0

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: str = ""

    # Notifications
    mailgun_api_key: str = ""
    mailgun_domain: str = ""
    mail_from: str = "Customer Service <noreply@example.com>"
    slack_webhook_url: str = ""
    escalation_supervisor_email: str = "supervisor@example.com"
    escalation_manager_email: str = "manager@example.com"
    escalation_coo_email: str = "coo@example.com"

    # SLA
    sla_minutes: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_SLA_MINUTES))
    sla_warning_threshold: float = 0.75
    sla_urgent_threshold: float = 0.9
    sla_breach_threshold: float = 1.0
    sla_check_frequency: str = "Recommended: Every 5-10 minutes"

    # Authentication
    cron_secret: str = ""
    service_secret: str = ""

    # Intake
    require_customer_contact: bool = False

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def bearer_secret(self) -> str:
        """Secret expected on the sweep trigger and AI config writes"""
        return self.cron_secret or self.service_secret

    def ai_config(self) -> Optional[AIConfig]:
        """
        Build the AI configuration from environment values

        Returns:
            AIConfig, or None when no provider or credential is set
        """
        if not self.ai_provider or not self.ai_api_key:
            return None

        return AIConfig(
            provider=AIProviderName(self.ai_provider.lower()),
            api_key=self.ai_api_key,
            model=self.ai_model or None,
            temperature=self.ai_temperature,
            max_tokens=self.ai_max_tokens,
            system_prompt=self.ai_system_prompt or None,
            enable_caching=self.ai_enable_caching,
            cache_expiry=self.ai_cache_expiry,
            timeout_seconds=self.ai_timeout_seconds,
        )

    def sla_policy(self) -> SLAPolicy:
        """Build the SLA policy (deadlines, thresholds and recipients)"""
        supervisor = self.escalation_supervisor_email
        manager = self.escalation_manager_email
        coo = self.escalation_coo_email

        return SLAPolicy(
            sla_minutes={**DEFAULT_SLA_MINUTES, **self.sla_minutes},
            thresholds=SLAThresholds(
                warning=self.sla_warning_threshold,
                urgent=self.sla_urgent_threshold,
                breach=self.sla_breach_threshold,
            ),
            recipients={
                EscalationTier.WARNING: [supervisor],
                EscalationTier.URGENT: [supervisor, manager],
                EscalationTier.BREACH: [supervisor, manager, coo],
            },
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
