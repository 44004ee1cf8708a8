from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App settings
    PROJECT_NAME: str = "FinanceAnalyticsEngine"
    API_PREFIX: str = "/api"
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")

    # Reporting
    REPORTING_CURRENCY: str = Field(default="ILS")

    # Storage
    STORE_BACKEND: str = Field(default="memory")  # "memory" or "dynamo"
    OWNER_ID: str = Field(default="owner")
    DYNAMO_REGION: str = Field(default="eu-west-1")
    DYNAMO_ALERT_RULES_TABLE: str = Field(default="finance-alert-rules")
    DYNAMO_TRANSACTIONS_TABLE: str = Field(default="finance-transactions")

    # Notifications
    NOTIFIER_BACKEND: str = Field(default="log")  # "log", "webhook" or "email"
    WEBHOOK_URL: str = Field(default="")
    WEBHOOK_TIMEOUT_SECONDS: float = Field(default=5.0)
    SMTP_HOST: str = Field(default="smtp.gmail.com")
    SMTP_PORT: int = Field(default=587)
    SMTP_USERNAME: str = Field(default="")
    SMTP_PASSWORD: str = Field(default="")
    ALERT_EMAIL_FROM: str = Field(default="")
    ALERT_EMAIL_TO: str = Field(default="")

    # Forecast and savings heuristics
    SMOOTHING_ALPHA: float = Field(default=0.3)
    SAVINGS_POTENTIAL_RATE: float = Field(default=0.18)
    FOOD_TIP_RATE: float = Field(default=0.15)
    TRANSPORT_TIP_RATE: float = Field(default=0.10)
    SHOPPING_TIP_RATE: float = Field(default=0.20)
    DAILY_HABITS_TIP_RATE: float = Field(default=0.15)
    TOP_CATEGORY_TIP_RATE: float = Field(default=0.10)

    # Scheduler (recurring-detection rules)
    SCHEDULER_ENABLED: bool = Field(default=True)
    RECURRING_CHECK_HOUR: int = Field(default=7)
    RECURRING_CHECK_MINUTE: int = Field(default=0)

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


settings = Settings()
