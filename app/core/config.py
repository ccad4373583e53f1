from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # App settings
    PROJECT_NAME: str = "ExpenseAnalytics"
    API_PREFIX: str = "/api"
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = "INFO"

    # AWS
    AWS_REGION: str = Field(default="eu-west-1")

    # DynamoDB
    DYNAMO_USERS_TABLE: str = Field(default="expense-analytics-users")
    DYNAMO_EXPENSES_TABLE: str = Field(default="expense-analytics-expenses")
    DYNAMO_ENDPOINT_URL: Optional[str] = None

    # Redis (cache + progress leases)
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    REDIS_SOCKET_TIMEOUT: float = 2.0

    # SQS (job queues)
    SQS_ENDPOINT_URL: Optional[str] = None
    ANALYTICS_QUEUE: str = "expense-analytics"
    REPORT_QUEUE: str = "expense-reports"
    SQS_CREATE_QUEUES: bool = False
    SQS_MAX_RECEIVE_COUNT: int = 5
    SQS_VISIBILITY_TIMEOUT: int = 120
    SQS_WAIT_SECONDS: int = 20
    JOB_RETRY_DELAY: int = 30

    # Cache TTLs (seconds)
    MONTHLY_SUMMARY_TTL: int = 60 * 60
    ANALYTICS_SUMMARY_TTL: int = 60 * 60
    SPENDING_PATTERNS_TTL: int = 60 * 60 * 24
    PROCESSING_LEASE_TTL: int = 60 * 5

    # Trend analysis
    TREND_WINDOW_MONTHS: int = 6
    TREND_COMPARISON_MONTHS: int = 3
    TREND_THRESHOLD_PERCENT: float = 10.0
    TREND_TOP_CATEGORIES: int = 3

    # SMTP (report delivery)
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM: str = "reports@expense-analytics.local"
    SMTP_STARTTLS: bool = True

    # Monthly report scheduler: "day hour minute"
    REPORT_SCHEDULER_ENABLED: bool = False
    REPORT_SCHEDULE_CRON: str = "1 6 0"

    # Workers
    WORKER_CONCURRENCY: int = 1


settings = Settings()
