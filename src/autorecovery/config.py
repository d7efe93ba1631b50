"""Application configuration loaded from environment."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Auto-recovery settings from env vars (prefix AUTORECOVERY_)."""

    model_config = SettingsConfigDict(
        env_prefix="AUTORECOVERY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # AWS
    aws_region: str = "us-east-1"
    # True = boto3-backed stores, handlers, metrics and transports; False = in-memory/stub
    use_aws_integration: bool = False

    # Cooldown and history persistence
    cooldown_table_name: str = "TodoApp-RecoveryCooldowns"
    cooldown_ttl_days: int = 7
    history_table_name: str = "TodoApp-RecoveryHistory"
    history_retention_days: int = 30
    # Optional file persistence for the in-memory history store
    history_data_dir: str = ""

    # Metrics
    metrics_namespace: str = "TodoApp/AutoRecovery"
    notification_metrics_namespace: str = "TodoApp/Notifications"

    # Health assessment: HTTP endpoint wins over Lambda when both are set
    health_url: str = ""
    health_function_name: str = "TodoApp-HealthCheck-Orchestrator"
    health_timeout_seconds: float = 10.0

    # Remediation targets (comma-separated Lambda function names to recycle)
    restart_function_names: str = "TodoApp-Create,TodoApp-List,TodoApp-Update,TodoApp-Delete"
    high_memory_function_names: str = ""
    custom_action_function_prefix: str = "TodoApp-CustomRecovery-"
    api_gateway_rest_api_id: str = ""
    api_gateway_stage_name: str = "prod"
    dynamodb_table_name: str = "TodoApp-Todos"
    backup_endpoint: str = "backup-api-gateway"

    # Static configuration files (JSON); defaults are built in when empty
    catalog_path: str = ""
    notification_config_path: str = ""

    # Business hours for business_hours_only channels
    business_hours_start: int = 9
    business_hours_end: int = 18
    business_days: str = "0,1,2,3,4"
    business_timezone: str = "Asia/Seoul"

    # Links rendered into notifications
    dashboard_url: str = "https://console.aws.amazon.com/cloudwatch/home#dashboards:name=TodoApp"
    logs_url: str = "https://console.aws.amazon.com/cloudwatch/home#logsV2:logs-insights"

    # Notification transports
    slack_bot_token: str = ""
    email_sender: str = "todo-app-alerts@company.com"
    pagerduty_routing_key: str = ""
    critical_escalation_policy: str = "critical-escalation"

    @property
    def restart_functions(self) -> list[str]:
        return _split_csv(self.restart_function_names)

    @property
    def high_memory_functions(self) -> list[str]:
        return _split_csv(self.high_memory_function_names)

    @property
    def business_weekdays(self) -> set[int]:
        return {int(d) for d in _split_csv(self.business_days)}


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def get_settings() -> Settings:
    """Return loaded settings from environment (and .env if present)."""
    return Settings()
