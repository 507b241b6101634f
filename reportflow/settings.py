import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    API_KEY: str = os.getenv("API_KEY", "")
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    RQ_QUEUE_NAME: str = os.getenv("RQ_QUEUE_NAME", "reports")

    # Live-support window opened by SUBMIT
    REPORT_TIMEOUT_MINUTES: int = int(os.getenv("REPORT_TIMEOUT_MINUTES", "20"))
    # Report types that may be submitted without a confirmed delivery ticket
    TICKET_EXEMPT_REPORT_TYPES: str = os.getenv("TICKET_EXEMPT_REPORT_TYPES", "tienda_cerrada,bascula")

    # Per-report single-writer lock
    LOCK_TTL_MS: int = int(os.getenv("LOCK_TTL_MS", "5000"))
    LOCK_RETRY_COUNT: int = int(os.getenv("LOCK_RETRY_COUNT", "5"))
    LOCK_RETRY_DELAY_SEC: float = float(os.getenv("LOCK_RETRY_DELAY_SEC", "0.1"))

    # Timeout sweep (run by scripts/enqueue_sweep.py on a schedule)
    SWEEP_BATCH_LIMIT: int = int(os.getenv("SWEEP_BATCH_LIMIT", "200"))

    # Agent notifications (fire-and-forget webhook)
    ENABLE_NOTIFICATIONS: bool = os.getenv("ENABLE_NOTIFICATIONS", "true").lower() == "true"
    NOTIFY_WEBHOOK_URL: str = os.getenv("NOTIFY_WEBHOOK_URL", "")
    NOTIFY_TIMEOUT_SEC: float = float(os.getenv("NOTIFY_TIMEOUT_SEC", "5"))
    NOTIFY_MAX_RETRIES: int = int(os.getenv("NOTIFY_MAX_RETRIES", "3"))

    ENABLE_PII_REDACTION: bool = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"
    ADMIN_RBAC_ENABLED: bool = os.getenv("ADMIN_RBAC_ENABLED", "true").lower() == "true"
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")

    def ticket_exempt_types(self) -> set:
        return {x.strip() for x in self.TICKET_EXEMPT_REPORT_TYPES.split(",") if x.strip()}

settings = Settings()
