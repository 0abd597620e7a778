from app.models.user import User
from app.models.connection import Connection, LegacyUserConnection
from app.models.activity import DailyActivity
from app.models.webhook_log import WebhookLog
from app.models.goals import UserGoals

__all__ = [
    "User",
    "Connection",
    "LegacyUserConnection",
    "DailyActivity",
    "WebhookLog",
    "UserGoals",
]
