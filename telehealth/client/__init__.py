from .api_client import ApiClient, ApiClientError
from .notification_center import ConnectionStatus, NotificationCenter

__all__ = ["ApiClient", "ApiClientError", "ConnectionStatus", "NotificationCenter"]
