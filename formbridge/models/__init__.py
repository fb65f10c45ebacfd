from formbridge.models.log import IntegrationLog, LogStatus
from formbridge.models.settings import FormIntegrationSettings, IntegrationGlobalSettings

__all__ = [
    "FormIntegrationSettings",
    "IntegrationGlobalSettings",
    "IntegrationLog",
    "LogStatus",
]
