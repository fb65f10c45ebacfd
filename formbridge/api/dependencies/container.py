from fastapi import Depends, Request

from formbridge.container import Container
from formbridge.services.integration_service import IntegrationService


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_integration_service(container: Container = Depends(get_container)) -> IntegrationService:
    return container.service
