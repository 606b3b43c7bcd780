"""FastAPI dependency injection: provides services via Depends()."""
from __future__ import annotations

from fastapi import Request

from swiper.services.config_service import ConfigService
from swiper.services.dispatcher import Dispatcher
from swiper.services.monitor_service import MonitorService
from swiper.services.notification_service import NotificationService


def get_config_service(request: Request) -> ConfigService:
    return request.app.state.config_service


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def get_monitor_service(request: Request) -> MonitorService:
    return request.app.state.monitor_service


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.notification_service
