"""Alerting collaborator: intervention alerts published to Kinesis."""

from .alert_publisher import AlertConfig, RiskAlertEvent, RiskAlertPublisher

__all__ = ["AlertConfig", "RiskAlertEvent", "RiskAlertPublisher"]
