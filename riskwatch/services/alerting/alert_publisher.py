"""Risk alert publisher.

Publishes an alert event to a Kinesis stream whenever an assessment
flags immediate intervention. Consumers (pager, counselor dashboard)
read the stream; this service never calls them directly.

Delivery is best-effort: a failed publish is logged at CRITICAL with the
full payload for manual follow-up and never raises into the caller, so a
persisted conversation record is never rolled back because of alerting.
"""
import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import boto3

from riskwatch.shared.models import RiskLevel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlertConfig:
    stream_name: str = "riskwatch-risk-alerts"
    enabled: bool = True
    region: str = "us-east-1"

    @classmethod
    def from_env(cls) -> "AlertConfig":
        """Environment variables:
            ALERT_STREAM_NAME (default riskwatch-risk-alerts)
            ALERTS_ENABLED (default true)
            AWS_REGION (default us-east-1)
        """
        return cls(
            stream_name=os.getenv("ALERT_STREAM_NAME", "riskwatch-risk-alerts"),
            enabled=os.getenv("ALERTS_ENABLED", "true").lower() in ("1", "true", "yes"),
            region=os.getenv("AWS_REGION", "us-east-1"),
        )


@dataclass(frozen=True)
class RiskAlertEvent:
    """Immutable alert raised for one conversation."""
    event_id: str
    conversation_id: str
    risk_level: RiskLevel
    event_type: str = "conversation.intervention.required"
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_kinesis_payload(self) -> dict:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp.isoformat() + "Z",
            "source": "conversation-service",
            "data": {
                "conversation_id": self.conversation_id,
                "risk_level": self.risk_level.value,
                "immediate_intervention": True,
            },
        }


class RiskAlertPublisher:
    """Fire-and-forget alert sink used by the lifecycle manager."""

    def __init__(self, config: Optional[AlertConfig] = None):
        self.config = config or AlertConfig()
        self._kinesis_client = None

        logger.info(
            "ALERT_PUBLISHER_INITIALIZED",
            extra={
                "stream_name": self.config.stream_name,
                "enabled": self.config.enabled,
                "region": self.config.region,
            }
        )

    @property
    def kinesis_client(self):
        """Lazy initialization of Kinesis client."""
        if self._kinesis_client is None and self.config.enabled:
            try:
                self._kinesis_client = boto3.client("kinesis", region_name=self.config.region)
            except Exception as e:
                logger.error("KINESIS_CLIENT_INIT_FAILED", extra={"error": str(e)})
        return self._kinesis_client

    def notify(self, conversation_id: str, risk_level: RiskLevel) -> bool:
        """Publish an intervention alert.

        Returns:
            True if the stream accepted the record, False otherwise.
            Never raises.
        """
        event = RiskAlertEvent(
            event_id=f"alert_{uuid.uuid4().hex[:12]}",
            conversation_id=conversation_id,
            risk_level=risk_level,
        )
        payload = json.dumps(event.to_kinesis_payload())

        if not self.config.enabled:
            logger.critical(
                "RISK_ALERT_FALLBACK_LOG",
                extra={
                    "event_id": event.event_id,
                    "conversation_id": conversation_id,
                    "payload": payload,
                    "reason": "alerts_disabled",
                }
            )
            return False

        try:
            client = self.kinesis_client
            if client is None:
                logger.critical(
                    "RISK_ALERT_FALLBACK_LOG",
                    extra={
                        "event_id": event.event_id,
                        "conversation_id": conversation_id,
                        "payload": payload,
                        "reason": "kinesis_client_unavailable",
                        "action": "MANUAL_PROCESSING_REQUIRED",
                    }
                )
                return False

            response = client.put_record(
                StreamName=self.config.stream_name,
                Data=payload,
                PartitionKey=conversation_id,
            )
            logger.critical(
                "RISK_ALERT_PUBLISHED",
                extra={
                    "event_id": event.event_id,
                    "conversation_id": conversation_id,
                    "risk_level": risk_level.value,
                    "shard_id": response.get("ShardId"),
                    "sequence_number": response.get("SequenceNumber"),
                }
            )
            return True

        except Exception as e:
            logger.critical(
                "RISK_ALERT_PUBLISH_FAILED",
                extra={
                    "event_id": event.event_id,
                    "conversation_id": conversation_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "action": "MANUAL_REVIEW_REQUIRED",
                    "payload": payload,
                }
            )
            return False
