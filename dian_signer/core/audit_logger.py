"""
Signing Audit Logger

Structured audit trail for signing operations and certificate checks.
Only fingerprints and identifiers are logged, never documents, keys or
passwords.
"""

import threading
import uuid
from collections import deque
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional

import structlog

from .digest_engine import DigestEngine


class AuditEventType(Enum):
    """Types of auditable events"""
    SIGNING_STARTED = "signing_started"
    SIGNING_COMPLETED = "signing_completed"
    SIGNING_FAILED = "signing_failed"
    CERTIFICATE_VALIDATED = "certificate_validated"


@dataclass
class AuditEvent:
    """Audit event structure"""
    event_id: str
    event_type: AuditEventType
    timestamp: datetime
    tenant_id: Optional[str]
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["event_type"] = self.event_type.value
        return data


def document_fingerprint(xml: Any) -> str:
    if isinstance(xml, str):
        xml = xml.encode("utf-8")
    return DigestEngine().digest_hex(xml)


class SigningAuditLogger:
    """
    Emits audit events through structlog and keeps the most recent ones
    in memory for inspection.
    """

    def __init__(self, enabled: bool = True, buffer_size: int = 100):
        self.enabled = enabled
        self._logger = structlog.get_logger("dian_signer.audit")
        self._events: deque = deque(maxlen=buffer_size)
        self._lock = threading.Lock()

    @property
    def events(self) -> List[AuditEvent]:
        with self._lock:
            return list(self._events)

    def log_signing_started(self, tenant_id: Optional[str], document: Any) -> str:
        return self._emit(
            AuditEventType.SIGNING_STARTED, tenant_id,
            {"document_sha256": document_fingerprint(document)}
        )

    def log_signing_completed(
        self,
        tenant_id: Optional[str],
        signature_id: str,
        serial_number: str,
        signing_time: str
    ) -> str:
        return self._emit(
            AuditEventType.SIGNING_COMPLETED, tenant_id,
            {
                "signature_id": signature_id,
                "certificate_serial": serial_number,
                "signing_time": signing_time,
            }
        )

    def log_signing_failed(self, tenant_id: Optional[str], error: Exception) -> str:
        return self._emit(
            AuditEventType.SIGNING_FAILED, tenant_id,
            {
                "error_type": type(error).__name__,
                "error_code": getattr(error, "error_code", None),
                "error": str(error),
            }
        )

    def log_certificate_validated(
        self,
        tenant_id: Optional[str],
        is_valid: bool,
        errors: List[str],
        subject: Optional[str] = None
    ) -> str:
        return self._emit(
            AuditEventType.CERTIFICATE_VALIDATED, tenant_id,
            {"is_valid": is_valid, "errors": list(errors), "subject": subject}
        )

    def _emit(self, event_type: AuditEventType, tenant_id: Optional[str],
              details: Dict[str, Any]) -> str:
        event = AuditEvent(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            timestamp=datetime.now(timezone.utc),
            tenant_id=tenant_id,
            details=details,
        )

        if not self.enabled:
            return event.event_id

        with self._lock:
            self._events.append(event)

        log = self._logger.warning if event_type == AuditEventType.SIGNING_FAILED else self._logger.info
        log(event_type.value, event_id=event.event_id, tenant_id=tenant_id, **details)
        return event.event_id
