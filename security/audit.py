"""
Audit Trail Module for the PostgreSQL MCP server

Emits structured audit records for security decisions (blocked statements,
validation failures) and for query execution, so every statement the agent
submits leaves a trace in the logs. Records never carry the full statement
text, only a bounded preview and its length.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

# Maximum number of statement characters written into an audit record
QUERY_PREVIEW_LENGTH = 100


class AuditTrailManager:
    """
    Manages audit trail logging for database access

    Every entry is written as a single ``AUDIT: {...}`` line on the
    ``security_audit`` logger with sensitive values redacted.
    """

    def __init__(self):
        self.logger = logging.getLogger('security_audit')

    def log_action(self,
                   action: str,
                   object_id: str,
                   level: int = logging.INFO,
                   message: Optional[str] = None,
                   metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Log an audit trail entry

        Args:
            action: Type of action (SECURITY_EVENT, QUERY_EXECUTED, ...)
            object_id: Identifier of the thing acted upon
            level: Logging level of the record
            message: Human readable summary
            metadata: Additional structured context

        Returns:
            The audit entry that was written
        """
        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'action': action,
            'object_id': object_id,
            'message': message,
            'metadata': self._sanitize_values(metadata) or {},
        }

        self.logger.log(level, f"AUDIT: {json.dumps(entry, default=str)}")
        return entry

    def log_security_event(self,
                           event_type: str,
                           description: str,
                           severity: str = 'MEDIUM',
                           query: Optional[str] = None,
                           metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Log security-related event

        Args:
            event_type: Type of security event (QUERY_BLOCKED, ...)
            description: Description of the event
            severity: Event severity (LOW, MEDIUM, HIGH, CRITICAL)
            query: Statement that triggered the event; only a preview is kept
            metadata: Additional metadata

        Returns:
            The audit entry that was written
        """
        security_metadata = {
            'security_event': True,
            'event_type': event_type,
            'severity': severity,
        }

        if query is not None:
            security_metadata['query_preview'] = query_preview(query)
            security_metadata['query_length'] = len(query)

        if metadata:
            security_metadata.update(metadata)

        return self.log_action(
            action='SECURITY_EVENT',
            object_id=event_type,
            level=logging.WARNING,
            message=f"[SECURITY] {description}",
            metadata=security_metadata
        )

    def log_query_event(self,
                        status: str,
                        query_length: int,
                        duration_ms: float,
                        row_count: Optional[int] = None,
                        error: Optional[str] = None,
                        metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Log the outcome of a statement execution"""
        query_metadata = {
            'query_length': query_length,
            'duration_ms': round(duration_ms, 2),
        }
        if row_count is not None:
            query_metadata['row_count'] = row_count
        if error is not None:
            query_metadata['error'] = error
        if metadata:
            query_metadata.update(metadata)

        level = logging.ERROR if status in ('FAILED', 'TIMEOUT') else logging.INFO
        return self.log_action(
            action=f'QUERY_{status}',
            object_id='query',
            level=level,
            message=f"[QUERY] Query {status.lower()}",
            metadata=query_metadata
        )

    def _sanitize_values(self, values: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """
        Sanitize sensitive values for audit logging

        Args:
            values: Values to sanitize

        Returns:
            Sanitized values
        """
        if not values:
            return values

        # Fields to mask
        sensitive_fields = [
            'password', 'secret', 'token', 'api_key', 'private_key', 'passphrase'
        ]

        sanitized = {}
        for key, value in values.items():
            key_lower = key.lower()

            is_sensitive = any(sensitive in key_lower for sensitive in sensitive_fields)

            if is_sensitive:
                sanitized[key] = '[REDACTED]'
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_values(value)
            elif isinstance(value, list):
                sanitized[key] = [
                    self._sanitize_values(item) if isinstance(item, dict) else item
                    for item in value
                ]
            else:
                sanitized[key] = value

        return sanitized


def query_preview(query: str, length: int = QUERY_PREVIEW_LENGTH) -> str:
    """Bounded preview of a statement for log records"""
    if len(query) <= length:
        return query
    return query[:length] + '...'


_audit_manager: Optional[AuditTrailManager] = None


def get_audit_manager() -> AuditTrailManager:
    """Get or create global audit trail manager instance"""
    global _audit_manager
    if _audit_manager is None:
        _audit_manager = AuditTrailManager()
    return _audit_manager


# Convenience functions
def log_security_incident(event_type: str, description: str, **kwargs) -> Dict[str, Any]:
    """Convenience function to log security incidents"""
    manager = get_audit_manager()
    return manager.log_security_event(event_type, description, **kwargs)


def log_query_event(status: str, query_length: int, duration_ms: float, **kwargs) -> Dict[str, Any]:
    """Convenience function to log query executions"""
    manager = get_audit_manager()
    return manager.log_query_event(status, query_length, duration_ms, **kwargs)
