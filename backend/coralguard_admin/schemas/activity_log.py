"""Activity log schemas"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, model_validator

from coralguard_admin.schemas.common import Pagination


class ActivityLogResponse(BaseModel):
    """Schema for activity log response"""

    log_id: str
    admin_id: str
    action: str
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    description: str
    severity: str
    metadata: Optional[Dict[str, Any]] = None
    timestamp: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    previous_hash: str = ""

    class Config:
        from_attributes = True

    @model_validator(mode='before')
    @classmethod
    def map_log_metadata(cls, data):
        """Map log_metadata attribute to metadata field"""
        if hasattr(data, '__dict__') and hasattr(data, 'log_metadata'):
            return {
                'log_id': data.log_id,
                'admin_id': data.admin_id,
                'action': data.action,
                'target_type': data.target_type,
                'target_id': data.target_id,
                'description': data.description,
                'severity': data.severity,
                'metadata': data.log_metadata,
                'timestamp': data.timestamp,
                'ip_address': data.ip_address,
                'user_agent': data.user_agent,
                'previous_hash': data.previous_hash or '',
            }
        return data


class ActivityLogListResponse(BaseModel):
    logs: List[ActivityLogResponse]
    pagination: Pagination
