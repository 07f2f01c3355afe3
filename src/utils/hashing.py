"""Hash chaining for the position audit trail."""
import hashlib
import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

def decimal_default(obj):
    """Convert Decimal and datetime values for JSON serialization."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")

def create_event_hash(
    timestamp: datetime,
    event_type: str,
    entity_id: str,
    after_state: Dict[str, Any],
    previous_hash: Optional[str] = None
) -> str:
    """
    SHA-256 over the canonical JSON of one transition.
    
    Including previous_hash links every row to the one written before it,
    so editing any row breaks every hash after it.
    """
    canonical = json.dumps(
        {
            'timestamp': timestamp.isoformat(),
            'event_type': event_type,
            'entity_id': entity_id,
            'after_state': after_state,
            'previous_hash': previous_hash,
        },
        sort_keys=True,
        default=decimal_default
    )
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()

def event_hash_matches(row) -> bool:
    """Recompute an AuditLog row's hash from its stored fields."""
    expected = create_event_hash(
        row.timestamp, row.event_type, row.entity_id, row.after_state, row.previous_hash
    )
    return expected == row.event_hash
