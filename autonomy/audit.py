"""
Audit Trail - append-only record of what the agent did.

One JSON object per line. Entries are never rewritten; a reader can replay
the file to reconstruct every heartbeat outcome and every tribute transfer.
"""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

from autonomy.logging_config import get_cycle_id

logger = logging.getLogger(__name__)


class AuditCategory(Enum):
    """Categories of auditable events."""
    OUTCOME = "outcome"
    TRIBUTE = "tribute"


@dataclass(frozen=True)
class AuditEntry:
    """Single audit log entry."""
    timestamp: str
    category: str
    action: str
    success: bool
    details: Dict[str, Any]
    cycle_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AuditTrail:
    """Append-only JSONL writer for one audit file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = Lock()

    def record(
        self,
        category: AuditCategory,
        action: str,
        details: Dict[str, Any],
        success: bool = True,
    ) -> AuditEntry:
        entry = AuditEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            category=category.value,
            action=action,
            success=success,
            details=details,
            cycle_id=get_cycle_id(),
        )
        line = json.dumps(entry.to_dict(), default=str)

        # Audit writes must not be silently lost; let IO errors propagate.
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

        logger.info(f"[AUDIT] {category.value}:{action} success={success}")
        return entry

    def read(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Return recorded entries, oldest first. Unparseable lines are skipped."""
        if not self.path.exists():
            return []
        entries = []
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning(f"Skipping corrupt audit line in {self.path.name}")
        if limit is not None:
            return entries[-limit:]
        return entries
