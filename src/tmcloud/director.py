"""
Sync direction resolution.

Not a merge: the side that loses has its divergent records overwritten.
Ordering is by (timestamp, record count), with the count deciding when
the timestamps cannot. Equal timestamps and equal counts with different
content resolve to PUSH; that case is a known limitation.
"""

from __future__ import annotations

from typing import Optional

from .models import SyncDirection, SyncMetadata


def decide(local: SyncMetadata, cloud: Optional[SyncMetadata]) -> SyncDirection:
    """Decide which side is authoritative.

    Args:
        local: Local descriptor.
        cloud: Cloud descriptor, or None if the cloud has none yet.

    Returns:
        SyncDirection.PUSH or SyncDirection.PULL.
    """
    if cloud is None:
        return SyncDirection.PUSH
    if cloud.timestamp > local.timestamp and cloud.record_count > 0:
        return SyncDirection.PULL
    if local.timestamp > cloud.timestamp and local.record_count > 0:
        return SyncDirection.PUSH
    if cloud.record_count > local.record_count:
        return SyncDirection.PULL
    return SyncDirection.PUSH
