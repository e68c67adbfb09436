"""Prefixed ID generation utility."""

import uuid

JOB_PREFIX = "job_"
PROVIDER_PREFIX = "prov_"
COMMISSION_PREFIX = "comm_"
DISPUTE_PREFIX = "dsp_"
NOTIFICATION_PREFIX = "notif_"
EVENT_PREFIX = "evt_"


def generate_id(prefix: str) -> str:
    """Generate a prefixed unique ID such as ``job_a1b2c3d4e5f6a7b8``."""
    return f"{prefix}{uuid.uuid4().hex[:16]}"
