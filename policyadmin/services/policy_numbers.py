# policyadmin/services/policy_numbers.py
from __future__ import annotations

import random
import time
from typing import Optional

from policyadmin.services.config import POLICY_NUMBER_PREFIX

_rng = random.SystemRandom()


def generate_policy_number(prefix: Optional[str] = None) -> str:
    """
    Human-readable policy number: PREFIX-<last 6 ms clock digits><4 random digits>,
    e.g. POL-4821907315. Not checked against the table; the unique index on
    `policies.policy_number` is the only guarantee.
    """
    tag = (prefix or POLICY_NUMBER_PREFIX).strip().upper()
    clock = str(int(time.time() * 1000))[-6:]
    tail = _rng.randint(1000, 9999)
    return f"{tag}-{clock}{tail}"
