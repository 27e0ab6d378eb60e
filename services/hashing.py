"""
Deterministic traffic bucketing.

A key is mapped to an integer bucket in [0, 100) from the MD5 digest of the
key: the first 8 hex characters are read as an unsigned 32-bit integer and
reduced modulo 100. The mapping is stable across processes and restarts.

The experiment gate and the variant split use different keys so that the
"is this visitor in the experiment" decision is uncorrelated with the
"which variant" decision.
"""
import hashlib

BUCKET_COUNT = 100
_PREFIX_HEX_CHARS = 8


def hash_to_bucket(key: str) -> int:
    digest = hashlib.md5(key.encode("utf-8")).hexdigest()
    return int(digest[:_PREFIX_HEX_CHARS], 16) % BUCKET_COUNT


def experiment_key(visitor_id: str, experiment_id) -> str:
    return f"{visitor_id}-{experiment_id}"


def variant_key(visitor_id: str, experiment_id) -> str:
    return f"{visitor_id}-{experiment_id}-variant"
