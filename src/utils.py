"""Utility functions for the gateway operator."""

import datetime
import hashlib
from collections.abc import Iterable, Mapping
from dataclasses import replace

from constants import HASHED_NAME_PREFIX
from models import Condition

# Longest digest used in hashed names (128 bits of SHA-256)
MAX_DIGEST_LENGTH = 32


def resolve_name(
    parent_name: str,
    namespace: str,
    suffix: str,
    limit: int = 63,
    prefix: str = HASHED_NAME_PREFIX,
) -> str:
    """Derive the name of a child resource generated for `parent_name`.

    Returns `parent_name + suffix` when it fits within `limit`. Otherwise a
    deterministic name built from a SHA-256 digest of the full identity
    (namespace, parent name, suffix) is returned, never longer than `limit`.

    Example: resolve_name('gw', 'ns', '-svc') -> 'gw-svc'
    """
    if not parent_name:
        raise ValueError("parent name must not be empty")
    if limit <= 0:
        raise ValueError("limit must be positive")

    if len(parent_name) + len(suffix) <= limit:
        return parent_name + suffix

    digest = hashlib.sha256(
        f"{namespace}/{parent_name}/{suffix}".encode()
    ).hexdigest()

    head = f"{prefix}-" if prefix else ""
    if len(head) >= limit:
        # No room for the prefix, use the digest alone
        return digest[:limit]
    return head + digest[: min(MAX_DIGEST_LENGTH, limit - len(head))]


def now_iso() -> str:
    """Return current UTC time in ISO format."""
    return datetime.datetime.now(datetime.UTC).isoformat()


def merge_conditions(
    existing: Iterable[Condition], desired: Iterable[Condition]
) -> list[Condition]:
    """Combine desired conditions with the ones already on an object.

    The transition time of a condition is kept when its status is unchanged
    and set to now otherwise. Existing conditions of other types are kept.
    """
    current = {condition.type: condition for condition in existing}
    merged: dict[str, Condition] = dict(current)

    for condition in desired:
        previous = current.get(condition.type)
        if previous is not None and previous.status == condition.status:
            transition_time = previous.last_transition_time or now_iso()
        else:
            transition_time = now_iso()
        merged[condition.type] = replace(
            condition, last_transition_time=transition_time
        )

    return list(merged.values())


def format_label_selector(labels: Mapping[str, str]) -> str:
    """Render an equality-based label selector string."""
    return ",".join(f"{key}={value}" for key, value in sorted(labels.items()))


def parse_label_selector(selector: str | None) -> dict[str, str]:
    """Parse an equality-based label selector string."""
    result: dict[str, str] = {}
    for term in (selector or "").split(","):
        if "=" in term:
            key, value = term.split("=", 1)
            result[key.strip()] = value.strip()
    return result
