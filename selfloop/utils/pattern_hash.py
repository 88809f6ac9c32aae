"""
Pattern Hash Utility
====================
Generates stable identifiers for learned patterns.

A pattern id combines:
    - outcome class ("success" / "failure")
    - the sorted feature descriptors

Rules:
    - Feature order never matters: features are sorted before hashing.
    - Same class + same feature set always yields the same id.
    - SHA-256 truncated to 16 hex chars.
"""
import hashlib
from typing import Iterable


def generate_pattern_id(outcome: str, features: Iterable[str]) -> str:
    """
    Generate a stable pattern identifier.

    Parameters
    ----------
    outcome : str
        Outcome class of the observation.
    features : Iterable[str]
        Feature descriptors extracted from the observation.

    Returns
    -------
    str
        "{outcome}_{16 hex chars}".
    """
    raw = f"{outcome}:{'||'.join(sorted(features))}"
    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]
    return f"{outcome}_{digest}"
