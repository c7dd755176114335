"""Label assignment and per-process identity records."""

from roomlog.identity.namer import GERMAN_NAMES, LabelPool
from roomlog.identity.store import IdentityStore

__all__ = ["GERMAN_NAMES", "LabelPool", "IdentityStore"]
