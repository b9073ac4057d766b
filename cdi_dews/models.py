"""
Data model (users and sessions)
===============================

Users are immutable records (``frozen=True``): a role change or a new place
of interest means a new record, never an in-place edit.
"""

from dataclasses import dataclass, field
from typing import List, Optional

ADMIN = "admin"
REGIONAL_OFFICER = "regional_officer"
WOREDA_OFFICER = "woreda_officer"

ROLES = [ADMIN, REGIONAL_OFFICER, WOREDA_OFFICER]

ROLE_LABELS = {
    ADMIN: "Admin",
    REGIONAL_OFFICER: "Regional Officer",
    WOREDA_OFFICER: "Woreda Officer",
}


@dataclass(frozen=True)
class PlaceOfInterest:
    region: str
    woreda: Optional[str] = None


@dataclass(frozen=True)
class User:
    """One registered dashboard user."""
    id: str
    name: str
    email: str
    role: str
    allowed_regions: List[str] = field(default_factory=list)
    place_of_interest: PlaceOfInterest = None


@dataclass(frozen=True)
class Session:
    """Explicit login context handed to the dashboard controller."""
    token: str
    user: User
