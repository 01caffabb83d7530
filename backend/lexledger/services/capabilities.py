"""
LexLedger Practice Billing
Role capabilities

The core never reads session state. Callers build a Capabilities object
from whatever identifies the user and pass it in.
"""
from dataclasses import dataclass
from typing import Optional

APPROVER_ROLES = frozenset({"superadmin", "partner", "admin"})
BILLING_ROLES = frozenset({"superadmin", "partner", "admin", "accountant", "it"})

ROLE_ALIASES = {
    "super_admin": "superadmin",
}


def normalize_role(role: Optional[str]) -> str:
    if not role:
        return ""
    key = role.strip().lower().replace(" ", "_")
    return ROLE_ALIASES.get(key, key)


@dataclass(frozen=True)
class Capabilities:
    role: str = ""

    def can_approve_timesheets(self) -> bool:
        return self.role in APPROVER_ROLES

    def can_manage_invoices(self) -> bool:
        return self.role in BILLING_ROLES

    @classmethod
    def for_role(cls, role: Optional[str]) -> "Capabilities":
        return cls(role=normalize_role(role))
