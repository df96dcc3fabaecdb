"""Remediation guidance for failing compliance checks."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from complyguard.models import CheckStatus, CheckType, ComplianceStatus

AUTO_FIX_CHECK = "Auto-Fix"
PITR_ADDON_URL = "https://supabase.com/dashboard/project/_/settings/addons"


class FixPriority(str, Enum):
    """How strongly a fix is advised."""

    REQUIRED = "required"
    RECOMMENDED = "recommended"
    SUGGESTED = "suggested"


@dataclass(frozen=True)
class Fix:
    """A remediation step for one failing check."""

    check_type: CheckType
    description: str
    impact: str
    priority: FixPriority
    commands: tuple[str, ...] = field(default_factory=tuple)
    external_url: str | None = None


_FIXES = {
    CheckType.MFA: Fix(
        check_type=CheckType.MFA,
        description="Enable Multi-Factor Authentication",
        impact="Enhanced security for user accounts by requiring a second verification factor",
        priority=FixPriority.RECOMMENDED,
        commands=(
            "supabase auth config set auth.mfa.enabled=true",
            'create policy "Enforce MFA for all end users." on auth.users as restrictive '
            "to authenticated using ( (auth.jwt()->>'aal') = 'aal2' );",
        ),
    ),
    CheckType.RLS: Fix(
        check_type=CheckType.RLS,
        description="Enable Row-Level Security policies",
        impact="Improved data security by restricting access to rows based on user permissions",
        priority=FixPriority.REQUIRED,
        commands=(
            "ALTER TABLE table_name ENABLE ROW LEVEL SECURITY;",
            'CREATE POLICY "Users can only view their own data" ON table_name '
            "FOR ALL USING (auth.uid() = user_id);",
        ),
    ),
    CheckType.PITR: Fix(
        check_type=CheckType.PITR,
        description="Enable Point-in-Time Recovery",
        impact="Enhanced data resilience by allowing database restoration to any point in time",
        priority=FixPriority.SUGGESTED,
        external_url=PITR_ADDON_URL,
    ),
}


def required_fixes(status: ComplianceStatus) -> list[Fix]:
    """Fixes for every check that is known to be failing.

    Errored checks get no fix; their outcome is unknown.
    """
    return [
        _FIXES[check_type]
        for check_type in CheckType
        if status.get(check_type).status is CheckStatus.FAILED
    ]


def unprotected_tables(status: ComplianceStatus) -> list[str]:
    """Qualified names of tables without row-level security."""
    return [t.qualified_name for t in status.rls.details if not t.compliant]


def users_without_mfa(status: ComplianceStatus) -> list[str]:
    """Emails (or ids) of users lacking a verified factor."""
    return [u.email or u.id for u in status.mfa.details if not u.compliant]
