"""Evidence persistence."""

from .evidence_ledger import EvidenceBackend, EvidenceLedger
from .sql_store import SqlEvidenceStore, ensure_schema
from .supabase_store import SupabaseEvidenceStore

__all__ = [
    "EvidenceBackend",
    "EvidenceLedger",
    "SqlEvidenceStore",
    "SupabaseEvidenceStore",
    "ensure_schema",
]
