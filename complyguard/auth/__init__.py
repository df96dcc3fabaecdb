"""Credential resolution."""

from .credentials import (
    AllProjects,
    CredentialResolver,
    ResolvedCredentials,
    SettingsCredentialSource,
    SingleProject,
    StaticCredentialSource,
    StoredCredentials,
    SupabaseCredentialSource,
    TokenClass,
    classify_token,
)

__all__ = [
    "AllProjects",
    "CredentialResolver",
    "ResolvedCredentials",
    "SettingsCredentialSource",
    "SingleProject",
    "StaticCredentialSource",
    "StoredCredentials",
    "SupabaseCredentialSource",
    "TokenClass",
    "classify_token",
]
