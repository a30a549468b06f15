"""Fetcher implementations."""

from .base import AuthContext, AuthError, Fetcher, FetchError
from .github import GitHubFetcher, auth_from_settings

__all__ = [
    "AuthContext",
    "AuthError",
    "FetchError",
    "Fetcher",
    "GitHubFetcher",
    "auth_from_settings",
]
