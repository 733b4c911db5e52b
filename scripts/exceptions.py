#!/usr/bin/env python3
"""
Route Guard Exceptions Module

Custom exception classes for the route guard scanner.
Centralized exception definitions for consistent error handling.
"""

__all__ = [
    "GuardError",
    "ScannerError",
    "GitError",
    "PolicyError",
    "BaselineError",
]


class GuardError(Exception):
    """Base exception for all guard-related errors"""
    pass


class ScannerError(GuardError):
    """Raised when the scan configuration has errors"""
    pass


class GitError(GuardError):
    """Raised when a git command fails or git is unavailable"""
    pass


class PolicyError(GuardError):
    """Raised when an in-memory policy object cannot be constructed"""
    pass


class BaselineError(GuardError):
    """Raised when a required baseline file is missing or unreadable"""
    pass
