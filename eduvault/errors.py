# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for EduVault.

These helpers centralize wording for common configuration errors so that
all modules present consistent, actionable messages.
"""


def explain_invalid_count_env(name: str, value: str | None) -> str:
    """
    Explain that a retention count environment variable is invalid.
    """

    return (
        f"Invalid {name} value: {value!r}. "
        "It must be a positive integer number of backups to keep."
    )


def explain_invalid_interval_env(value: str | None) -> str:
    """
    Explain that EDUVAULT_INTERVAL_HOURS is invalid.
    """

    return (
        f"Invalid EDUVAULT_INTERVAL_HOURS value: {value!r}. "
        "It must be a positive number of hours, e.g. 24 or 0.5."
    )


def explain_invalid_bool_env(name: str, value: str | None) -> str:
    """
    Explain that a boolean environment variable is invalid.
    """

    return (
        f"Invalid {name} value: {value!r}. "
        "Expected one of: 1, 0, true, false, yes, no."
    )


def explain_unknown_kind(value: str | None) -> str:
    """
    Explain that a backup kind is not recognised.
    """

    return (
        f"Unknown backup kind: {value!r}. "
        "Expected 'auto' or 'manual' (or 'all' when listing)."
    )
