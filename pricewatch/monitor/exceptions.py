"""Notification delivery exceptions."""

from __future__ import annotations


class DispatchError(Exception):
    """An email provider rejected or failed to accept a message."""
