"""
Admin form actions: anti-forgery tokens, capability checks and notices.
"""

from .actions import AdminActions, ActionTokens, ActionRequest, AdminUser, Notice

__all__ = ["AdminActions", "ActionTokens", "ActionRequest", "AdminUser", "Notice"]
