# posgradobot/core/errors.py
"""
Error kinds recognised by the flow engine and the orchestrator.

None of them terminates the process; each one has a local recovery:
 - ValidationFailure: re-prompt the same node
 - LookupMiss: polite message + redirect to a safe node
 - StorageFailure: fall back to an empty in-memory default (never shown to users)
 - DeliveryFailure: bounded retries, then text-only fallback
"""
from typing import Optional


class BotError(Exception):
    pass


class ValidationFailure(BotError):
    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "invalid reply")
        self.message = message


class LookupMiss(BotError):
    def __init__(self, message: str, redirect: str):
        super().__init__(message)
        self.message = message
        self.redirect = redirect


class StorageFailure(BotError):
    pass


class DeliveryFailure(BotError):
    pass
