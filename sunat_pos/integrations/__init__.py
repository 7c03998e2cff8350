"""Outbound services used around a sale: identity lookup and receipt delivery."""
from .lookup import IdentityLookup, LookupResult
from .whatsapp import DispatchResult, WhatsAppDispatcher

__all__ = ["IdentityLookup", "LookupResult", "DispatchResult", "WhatsAppDispatcher"]
