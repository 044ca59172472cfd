"""
Account Module

Account model, authentication modes and the file-backed account store.
"""
from .models import Account, AuthMode, lookup_key
from .manager import AccountStore

__all__ = ['Account', 'AuthMode', 'AccountStore', 'lookup_key']
