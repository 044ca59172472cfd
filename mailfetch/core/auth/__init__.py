"""
Authentication for email accounts.

- OAuth2: refresh-token exchange for Microsoft accounts (Graph or XOAUTH2 IMAP)
- Proxy pool for outbound HTTP requests
"""

from .proxy_pool import ProxyPool
from .token_manager import TokenManager

__all__ = ['ProxyPool', 'TokenManager']
