"""Inbox fetching module"""
from .models import MessageRecord, MessageSource
from .content import ExtractedContent, extract_content
from .lazy_body import LazyBody, LoadState
from .host_resolver import HostResolver, merge_host_rules
from .imap_session import Session, SessionCache
from .fetcher import MessageFetcher
from .graph_client import GraphClient
from .protocol_selector import FetchResult, ProtocolSelector

__all__ = [
    "MessageRecord",
    "MessageSource",
    "ExtractedContent",
    "extract_content",
    "LazyBody",
    "LoadState",
    "HostResolver",
    "merge_host_rules",
    "Session",
    "SessionCache",
    "MessageFetcher",
    "GraphClient",
    "FetchResult",
    "ProtocolSelector",
]
