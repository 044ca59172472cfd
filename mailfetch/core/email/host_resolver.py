"""
IMAP host resolution from email domains.

Rules come from a JSON document:

    {"domains": [
        {"pattern": "outlook.com", "host": "outlook.office365.com"},
        {"pattern": ["*.edu", "*.ac.uk"], "host": "imap.{domain}"}
    ]}

Rules are checked in order and the first match wins. A pattern matches the
domain exactly, or as a glob when it contains '*'. Without a match the host
defaults to imap.<domain>.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple
import json
import logging
import re

logger = logging.getLogger(__name__)

DOMAIN_PLACEHOLDER = "{domain}"


def domain_of(email: str) -> str:
    """Lower-cased text after the '@'"""
    if "@" not in email:
        raise ValueError(f"Not an email address: {email!r}")
    return email.split("@", 1)[1].lower()


def pattern_matches(domain: str, pattern: str) -> bool:
    """Exact match, or full-match glob where '*' is any run of characters"""
    if pattern == domain:
        return True
    if "*" in pattern:
        regex = ".*".join(re.escape(part) for part in pattern.split("*"))
        return re.fullmatch(regex, domain) is not None
    return False


def _as_patterns(value: Any) -> Tuple[str, ...]:
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value)
    return (str(value),)


@dataclass(frozen=True)
class HostRule:
    """One {pattern, host} entry"""
    patterns: Tuple[str, ...]
    host: str

    @classmethod
    def from_dict(cls, entry: Dict[str, Any]) -> "HostRule":
        return cls(patterns=_as_patterns(entry["pattern"]), host=str(entry["host"]))

    def matches(self, domain: str) -> bool:
        return any(pattern_matches(domain, pattern) for pattern in self.patterns)

    def host_for(self, domain: str) -> str:
        return self.host.replace(DOMAIN_PLACEHOLDER, domain)


class HostResolver:
    """Maps an email address to its IMAP server hostname"""

    def __init__(self, rules: Sequence[HostRule] = ()):
        self.rules: List[HostRule] = list(rules)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "HostResolver":
        rules = []
        for entry in document.get("domains", []):
            try:
                rules.append(HostRule.from_dict(entry))
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed host rule {entry!r}: {e}")
        return cls(rules)

    @classmethod
    def from_file(cls, path: Optional[str]) -> "HostResolver":
        """
        Load rules from a hosts JSON file.

        An unreadable file yields an empty rule list, so every domain falls
        back to imap.<domain>.
        """
        if not path:
            return cls()
        try:
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error reading {path}: {e}")
            return cls()

        resolver = cls.from_document(document)
        logger.debug(f"Loaded {len(resolver.rules)} host rules from {path}")
        return resolver

    def resolve_host(self, email: str) -> str:
        domain = domain_of(email)
        for rule in self.rules:
            if rule.matches(domain):
                return rule.host_for(domain)
        return f"imap.{domain}"


def merge_host_rules(document: Dict[str, Any]) -> Dict[str, Any]:
    """
    Collapse entries that share a host into one entry with a pattern list.

    The first entry for a host keeps its position; later entries for the same
    host are removed and their patterns appended. Entries that are never
    merged keep their original pattern shape (string or list).

    Returns:
        New document with the merged "domains" list
    """
    merged: Dict[str, Dict[str, Any]] = {}
    domains: List[Dict[str, Any]] = []

    for entry in document.get("domains", []):
        host = entry["host"]
        if host not in merged:
            first = dict(entry)
            merged[host] = first
            domains.append(first)
            continue

        first = merged[host]
        patterns = list(_as_patterns(first["pattern"]))
        patterns.extend(_as_patterns(entry["pattern"]))
        first["pattern"] = patterns

    result = dict(document)
    result["domains"] = domains
    return result

