"""
Outbound HTTP proxy pool.

One proxy per line (host:port, user:pass@host:port or a full URL).
A proxy is picked at random per request; an empty pool means direct connections.
"""
from pathlib import Path
from typing import List, Optional, Sequence
import logging
import random

logger = logging.getLogger(__name__)


def normalize_proxy(line: str) -> str:
    """Add the http:// scheme to bare host:port entries"""
    line = line.strip()
    if "://" not in line:
        return f"http://{line}"
    return line


class ProxyPool:
    """Random picker over a fixed list of proxy URLs"""

    def __init__(self, proxies: Sequence[str] = (), rng: Optional[random.Random] = None):
        self.proxies: List[str] = [normalize_proxy(p) for p in proxies if p and p.strip()]
        self._rng = rng or random.Random()

    @classmethod
    def from_file(cls, path: Optional[str]) -> "ProxyPool":
        """
        Load proxies from a text file.

        Blank lines and lines starting with '#' are ignored. A missing file
        gives an empty pool.
        """
        lines: List[str] = []
        if path and Path(path).exists():
            lines = [
                line for line in Path(path).read_text(encoding="utf-8").splitlines()
                if line.strip() and not line.lstrip().startswith("#")
            ]

        pool = cls(lines)
        if not pool:
            logger.warning("No proxies found, it's recommended to use proxies.")
        else:
            logger.info(f"Loaded {len(pool)} proxies from {path}")
        return pool

    def pick(self) -> Optional[str]:
        """Random proxy URL, or None for a direct connection"""
        if not self.proxies:
            return None
        return self._rng.choice(self.proxies)

    def __len__(self) -> int:
        return len(self.proxies)

    def __bool__(self) -> bool:
        return bool(self.proxies)
