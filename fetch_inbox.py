#!/usr/bin/env python3
"""
Inbox Fetcher - Read the newest messages of every account

Loads the account store, refreshes OAuth tokens, reads each inbox over Graph
or IMAP, prints subject / sender / preview per message and writes refreshed
tokens back to the account file. Failed accounts are appended to the invalid
accounts file.

Usage:
    # Sequential run with defaults from .env
    python3 fetch_inbox.py

    # Explicit files, 10 newest messages per IMAP inbox
    python3 fetch_inbox.py --accounts emails.txt --hosts config/hosts.json --window 10

    # Parallel run (bodies are read eagerly)
    python3 fetch_inbox.py --parallel --workers 8

Options:
    --accounts PATH     Account file (JSON array, JSON lines or YAML)
    --hosts PATH        Domain -> IMAP host rules (JSON)
    --proxies PATH      Proxy list, one per line
    --window N          Newest messages to read per IMAP inbox (default: 5)
    --parallel          Process accounts concurrently
    --workers N         Worker threads for --parallel (default: 4)
    --eager             Download IMAP bodies immediately instead of on first access
    --verbose           Debug logging
"""
import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables FIRST (before settings are read)
load_dotenv()

logger = logging.getLogger(__name__)

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from mailfetch.core.accounts.manager import AccountStore
from mailfetch.core.batch import InboxBatchRunner, build_selector
from mailfetch.core.config import get_settings
from mailfetch.core.email.protocol_selector import FetchResult
from mailfetch.core.errors import AccountFileError


def print_result(index: int, result: FetchResult):
    """Print one account's messages, separated by dashes"""
    if not result.ok:
        return

    print(f"\n[{index}] {result.account.email} ({result.account.mode.value})")
    if not result.messages:
        print("  (inbox is empty)")
    for message in result.messages:
        print("-" * 60)
        print(message.summary())
    print("-" * 60)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Fetch the newest inbox messages of every configured account",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--accounts', type=str, default=None,
                        help='Account file (default: ACCOUNTS_FILE or emails.txt)')
    parser.add_argument('--hosts', type=str, default=None,
                        help='Host rules file (default: HOSTS_FILE or hosts.json)')
    parser.add_argument('--proxies', type=str, default=None,
                        help='Proxy list (default: PROXIES_FILE or proxies.txt)')
    parser.add_argument('--window', type=int, default=None,
                        help='Newest messages to read per IMAP inbox (default: 5)')
    parser.add_argument('--parallel', action='store_true',
                        help='Process accounts concurrently')
    parser.add_argument('--workers', type=int, default=None,
                        help='Worker threads for --parallel (default: 4)')
    parser.add_argument('--eager', action='store_true',
                        help='Download IMAP bodies immediately')
    parser.add_argument('--verbose', action='store_true',
                        help='Show debug logging')

    args = parser.parse_args()

    settings = get_settings()
    overrides = {}
    if args.window is not None:
        overrides['imap_window_size'] = args.window
    if args.parallel:
        overrides['multi_threaded'] = True
    if args.workers is not None:
        overrides['max_workers'] = args.workers
    if args.eager:
        overrides['lazy_load'] = False
    if overrides:
        settings = settings.model_copy(update=overrides)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.INFO),
        format=settings.log_format,
    )
    # Suppress verbose HTTP logging
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    store = AccountStore(args.accounts or settings.accounts_file, settings.invalid_accounts_file)
    selector = build_selector(settings, hosts_file=args.hosts, proxies_file=args.proxies)
    runner = InboxBatchRunner(
        store,
        selector,
        max_workers=settings.max_workers,
        on_result=print_result,
    )

    try:
        report = runner.run()
    except AccountFileError as e:
        logger.error(f"Cannot load accounts: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    finally:
        selector.session_cache.evict()

    print("\n" + "=" * 60)
    print(f"Accounts: {len(report.results)}  "
          f"Succeeded: {len(report.succeeded)}  "
          f"Failed: {len(report.failed)}  "
          f"Messages: {report.message_count}")
    if report.failed:
        print(f"Failed accounts were appended to {settings.invalid_accounts_file}")
    print("=" * 60)

    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(main())
