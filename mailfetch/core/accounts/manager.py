"""
Account Store - loads, deduplicates and persists email accounts.

Supported file layouts:
- JSON array:            [{"email": ..., "password": ...}, ...]
- JSON object per line:  {"email": ...}\\n{"email": ...}
- YAML:                  accounts: [...]  (or a bare list)

Token state (access token, expiry, protocol) is written back into the same
records, keyed by email, after a batch run.
"""
from typing import Any, Dict, List, Optional
from pathlib import Path
import json
import logging

import yaml

from .models import Account, AuthMode, lookup_key
from mailfetch.core.errors import AccountFileError

logger = logging.getLogger(__name__)

FORMAT_JSON_ARRAY = "json_array"
FORMAT_JSON_LINES = "json_lines"
FORMAT_YAML = "yaml"


class AccountStore:
    """
    File-backed account list.

    Usage:
        store = AccountStore("emails.txt")
        accounts = store.load()
        ...
        store.save(accounts)
    """

    def __init__(self, path: str, invalid_path: Optional[str] = None):
        """
        Args:
            path: Account file
            invalid_path: Side file collecting accounts that failed in a run
        """
        self.path = Path(path)
        self.invalid_path = Path(invalid_path) if invalid_path else None
        self.format: Optional[str] = None
        self.duplicates = 0
        self._yaml_wrapped = False

    def _read_records(self) -> List[Dict[str, Any]]:
        """Parse the account file into raw records"""
        if not self.path.exists():
            raise AccountFileError(f"Account file {self.path} not found")

        content = self.path.read_text(encoding="utf-8").strip()
        if not content:
            return []

        try:
            if self.path.suffix.lower() in (".yaml", ".yml"):
                self.format = FORMAT_YAML
                data = yaml.safe_load(content)
                self._yaml_wrapped = isinstance(data, dict)
                records = data.get("accounts", []) if isinstance(data, dict) else data
            elif content.startswith("[") and content.endswith("]"):
                self.format = FORMAT_JSON_ARRAY
                records = json.loads(content)
            elif content.startswith("{") and content.endswith("}"):
                self.format = FORMAT_JSON_LINES
                records = [json.loads(line) for line in content.splitlines() if line.strip()]
            else:
                raise AccountFileError(f"Unsupported account file format: {self.path}")
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise AccountFileError(f"Failed to parse {self.path}: {e}") from e

        if not isinstance(records, list):
            raise AccountFileError(f"Expected a list of accounts in {self.path}")
        return [record for record in records if isinstance(record, dict)]

    def load(self) -> List[Account]:
        """
        Load accounts, dropping duplicate emails (first occurrence wins).

        Returns:
            Accounts in file order
        """
        accounts: List[Account] = []
        seen = set()
        self.duplicates = 0

        for index, record in enumerate(self._read_records()):
            try:
                account = Account.from_record(record)
            except ValueError as e:
                logger.error(f"Failed to load account record #{index + 1}: {e}")
                continue

            if account.email in seen:
                self.duplicates += 1
                continue
            seen.add(account.email)
            accounts.append(account)

        if self.duplicates:
            logger.error(f"Found {self.duplicates} duplicate email accounts")

        logger.info(f"Loaded {len(accounts)} account(s) from {self.path}")
        return accounts

    def save(self, accounts: List[Account]) -> bool:
        """
        Write refreshed token state back to the account file.

        Skipped when there is nothing to refresh (every account uses a password).

        Returns:
            True if the file was rewritten
        """
        if not accounts:
            return False
        if all(account.mode is AuthMode.IMAP_BASIC for account in accounts):
            logger.debug("All accounts use password auth, nothing to save")
            return False

        logger.info("Saving email accounts...")
        records = self._read_records()

        by_email: Dict[str, Dict[str, Any]] = {}
        unique_records = []
        for record in records:
            email = lookup_key(record, "email")
            if email in by_email:
                continue
            by_email[email] = record
            unique_records.append(record)

        for account in accounts:
            record = by_email.get(account.email)
            if record is not None:
                account.apply_to_record(record)

        self._write_records(unique_records)
        return True

    def _write_records(self, records: List[Dict[str, Any]]):
        if self.format == FORMAT_YAML:
            data = {"accounts": records} if self._yaml_wrapped else records
            text = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
        elif self.format == FORMAT_JSON_ARRAY:
            text = json.dumps(records, ensure_ascii=False)
        else:
            text = "\n".join(json.dumps(record, ensure_ascii=False) for record in records)

        self.path.write_text(text + "\n", encoding="utf-8")
        logger.debug(f"Wrote {len(records)} account record(s) to {self.path}")

    def record_invalid(self, account: Account, reason: Optional[str] = None):
        """Append a failed account to the invalid-accounts file (JSON lines)"""
        if self.invalid_path is None:
            return

        entry = account.to_record()
        if reason:
            entry["error"] = reason

        try:
            self.invalid_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.invalid_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as e:
            logger.warning(f"Failed to record invalid account {account.email}: {e}")
