#!/usr/bin/env python3
"""
Host Rules Merge Script

Collapses host-rule entries that point at the same IMAP host into a single
entry with a pattern list. First-seen order is kept.

Usage:
    python3 scripts/merge_host_rules.py config/hosts.json
    python3 scripts/merge_host_rules.py config/hosts.json --output merged.json
"""
import sys
import os
import argparse
import json

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from mailfetch.core.email.host_resolver import merge_host_rules


def main():
    parser = argparse.ArgumentParser(description="Merge host rules that share the same host")
    parser.add_argument("hosts_file", help="Hosts JSON file ({\"domains\": [...]})")
    parser.add_argument("--output", help="Write here instead of rewriting hosts_file in place")
    args = parser.parse_args()

    try:
        with open(args.hosts_file, "r", encoding="utf-8") as f:
            document = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"❌ Cannot read {args.hosts_file}: {e}")
        return 1

    before = len(document.get("domains", []))
    merged = merge_host_rules(document)
    after = len(merged["domains"])

    output = args.output or args.hosts_file
    with open(output, "w", encoding="utf-8") as f:
        json.dump(merged, f, indent=2, ensure_ascii=False)
        f.write("\n")

    print(f"✅ Merged {before} rules into {after} ({before - after} removed), written to {output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
