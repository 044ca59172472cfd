"""
Test IMAP host resolution and rule merging.
"""
import json

import pytest

from mailfetch.core.email.host_resolver import (
    HostResolver,
    HostRule,
    domain_of,
    merge_host_rules,
    pattern_matches,
)


@pytest.fixture
def resolver():
    return HostResolver.from_document({
        "domains": [
            {"pattern": "outlook.com", "host": "outlook.office365.com"},
            {"pattern": ["*.edu", "*.ac.uk"], "host": "mail.{domain}"},
            {"pattern": "yahoo.*", "host": "imap.mail.yahoo.com"},
            {"pattern": "*.com", "host": "catchall.example"},
        ]
    })


class TestPatternMatching:
    """Test domain pattern matching"""

    def test_exact_match(self):
        assert pattern_matches("outlook.com", "outlook.com")
        assert not pattern_matches("outlook.co", "outlook.com")

    def test_glob_is_full_match(self):
        assert pattern_matches("cs.mit.edu", "*.edu")
        assert not pattern_matches("cs.mit.edu.au", "*.edu")

    def test_star_matches_empty_run(self):
        assert pattern_matches(".edu", "*.edu")

    def test_other_characters_are_literal(self):
        """A dot in a pattern is not a regex wildcard"""
        assert not pattern_matches("yahooXcom", "yahoo.*")
        assert pattern_matches("a+b.com", "a+b.*")

    def test_domain_is_lowercased(self):
        assert domain_of("Someone@Outlook.COM") == "outlook.com"

    def test_domain_requires_at_sign(self):
        with pytest.raises(ValueError):
            domain_of("not-an-email")


class TestHostResolver:
    """Test resolve_host"""

    def test_exact_rule(self, resolver):
        assert resolver.resolve_host("a@outlook.com") == "outlook.office365.com"

    def test_first_matching_rule_wins(self, resolver):
        """outlook.com also matches *.com, but the earlier rule wins"""
        assert resolver.resolve_host("a@OUTLOOK.com") == "outlook.office365.com"
        assert resolver.resolve_host("a@gmail.com") == "catchall.example"

    def test_pattern_list_and_domain_placeholder(self, resolver):
        assert resolver.resolve_host("a@ox.ac.uk") == "mail.ox.ac.uk"
        assert resolver.resolve_host("a@cs.mit.edu") == "mail.cs.mit.edu"

    def test_rule_order_matters(self):
        resolver = HostResolver.from_document({"domains": [
            {"pattern": "*.foo.com", "host": "a"},
            {"pattern": "mail.foo.com", "host": "b"},
        ]})
        assert resolver.resolve_host("x@mail.foo.com") == "a"

    def test_glob_requires_subdomain(self):
        resolver = HostResolver.from_document({"domains": [{"pattern": "*.example.com", "host": "h"}]})
        assert resolver.resolve_host("x@mail.example.com") == "h"
        assert resolver.resolve_host("x@example.com") == "imap.example.com"

    def test_domain_substitution(self):
        resolver = HostResolver.from_document({"domains": [{"pattern": "*.io", "host": "imap.{domain}"}]})
        assert resolver.resolve_host("x@x.io") == "imap.x.io"

    def test_no_match_defaults_to_imap_prefix(self, resolver):
        assert resolver.resolve_host("user@example.org") == "imap.example.org"

    def test_empty_resolver(self):
        assert HostResolver().resolve_host("x@gmx.de") == "imap.gmx.de"

    def test_malformed_rule_skipped(self):
        resolver = HostResolver.from_document({"domains": [{"host": "no-pattern"}, {"pattern": "a.com", "host": "h"}]})
        assert len(resolver.rules) == 1
        assert resolver.resolve_host("x@a.com") == "h"

    def test_from_file(self, tmp_path):
        path = tmp_path / "hosts.json"
        path.write_text(json.dumps({"domains": [{"pattern": "a.com", "host": "imap.host.net"}]}))

        resolver = HostResolver.from_file(str(path))
        assert resolver.resolve_host("x@a.com") == "imap.host.net"

    def test_unreadable_file_behaves_as_empty(self, tmp_path):
        path = tmp_path / "hosts.json"
        path.write_text("{not json")

        resolver = HostResolver.from_file(str(path))
        assert resolver.rules == []
        assert resolver.resolve_host("x@a.com") == "imap.a.com"

    def test_missing_file_behaves_as_empty(self, tmp_path):
        resolver = HostResolver.from_file(str(tmp_path / "missing.json"))
        assert resolver.resolve_host("x@a.com") == "imap.a.com"

    def test_rule_from_dict(self):
        rule = HostRule.from_dict({"pattern": "a.com", "host": "h.{domain}"})
        assert rule.patterns == ("a.com",)
        assert rule.host_for("a.com") == "h.a.com"


class TestMergeHostRules:
    """Test merging rules that share a host"""

    def test_merges_in_first_seen_order(self):
        document = {"domains": [
            {"pattern": "a.com", "host": "h1"},
            {"pattern": "b.com", "host": "h2"},
            {"pattern": ["c.com", "d.com"], "host": "h1"},
            {"pattern": "e.com", "host": "h1"},
        ]}

        merged = merge_host_rules(document)

        assert merged["domains"] == [
            {"pattern": ["a.com", "c.com", "d.com", "e.com"], "host": "h1"},
            {"pattern": "b.com", "host": "h2"},
        ]

    def test_input_not_mutated(self):
        document = {"domains": [{"pattern": "a.com", "host": "h"}, {"pattern": "b.com", "host": "h"}]}
        merge_host_rules(document)
        assert document["domains"][0]["pattern"] == "a.com"
        assert len(document["domains"]) == 2

    def test_merged_rules_resolve_the_same(self):
        document = {"domains": [
            {"pattern": "a.com", "host": "h1"},
            {"pattern": "*.org", "host": "h2"},
            {"pattern": "b.com", "host": "h1"},
        ]}
        before = HostResolver.from_document(document)
        after = HostResolver.from_document(merge_host_rules(document))

        for email in ("x@a.com", "x@b.com", "x@c.org", "x@d.net"):
            assert before.resolve_host(email) == after.resolve_host(email)
