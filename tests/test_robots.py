import re

import aiohttp
import pytest

from wikicrawl.crawler.robots import RobotsPolicy, wildcard_to_regex


ROBOTS_URL = "https://en.wikipedia.org/robots.txt"


def matches(wildcard: str, value: str) -> bool:
    return re.match(wildcard_to_regex(wildcard), value) is not None


class TestWildcard:
    def test_star(self):
        assert matches("*bot*", "examplebot")
        assert matches("*", "anything at all")
        assert not matches("*bot", "botnet")

    def test_question_mark(self):
        assert matches("a?c", "abc")
        assert not matches("a?c", "ac")
        assert not matches("a?c", "abbc")

    def test_metacharacters_are_literal(self):
        assert matches("a.c", "a.c")
        assert not matches("a.c", "abc")
        assert matches("bot(1)", "bot(1)")


class TestRulesEvaluation:
    def make_policy(self, text: str, user_agent: str = "wikicrawl") -> RobotsPolicy:
        policy = RobotsPolicy(user_agent)
        policy.load(ROBOTS_URL, text)
        return policy

    def test_first_matching_rule_wins(self):
        policy = self.make_policy(
            "User-agent: *\n"
            "Disallow: /wiki/Special\n"
            "Allow: /wiki/\n"
        )

        assert policy.rules == [("/wiki/Special", False), ("/wiki/", True)]
        assert not policy.allowed("https://en.wikipedia.org/wiki/Special:Random")
        assert policy.allowed("https://en.wikipedia.org/wiki/Dog")

    def test_first_match_is_not_longest_match(self):
        # A broader rule listed first shadows a more specific one.
        policy = self.make_policy(
            "User-agent: *\n"
            "Allow: /wiki/\n"
            "Disallow: /wiki/Special\n"
        )

        assert policy.allowed("https://en.wikipedia.org/wiki/Special:Random")

    def test_unmatched_path_is_allowed(self):
        policy = self.make_policy("User-agent: *\nDisallow: /w/\n")

        assert policy.allowed("https://en.wikipedia.org/wiki/Dog")
        assert not policy.allowed("https://en.wikipedia.org/w/index.php?title=Dog")

    def test_other_host_is_allowed(self):
        policy = self.make_policy("User-agent: *\nDisallow: /\n")

        assert not policy.allowed("https://en.wikipedia.org/wiki/Dog")
        assert policy.allowed("https://de.wikipedia.org/wiki/Hund")

    def test_nothing_loaded_allows_everything(self):
        policy = RobotsPolicy("wikicrawl")

        assert policy.allowed("https://en.wikipedia.org/wiki/Special:Random")

    def test_only_matching_user_agent_sections_are_recorded(self):
        policy = self.make_policy(
            "User-agent: Googlebot\n"
            "Disallow: /google-only\n"
            "\n"
            "User-agent: wiki*\n"
            "Disallow: /wiki/Special\n"
            "\n"
            "User-agent: Otherbot\n"
            "Disallow: /other-only\n"
        )

        assert policy.rules == [("/wiki/Special", False)]
        assert policy.matching is False

    def test_directives_are_case_insensitive_and_comments_ignored(self):
        policy = self.make_policy(
            "USER-AGENT: *   # everyone\n"
            "disallow: /private # keep out\n"
        )

        assert policy.rules == [("/private", False)]

    def test_paths_are_percent_decoded(self):
        policy = self.make_policy("User-agent: *\nDisallow: /wiki/Special%3ARandom\n")

        assert policy.rules == [("/wiki/Special:Random", False)]
        assert not policy.allowed("https://en.wikipedia.org/wiki/Special:Random")

    def test_repeated_paths_are_appended(self):
        policy = self.make_policy(
            "User-agent: *\n"
            "Disallow: /wiki/A\n"
            "Allow: /wiki/A\n"
        )

        assert policy.rules == [("/wiki/A", False), ("/wiki/A", True)]
        assert not policy.allowed("https://en.wikipedia.org/wiki/A")

    def test_empty_disallow_is_ignored(self):
        policy = self.make_policy("User-agent: *\nDisallow: # nothing\n")

        assert policy.rules == []
        assert policy.allowed("https://en.wikipedia.org/wiki/Dog")


class TestParse:
    @pytest.mark.asyncio
    async def test_loads_rules_from_host(self, stub_wiki):
        stub_wiki.robots = "User-agent: *\nDisallow: /wiki/Special:\n"
        policy = RobotsPolicy("testbot")

        async with aiohttp.ClientSession() as session:
            assert await policy.parse(stub_wiki.url("/wiki/Special:Random"), session)

        assert "/robots.txt" in stub_wiki.hits
        assert not policy.allowed(stub_wiki.url("/wiki/Special:Random"))
        assert policy.allowed(stub_wiki.url("/wiki/Dog"))

    @pytest.mark.asyncio
    async def test_missing_robots_allows_everything(self, stub_wiki):
        policy = RobotsPolicy("testbot")

        async with aiohttp.ClientSession() as session:
            assert await policy.parse(stub_wiki.url("/wiki/Seed"), session)

        assert policy.rules == []
        assert policy.allowed(stub_wiki.url("/wiki/Special:Random"))

    @pytest.mark.asyncio
    async def test_failed_fetch_allows_everything(self):
        policy = RobotsPolicy("testbot")

        async with aiohttp.ClientSession() as session:
            # Nothing listens on port 1.
            assert await policy.parse("http://127.0.0.1:1/wiki/Seed", session, timeout=5)

        assert policy.allowed("http://127.0.0.1:1/wiki/Special:Random")

    @pytest.mark.asyncio
    async def test_malformed_seed(self):
        policy = RobotsPolicy("testbot")

        async with aiohttp.ClientSession() as session:
            assert not await policy.parse("not a url", session)
