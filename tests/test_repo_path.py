#!/usr/bin/env python3
"""
test_repo_path.py - Tests for repository paths and name escaping.

Tests:
1. Parsing and normalization
2. Parent/ancestor navigation, root and unset sentinel
3. Prefix checks on segment boundaries
4. Platform name escaping in both directions
"""
from __future__ import annotations

import pytest

from cp_convert.repo_path import RepoPath, platform_name, repository_name


class TestParsing:
    """Normalization of string paths."""

    def test_duplicate_and_trailing_slashes_collapse(self):
        assert str(RepoPath.parse("//content///site/")) == "/content/site"

    def test_missing_leading_slash_assumed(self):
        assert RepoPath.parse("content/site") == RepoPath.parse("/content/site")

    def test_root(self):
        root = RepoPath.parse("/")
        assert root.is_root
        assert root == RepoPath.root()
        assert str(root) == "/"
        assert len(root) == 0

    def test_none_is_unset_sentinel(self):
        unset = RepoPath.parse(None)
        assert unset.sentinel
        assert not unset.is_root
        assert str(unset) == ""
        assert unset != RepoPath.root()

    def test_paths_are_hashable_values(self):
        assert len({RepoPath.parse("/a/b"), RepoPath.parse("a/b/"), RepoPath.parse("/a")}) == 2


class TestNavigation:
    """parent() and ancestors()."""

    def test_parent(self):
        assert RepoPath.parse("/a/b/c").parent() == RepoPath.parse("/a/b")

    def test_parent_of_top_level_is_root(self):
        assert RepoPath.parse("/a").parent().is_root

    def test_parent_of_root_and_sentinel_is_none(self):
        assert RepoPath.root().parent() is None
        assert RepoPath.unset().parent() is None

    def test_ancestors_exclude_root(self):
        ancestors = [str(p) for p in RepoPath.parse("/a/b/c").ancestors()]
        assert ancestors == ["/a/b", "/a"]

    def test_child(self):
        assert str(RepoPath.parse("/content").child("cq:tags")) == "/content/cq:tags"


class TestStartsWith:
    """Prefix checks compare whole segments."""

    def test_equal_path_is_prefix(self):
        path = RepoPath.parse("/home/users/system")
        assert path.starts_with(RepoPath.parse("/home/users/system"))

    def test_ancestor_is_prefix(self):
        assert RepoPath.parse("/home/users/system/foo").starts_with(RepoPath.parse("/home/users"))

    def test_string_prefix_is_not_segment_prefix(self):
        assert not RepoPath.parse("/home/users/test2").starts_with(RepoPath.parse("/home/users/test"))

    def test_root_prefixes_everything(self):
        assert RepoPath.parse("/a").starts_with(RepoPath.root())

    def test_sentinel_never_matches(self):
        assert not RepoPath.parse("/a").starts_with(RepoPath.unset())
        assert not RepoPath.unset().starts_with(RepoPath.root())


class TestOrdering:
    """Paths sort by their string form."""

    def test_sorted_by_string(self):
        paths = [RepoPath.parse(p) for p in ("/b", "/a/b", "/a", "/a-b")]
        assert [str(p) for p in sorted(paths)] == ["/a", "/a-b", "/a/b", "/b"]


class TestPlatformNames:
    """Escaping between repository and on-disk names."""

    @pytest.mark.parametrize("name,escaped", [
        ("cq:tags", "_cq_tags"),
        ("jcr:content", "_jcr_content"),
        ("plain", "plain"),
        ("_private", "_private"),
        ("_a_b", "__a_b"),
        ("a*b", "a%2ab"),
    ])
    def test_platform_name(self, name, escaped):
        assert platform_name(name) == escaped

    @pytest.mark.parametrize("escaped,name", [
        ("_cq_tags", "cq:tags"),
        ("__a_b", "_a_b"),
        ("a%2ab", "a*b"),
        ("plain", "plain"),
    ])
    def test_repository_name(self, escaped, name):
        assert repository_name(escaped) == name

    def test_from_platform(self):
        assert str(RepoPath.from_platform("/content/_cq_tags")) == "/content/cq:tags"

    def test_to_platform(self):
        assert RepoPath.parse("/content/cq:tags").to_platform() == "/content/_cq_tags"
        assert RepoPath.root().to_platform() == "/"
