#!/usr/bin/env python3
"""
test_ordering.py - Tests for dependency ordering of packages.

Tests:
1. Dependencies precede dependents; independent packages keep input order
2. Cycles (including self-dependencies) fail the whole ordering
3. Version range predicates select candidates
4. External dependencies are ignored
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

import pytest

from cp_convert.exceptions import CyclicDependencyError, UnresolvedReferenceError
from cp_convert.ordering import (
    DependencyGraph,
    DependencyPredicate,
    PackageIdentity,
    PackageOrderResolver,
    Version,
    VersionRange,
    first_remaining_candidate,
)


@dataclass
class Handle:
    identity: PackageIdentity
    dependencies: List[DependencyPredicate] = field(default_factory=list)


def handle(spec: str, *deps: str) -> Handle:
    return Handle(PackageIdentity.parse(spec), [DependencyPredicate.parse(d) for d in deps])


def names(ordered) -> List[str]:
    return [h.identity.name for h in ordered]


class TestIdentity:
    """Identity and predicate parsing."""

    def test_parse_identity_default_version(self):
        identity = PackageIdentity.parse("g:n")
        assert identity.version == "0.0.0"
        assert str(identity) == "g:n:0.0.0"

    def test_parse_invalid_identity(self):
        with pytest.raises(ValueError):
            PackageIdentity.parse("nogroup")

    def test_predicate_without_range_matches_any_version(self):
        predicate = DependencyPredicate.parse("g:n")
        assert predicate.matches(PackageIdentity("g", "n", "0.1"))
        assert predicate.matches(PackageIdentity("g", "n", "99"))
        assert not predicate.matches(PackageIdentity("g", "other", "1.0"))


class TestVersions:
    """Version comparison and ranges."""

    def test_numeric_segments_compare_as_integers(self):
        assert Version("1.10") > Version("1.9")
        assert Version("1.0") < Version("1.0.1")

    def test_bracket_range(self):
        versions = VersionRange.parse("[1.0,2.0)")
        assert versions.includes("1.0")
        assert versions.includes("1.5.3")
        assert not versions.includes("2.0")
        assert not versions.includes("0.9")

    def test_bare_version_is_minimum(self):
        versions = VersionRange.parse("1.2")
        assert versions.includes("1.2")
        assert versions.includes("3.0")
        assert not versions.includes("1.1")

    def test_invalid_range(self):
        with pytest.raises(ValueError):
            VersionRange.parse("[1.0")


class TestOrder:
    """Topological order."""

    def test_dependency_first(self):
        ordered = PackageOrderResolver().order([handle("g:a:1", "g:b"), handle("g:b:1")])
        assert names(ordered) == ["b", "a"]

    def test_independent_packages_keep_input_order(self):
        ordered = PackageOrderResolver().order([handle("g:c:1"), handle("g:a:1"), handle("g:b:1")])
        assert names(ordered) == ["c", "a", "b"]

    def test_chain(self):
        ordered = PackageOrderResolver().order([
            handle("g:a:1", "g:b"),
            handle("g:b:1", "g:c"),
            handle("g:c:1"),
        ])
        assert names(ordered) == ["c", "b", "a"]

    def test_diamond_places_shared_dependency_once(self):
        ordered = PackageOrderResolver().order([
            handle("g:top:1", "g:left", "g:right"),
            handle("g:left:1", "g:base"),
            handle("g:right:1", "g:base"),
            handle("g:base:1"),
        ])
        assert names(ordered) == ["base", "left", "right", "top"]

    def test_external_dependency_skipped(self):
        ordered = PackageOrderResolver().order([handle("g:a:1", "ext:platform:[6.5,)")])
        assert names(ordered) == ["a"]

    def test_mapping_input(self):
        packages = [handle("g:a:1", "g:b"), handle("g:b:1")]
        ordered = PackageOrderResolver().order({h.identity: h for h in packages})
        assert names(ordered) == ["b", "a"]

    def test_version_range_selects_candidate(self):
        ordered = PackageOrderResolver().order([
            handle("g:app:1", "g:lib:[2.0,3.0)"),
            handle("g:lib:1.0"),
            handle("g:lib:2.1"),
        ])
        assert [str(h.identity) for h in ordered] == ["g:lib:2.1", "g:app:1", "g:lib:1.0"]

    def test_idempotent(self):
        packages = [handle("g:a:1", "g:b"), handle("g:b:1", "g:c"), handle("g:c:1")]
        resolver = PackageOrderResolver()
        assert names(resolver.order(packages)) == names(resolver.order(packages))

    def test_none_rejected(self):
        with pytest.raises(UnresolvedReferenceError):
            PackageOrderResolver().order(None)


class TestCycles:
    """Cycle detection."""

    def test_two_node_cycle(self):
        with pytest.raises(CyclicDependencyError) as exc_info:
            PackageOrderResolver().order([handle("g:a:1", "g:b"), handle("g:b:1", "g:a")])
        error = exc_info.value
        assert error.identity == PackageIdentity("g", "a", "1")
        assert [str(c) for c in error.chain] == ["g:a:1", "g:b:1"]
        assert error.code == "CYCLIC_DEPENDENCY"

    def test_self_dependency(self):
        with pytest.raises(CyclicDependencyError):
            PackageOrderResolver().order([handle("g:a:1", "g:a")])

    def test_cycle_behind_valid_prefix(self):
        with pytest.raises(CyclicDependencyError):
            PackageOrderResolver().order([
                handle("g:ok:1"),
                handle("g:a:1", "g:b"),
                handle("g:b:1", "g:c"),
                handle("g:c:1", "g:a"),
            ])


class TestCandidates:
    """Static graph and tie-breaking."""

    def test_graph_edges_list_candidates_in_input_order(self):
        packages = [handle("g:app:1", "g:lib"), handle("g:lib:2"), handle("g:lib:1")]
        graph = DependencyGraph({h.identity: h for h in packages})
        assert graph.edges[PackageIdentity("g", "app", "1")] == [
            [PackageIdentity("g", "lib", "2"), PackageIdentity("g", "lib", "1")]
        ]

    def test_first_remaining_candidate(self):
        one, two = PackageIdentity("g", "lib", "1"), PackageIdentity("g", "lib", "2")
        assert first_remaining_candidate([one, two], set()) == one
        assert first_remaining_candidate([one, two], {one}) == two
        assert first_remaining_candidate([one, two], [one, two]) is None
