"""Identity and access-control ledger.

Accumulates what the entry classifiers discover while a package is
scanned (system users, access-control statements, privilege and node-type
registrations) and turns it into one deterministic initialization script.

State lives in two objects with different lifetimes:

- ``SessionState``: created once per conversion run. Holds the append-only
  identity registry and the sets of paths already emitted, so that no
  ``create path`` or home-folder line is repeated across packages.
- ``PackageScratch``: recreated by ``AclLedger.reset()`` after every
  top-level package. Holds the users activated by the current package,
  pending ACLs, privileges and node-type sentences. ``AclLedger.rollback()``
  removes what a failed package added to the session.

Key Invariants:
- No statement references an identity or path created later in the script
- ACLs on or below a user's own home path are dropped (the user creation
  already provisions that subtree)
- ACLs for identities never registered are dropped at insertion time
- Output depends only on registration order, never on hash ordering

Example:
    from cp_convert.ledger import AclLedger, AccessControlStatement
    from cp_convert.repo_path import RepoPath

    ledger = AclLedger()
    ledger.register_system_user("svc", RepoPath.parse("/home/users/system"))
    ledger.add_access_control(
        "svc", AccessControlStatement(True, "jcr:read", RepoPath.parse("/content"))
    )
    print(ledger.synthesize())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set, Union

from cp_convert.exceptions import UnresolvedReferenceError
from cp_convert.path_types import AUTHORIZABLE_FOLDER_TYPE, DEFAULT_TYPE, NodeType
from cp_convert.repo_path import RepoPath

logger = logging.getLogger(__name__)

TypeResolver = Callable[[RepoPath], NodeType]


def _require(value, field_name: str, context: str):
    if value is None or (isinstance(value, str) and not value):
        raise UnresolvedReferenceError(field_name, context)
    if isinstance(value, RepoPath) and value.sentinel:
        raise UnresolvedReferenceError(field_name, context)
    return value


@dataclass(frozen=True)
class SystemIdentity:
    """Service principal declared by a package, provisioned under a path."""

    id: str
    intermediate_path: RepoPath

    def __str__(self) -> str:
        return f"SystemIdentity [id={self.id}, path={self.intermediate_path}]"


class AccessControlStatement:
    """Allow/deny grant of privileges on a target path.

    Restrictions may still be appended while the policy document is being
    parsed; everything else is fixed at construction.
    """

    def __init__(
        self,
        is_allow: bool,
        privileges: Union[str, Iterable[str], None],
        target_path: RepoPath,
        restrictions: Optional[Iterable[str]] = None,
    ):
        _require(target_path, "target_path", "access control statement")
        if privileges is None:
            privileges = ""
        elif not isinstance(privileges, str):
            privileges = ",".join(privileges)
        self.is_allow = bool(is_allow)
        self.privileges = privileges
        self.target_path = target_path
        self.restrictions: List[str] = []
        for restriction in restrictions or ():
            self.add_restriction(restriction)

    @property
    def operation(self) -> str:
        return "allow" if self.is_allow else "deny"

    def add_restriction(self, restriction: Optional[str]) -> None:
        if restriction:
            self.restrictions.append(restriction)

    def format(self) -> str:
        line = f"{self.operation} {self.privileges} on {self.target_path}"
        if self.restrictions:
            line += f" restriction({','.join(self.restrictions)})"
        return line

    def __repr__(self) -> str:
        return f"AccessControlStatement({self.format()!r})"


@dataclass
class SessionState:
    """Run-wide state: identity registry and global dedup sets."""

    identities: Dict[str, SystemIdentity] = field(default_factory=dict)
    emitted_paths: Set[RepoPath] = field(default_factory=set)
    emitted_home_paths: Set[RepoPath] = field(default_factory=set)


@dataclass
class PackageScratch:
    """Per top-level package state, discarded by ``AclLedger.reset()``."""

    active_users: List[SystemIdentity] = field(default_factory=list)
    acls: Dict[str, List[AccessControlStatement]] = field(default_factory=dict)
    type_sentences: List[str] = field(default_factory=list)
    privileges: Dict[str, None] = field(default_factory=dict)
    # session paths marked emitted while synthesizing this package
    emitted_paths: List[RepoPath] = field(default_factory=list)
    emitted_home_paths: List[RepoPath] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.active_users or self.acls or self.type_sentences or self.privileges)


class AclLedger:
    """Composes a SessionState and a PackageScratch and synthesizes scripts."""

    def __init__(self, session: Optional[SessionState] = None):
        self.session = session if session is not None else SessionState()
        self.scratch = PackageScratch()

    # === Accumulation ===

    def register_system_user(self, user_id: str, intermediate_path: RepoPath) -> bool:
        """Register a system user; True only the first time ``user_id`` is seen."""
        _require(user_id, "user_id", "registering system user")
        _require(intermediate_path, "intermediate_path", f"registering system user {user_id}")
        if user_id in self.session.identities:
            logger.debug("System user %s already registered, ignoring", user_id)
            return False
        identity = SystemIdentity(user_id, intermediate_path)
        self.session.identities[user_id] = identity
        self.scratch.active_users.append(identity)
        return True

    def add_access_control(self, user_id: str, statement: AccessControlStatement) -> bool:
        """Record an ACL for a registered user; unknown users are dropped."""
        _require(user_id, "user_id", "adding access control")
        _require(statement, "statement", f"adding access control for {user_id}")
        if user_id not in self.session.identities:
            logger.debug("Dropping ACL for unknown system user %s: %s", user_id, statement.format())
            return False
        self.scratch.acls.setdefault(user_id, []).append(statement)
        return True

    def add_privilege_registration(self, name: str) -> None:
        _require(name, "privilege", "registering privilege")
        self.scratch.privileges.setdefault(name, None)

    def add_type_registration_sentence(self, text: str) -> None:
        if text is None:
            raise UnresolvedReferenceError("sentence", "registering node types")
        self.scratch.type_sentences.append(text)

    def is_known_user(self, user_id: str) -> bool:
        return user_id in self.session.identities

    def reset(self) -> None:
        """Drop per-package state; the session registry and dedup sets survive."""
        self.scratch = PackageScratch()

    def rollback(self) -> None:
        """Undo the session changes of a failed package, then reset.

        Its users and paths were never created, so they leave the registry
        and the dedup sets again.
        """
        scratch = self.scratch
        for user in scratch.active_users:
            if self.session.identities.get(user.id) == user:
                del self.session.identities[user.id]
        self.session.emitted_paths.difference_update(scratch.emitted_paths)
        self.session.emitted_home_paths.difference_update(scratch.emitted_home_paths)
        if scratch.active_users:
            logger.debug("Rolled back system user(s) %s",
                         ", ".join(user.id for user in scratch.active_users))
        self.reset()

    # === Synthesis ===

    def synthesize(self, type_resolver: Optional[TypeResolver] = None) -> str:
        """Build the initialization script for everything accumulated.

        Pending ACLs are consumed. Returns "" when nothing was accumulated.
        """
        resolve = type_resolver or (lambda path: DEFAULT_TYPE)
        scratch = self.scratch
        lines: List[str] = []

        for privilege in scratch.privileges:
            lines.append(f"register privilege {privilege}")

        lines.extend(scratch.type_sentences)

        for user in scratch.active_users:
            home = user.intermediate_path
            if home not in self.session.emitted_home_paths:
                self.session.emitted_home_paths.add(home)
                scratch.emitted_home_paths.append(home)
                lines.append(f"create path ({AUTHORIZABLE_FOLDER_TYPE}) {home}")
            lines.append(f"create service user {user.id} with path {home}")
            self._add_statements(user, scratch.acls.pop(user.id, []), resolve, lines)

        # ACLs for users registered by an earlier package of this run
        for user_id in list(scratch.acls):
            statements = scratch.acls.pop(user_id)
            user = self.session.identities.get(user_id)
            if user is not None:
                self._add_statements(user, statements, resolve, lines)

        return "".join(f"{line}\n" for line in lines)

    def emit_to(self, sink, type_resolver: Optional[TypeResolver] = None, run_mode: Optional[str] = None) -> str:
        """Synthesize and append the script to ``sink`` when non-empty."""
        text = self.synthesize(type_resolver)
        if text:
            sink.append_init_script(text, run_mode)
        return text

    def _add_statements(self, user: SystemIdentity, statements: List[AccessControlStatement],
                        resolve: TypeResolver, lines: List[str]) -> None:
        kept = []
        for statement in statements:
            if statement.target_path.starts_with(user.intermediate_path):
                logger.debug("Pruning ACL under home of %s: %s", user.id, statement.format())
            else:
                kept.append(statement)
        if not kept:
            return

        closure: Set[RepoPath] = set()
        for statement in kept:
            if not statement.target_path.is_root:
                closure.add(statement.target_path)
            closure.update(statement.target_path.ancestors())

        for path in sorted(closure):
            if path in self.session.emitted_paths:
                continue
            self.session.emitted_paths.add(path)
            self.scratch.emitted_paths.append(path)
            lines.append(f"create path {resolve(path).format()} {path}")

        lines.append(f"set ACL for {user.id}")
        lines.extend(statement.format() for statement in kept)
        lines.append("end")


__all__ = [
    "AccessControlStatement",
    "AclLedger",
    "PackageScratch",
    "SessionState",
    "SystemIdentity",
]
