# ABOUTME: Declarative table mapping (method, endpoint) to the scope a key needs
# ABOUTME: Ordered rules, first match wins; unmapped requests need no scope

from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Iterable, Optional


@dataclass(frozen=True)
class ScopeRule:
    method: str  # HTTP method or "*"
    path_pattern: str  # exact path or shell-style glob
    scope: str

    def matches(self, method: str, endpoint: str) -> bool:
        if self.method != "*" and self.method != method.upper():
            return False
        return fnmatchcase(endpoint, self.path_pattern)


DEFAULT_SCOPE_RULES = [
    ScopeRule("GET", "/api/jobs", "jobs:read"),
    ScopeRule("POST", "/api/jobs", "jobs:write"),
    ScopeRule("PUT", "/api/jobs", "jobs:write"),
    ScopeRule("DELETE", "/api/jobs", "jobs:delete"),
    ScopeRule("GET", "/api/applications", "applications:read"),
    ScopeRule("POST", "/api/applications", "applications:write"),
    ScopeRule("GET", "/api/analytics", "analytics:read"),
    ScopeRule("POST", "/api/webhooks", "webhooks:write"),
    ScopeRule("GET", "/api/webhooks", "webhooks:read"),
    ScopeRule("POST", "/api/usage", "usage:write"),
    ScopeRule("*", "/admin/*", "admin"),
]


def rules_from_mapping(mapping: dict[str, str]) -> list[ScopeRule]:
    """
    Parse {"METHOD:/path": "scope"} entries, e.g. from settings.

    Raises ValueError on entries without a "METHOD:" part.
    """
    rules = []
    for key, scope in mapping.items():
        method, sep, path = key.partition(":")
        if not sep or not method or not path:
            raise ValueError(f"Invalid scope rule {key!r}, expected 'METHOD:/path'")
        rules.append(ScopeRule(method.upper(), path, scope))
    return rules


def required_scope(method: str, endpoint: str, rules: Iterable[ScopeRule] = DEFAULT_SCOPE_RULES) -> Optional[str]:
    """Return the scope required for this request, or None when unmapped."""
    for rule in rules:
        if rule.matches(method, endpoint):
            return rule.scope
    return None
