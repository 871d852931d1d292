"""
Channel classification

Assigns a group and a logo identity to raw channel names using ordered
regular-expression rules. Rules are compiled and validated once, when the
configuration is loaded; classify() itself is pure and does no I/O.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from iptv_service.errors import ConfigurationError


logger = logging.getLogger(__name__)

# Logo templates reference capture groups as $G1, $G2, ...
TEMPLATE_GROUP_REF = re.compile(r"\$G(\d+)")


@dataclass(frozen=True, slots=True)
class GroupRule:
    pattern: re.Pattern[str]
    group: str


@dataclass(frozen=True, slots=True)
class LogoRule:
    pattern: re.Pattern[str]
    template: str

    def render(self, match: re.Match[str]) -> str:
        return TEMPLATE_GROUP_REF.sub(
            lambda ref: match.group(int(ref.group(1))) or "",
            self.template,
        )


@dataclass(frozen=True, slots=True)
class RuleSet:
    """Validated, ordered classification rules."""
    group_rules: tuple[GroupRule, ...]
    logo_rules: tuple[LogoRule, ...]
    default_group: str


def _compile(pattern: str, kind: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigurationError(f"Invalid {kind} pattern '{pattern}': {exc}") from exc


def compile_exclude_rule(pattern: str | None) -> re.Pattern[str] | None:
    """Compile the channel exclusion blacklist (empty disables it)."""
    if not pattern:
        return None
    return _compile(pattern, "exclude")


def build_group_rules(config: Iterable[Mapping]) -> tuple[GroupRule, ...]:
    """
    Flatten group configuration into ordered rules.

    Args:
        config: Entries shaped like {"name": "央视", "rules": ["^CCTV.+$", ...]}

    Returns:
        Rules in declaration order (entry order, then pattern order)

    Raises:
        ConfigurationError: On a missing name or an invalid pattern
    """
    rules: list[GroupRule] = []
    for entry in config:
        name = entry.get("name")
        if not name:
            raise ConfigurationError(f"Group rule entry is missing a name: {entry!r}")
        patterns = entry.get("rules") or []
        if isinstance(patterns, str):
            patterns = [patterns]
        for pattern in patterns:
            rules.append(GroupRule(pattern=_compile(pattern, "group"), group=name))
    return tuple(rules)


def build_logo_rules(config: Iterable[Mapping]) -> tuple[LogoRule, ...]:
    """
    Compile logo rules and check their templates.

    Every $G<n> reference must name a capture group the pattern produces,
    otherwise the whole rule set is rejected.

    Raises:
        ConfigurationError: On an invalid pattern or template reference
    """
    rules: list[LogoRule] = []
    for entry in config:
        pattern_str = entry.get("rule")
        template = entry.get("name")
        if not pattern_str or template is None:
            raise ConfigurationError(f"Logo rule entry needs 'rule' and 'name': {entry!r}")

        pattern = _compile(pattern_str, "logo")
        for ref in TEMPLATE_GROUP_REF.finditer(template):
            index = int(ref.group(1))
            if index < 1 or index > pattern.groups:
                raise ConfigurationError(
                    f"Logo template '{template}' references group {index}, "
                    f"but pattern '{pattern_str}' has {pattern.groups} group(s)"
                )
        rules.append(LogoRule(pattern=pattern, template=template))
    return tuple(rules)


def build_rule_set(
    group_rules: Iterable[Mapping],
    logo_rules: Iterable[Mapping],
    default_group: str,
) -> RuleSet:
    """Build a validated RuleSet from plain configuration values."""
    if not default_group:
        raise ConfigurationError("default_group must not be empty")

    rule_set = RuleSet(
        group_rules=build_group_rules(group_rules),
        logo_rules=build_logo_rules(logo_rules),
        default_group=default_group,
    )
    logger.debug(
        "Classification rules loaded: %s group rule(s), %s logo rule(s)",
        len(rule_set.group_rules),
        len(rule_set.logo_rules),
    )
    return rule_set


def classify_group(raw_name: str, rules: Sequence[GroupRule], default_group: str) -> str:
    for rule in rules:
        if rule.pattern.search(raw_name):
            return rule.group
    return default_group


def classify_logo(raw_name: str, rules: Sequence[LogoRule]) -> str:
    for rule in rules:
        match = rule.pattern.search(raw_name)
        if match:
            return rule.render(match)
    return raw_name


def classify(raw_name: str, rule_set: RuleSet) -> tuple[str, str]:
    """
    Classify a raw channel name.

    Group and logo rules are evaluated independently, first match wins.

    Returns:
        Tuple of (group, logo_identity)
    """
    group = classify_group(raw_name, rule_set.group_rules, rule_set.default_group)
    logo_identity = classify_logo(raw_name, rule_set.logo_rules)
    return group, logo_identity
