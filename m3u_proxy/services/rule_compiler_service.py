"""
Rule Compiler

Turns a model's declarative filter and transformation rules into compiled,
case-insensitive matchers. The result is a separate value; the config object
it was built from is left untouched.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from m3u_proxy.schemas import Model


logger = logging.getLogger(__name__)

# $1, $12, $& and $$ as written in legacy JavaScript-flavoured configs
_JS_REFERENCE = re.compile(r"\$(\d+|&|\$)")


class RuleCompilationError(ValueError):
    """Raised when a filter or transformation pattern is not a valid regex"""

    def __init__(self, field: str, pattern: str, reason: str):
        self.field = field
        self.pattern = pattern
        super().__init__(f"Invalid pattern for field '{field}': {pattern!r} ({reason})")


@dataclass(frozen=True, slots=True)
class CompiledFilter:
    field: str
    regex: re.Pattern[str]


@dataclass(frozen=True, slots=True)
class CompiledTransformation:
    field: str
    regex: re.Pattern[str]
    replacement: str


@dataclass(frozen=True, slots=True)
class CompiledModel:
    """Compiled rules of one model, ready to be applied to records."""
    name: str
    filters: tuple[CompiledFilter, ...] = ()
    transformations: tuple[CompiledTransformation, ...] = ()

    @property
    def passes_all(self) -> bool:
        return not self.filters


def _compile_pattern(field: str, pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise RuleCompilationError(field, pattern, str(e)) from e


def translate_replacement(replacement: str) -> str:
    """
    Convert JavaScript-style group references to Python ``re`` syntax

    ``$1`` becomes ``\\g<1>``, ``$&`` becomes ``\\g<0>`` and ``$$`` a literal
    dollar sign. Python templates (``\\1``, ``\\g<name>``) pass through.
    """
    def _convert(match: re.Match[str]) -> str:
        token = match.group(1)
        if token == "$":
            return "$"
        if token == "&":
            return r"\g<0>"
        return rf"\g<{token}>"

    return _JS_REFERENCE.sub(_convert, replacement)


def compile_model(model: Model) -> CompiledModel:
    """
    Compile every filter and transformation rule of a model

    Args:
        model: Declarative model from the proxy config

    Returns:
        CompiledModel holding the compiled rules in declared order

    Raises:
        RuleCompilationError: If any pattern is not a valid regular expression
    """
    filters = tuple(
        CompiledFilter(field=rule.field, regex=_compile_pattern(rule.field, rule.pattern))
        for rule in model.filters or ()
    )

    transformations = []
    for rule in model.transformations or ():
        regex = _compile_pattern(rule.field, rule.pattern)
        replacement = translate_replacement(rule.replacement)
        # The template is parsed even without a match, so bad group references surface here
        try:
            regex.sub(replacement, "", count=1)
        except (re.error, IndexError) as e:
            raise RuleCompilationError(rule.field, rule.pattern, f"invalid replacement {rule.replacement!r}: {e}") from e
        transformations.append(
            CompiledTransformation(field=rule.field, regex=regex, replacement=replacement)
        )

    logger.debug(
        "Compiled model '%s': %s filter(s), %s transformation(s)",
        model.name,
        len(filters),
        len(transformations),
    )
    return CompiledModel(name=model.name, filters=filters, transformations=tuple(transformations))
