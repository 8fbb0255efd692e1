"""Rule condition compilation.

Exports the compiler entry points used by the RuleEngine.
"""

from .compiler import CompiledRule, Predicate, compile_condition, compile_rule
from .expression import compile_expression, tokenize

__all__ = [
    "CompiledRule",
    "Predicate",
    "compile_condition",
    "compile_expression",
    "compile_rule",
    "tokenize",
]
