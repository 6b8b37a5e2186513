"""Function registry and built-in functions."""

from gridcalc.functions.builtins import BUILTINS, default_registry
from gridcalc.functions.registry import VARIADIC, FunctionRegistry, FunctionSpec

__all__ = [
    "BUILTINS",
    "FunctionRegistry",
    "FunctionSpec",
    "VARIADIC",
    "default_registry",
]
