"""Function registry: identifier -> (arity, callable) contracts.

A registry is a plain object, not process-wide state.  The engine takes a
copy of the built-in registry (plus anything the caller registered) when
it is constructed, so evaluation never sees later mutations.
"""

from __future__ import annotations

import re
from typing import Any, Callable, NamedTuple, Sequence

from gridcalc.formulas.errors import FormulaArityError, FormulaError, FormulaFunctionError, FormulaTypeError
from gridcalc.values import Value, is_sequence

VARIADIC = None

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

FunctionImpl = Callable[[list[Value]], Value]


class FunctionSpec(NamedTuple):
    """A registered function.

    Attributes:
        name: Upper-case lookup name.
        fn: Callable receiving the evaluated argument list.
        arity: Exact argument count, or ``VARIADIC``.
        min_args: Minimum count for variadic functions.
        max_args: Maximum count for variadic functions, or None.
        doc: One-line description.
    """

    name: str
    fn: FunctionImpl
    arity: int | None
    min_args: int
    max_args: int | None
    doc: str

    @property
    def is_variadic(self) -> bool:
        return self.arity is VARIADIC

    def signature(self) -> str:
        if not self.is_variadic:
            return f"{self.name}/{self.arity}"
        upper = "" if self.max_args is None else str(self.max_args)
        return f"{self.name}/{self.min_args}..{upper}"

    def check_arity(self, count: int) -> None:
        if self.is_variadic:
            if count < self.min_args:
                raise FormulaArityError(
                    self.name, f"{self.name} requires at least {self.min_args} argument(s), got {count}"
                )
            if self.max_args is not None and count > self.max_args:
                raise FormulaArityError(
                    self.name, f"{self.name} accepts at most {self.max_args} argument(s), got {count}"
                )
        elif count != self.arity:
            raise FormulaArityError(
                self.name, f"{self.name} requires exactly {self.arity} argument(s), got {count}"
            )


def _flatten_args(args: Sequence[Value]) -> list[Value]:
    """Flatten one level of sequences in an argument list."""
    result: list[Value] = []
    for a in args:
        if is_sequence(a):
            result.extend(a)
        else:
            result.append(a)
    return result


def _check_result(name: str, result: Any) -> Value:
    if isinstance(result, bool):
        return "true" if result else "false"
    if isinstance(result, (int, float, str, tuple)):
        return result
    raise FormulaTypeError(f"{name} returned an unsupported value: {result!r}")


class FunctionRegistry:
    """Case-insensitive mapping of function names to ``FunctionSpec``."""

    def __init__(self) -> None:
        self._functions: dict[str, FunctionSpec] = {}

    def register(
        self,
        name: str,
        arity: int | None = VARIADIC,
        *,
        min_args: int = 0,
        max_args: int | None = None,
    ) -> Callable[[FunctionImpl], FunctionImpl]:
        """Decorator that registers a function by name.

        Args:
            name: The lookup name (case-insensitive).
            arity: Exact argument count, or ``VARIADIC``.
            min_args: Minimum argument count for variadic functions.
            max_args: Maximum argument count for variadic functions.

        Returns:
            The decorated function, unmodified.
        """

        def decorator(fn: FunctionImpl) -> FunctionImpl:
            self.add(name, fn, arity, min_args=min_args, max_args=max_args)
            return fn

        return decorator

    def add(
        self,
        name: str,
        fn: FunctionImpl,
        arity: int | None = VARIADIC,
        *,
        min_args: int = 0,
        max_args: int | None = None,
    ) -> None:
        if not _NAME_RE.match(name):
            raise ValueError(f"Invalid function name: {name!r}")
        if arity is not None and arity < 0:
            raise ValueError(f"Arity must be non-negative: {arity}")
        doc = (fn.__doc__ or "").strip().splitlines()
        key = name.upper()
        self._functions[key] = FunctionSpec(
            name=key,
            fn=fn,
            arity=arity,
            min_args=min_args,
            max_args=max_args,
            doc=doc[0] if doc else "",
        )

    def get(self, name: str) -> FunctionSpec:
        """Look up a registered function.

        Raises:
            FormulaFunctionError: If no function is registered under *name*.
        """
        key = name.upper()
        if key not in self._functions:
            raise FormulaFunctionError(name)
        return self._functions[key]

    def call(self, name: str, args: Sequence[Value]) -> Value:
        """Check arity, then call *name* with *args*.

        Variadic functions receive sequence arguments flattened one level,
        so ``SUM(A^v, 1)`` sees every column value plus ``1``.  Exceptions
        other than ``FormulaError``, ``ZeroDivisionError`` and
        ``OverflowError`` are reported as ``FormulaTypeError``.
        """
        spec = self.get(name)
        spec.check_arity(len(args))
        call_args = _flatten_args(args) if spec.is_variadic else list(args)
        try:
            result = spec.fn(call_args)
        except (FormulaError, ZeroDivisionError, OverflowError):
            raise
        except Exception as exc:
            raise FormulaTypeError(f"{spec.name} failed: {type(exc).__name__}: {exc}") from exc
        return _check_result(spec.name, result)

    def copy(self) -> FunctionRegistry:
        clone = FunctionRegistry()
        clone._functions = dict(self._functions)
        return clone

    def specs(self) -> list[FunctionSpec]:
        return [self._functions[k] for k in sorted(self._functions)]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.upper() in self._functions

    def __len__(self) -> int:
        return len(self._functions)
