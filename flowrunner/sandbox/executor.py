"""Restricted execution of node scripts.

Node scripts are Python function bodies. Each script is wrapped into a
function taking exactly two positional parameters, ``input`` and
``variables``, compiled with RestrictedPython and invoked against a fixed
table of ambient bindings. Nothing outside that table (imports, files,
processes) is reachable from the script body.

The trailing expression statement of a script becomes its return value, so
both of these produce ``3``::

    input + 1

    total = input + 1
    return total

SECURITY: RestrictedPython limits the reachable surface of a script; it does
not bound CPU or memory. Scripts run inside the host process.
"""

import ast
import asyncio
import inspect
import json
import logging
import math
import operator
import re
from collections.abc import Callable, Sequence, Set
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any

from RestrictedPython import compile_restricted, safe_builtins
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)

from flowrunner.core.models import ExecutionContext, ExecutionResult

logger = logging.getLogger(__name__)

# Diagnostic channel for console.log/warn/error inside scripts
script_logger = logging.getLogger("flowrunner.script")

ENTRYPOINT = "node_main"
SCRIPT_FILENAME = "<node-script>"


class SandboxError(Exception):
    """Error in sandboxed script execution."""

    pass


class ScriptCompileError(SandboxError):
    """Script text could not be compiled."""

    pass


class ScriptTimeoutError(SandboxError):
    """Script did not finish within the configured timeout."""

    pass


@dataclass
class SandboxConfig:
    """Configuration for the script sandbox."""

    # None disables the limit; a timed-out script thread is abandoned, not killed
    timeout: float | None = None
    log_prefix: str = "[Node Execution]:"


# =============================================================================
# Ambient Bindings
# =============================================================================

_INT_PREFIX = re.compile(r"^\s*[+-]?\d+")
_FLOAT_PREFIX = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def parse_int(value: Any, base: int = 10) -> int | None:
    """Parse the leading integer of ``value``; None if there is none."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return None if not math.isfinite(value) else int(value)
    if base != 10:
        try:
            return int(str(value).strip(), base)
        except ValueError:
            return None
    match = _INT_PREFIX.match(str(value))
    return int(match.group(0)) if match else None


def parse_float(value: Any) -> float | None:
    """Parse the leading decimal number of ``value``; None if there is none."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _FLOAT_PREFIX.match(str(value))
    return float(match.group(0)) if match else None


def is_nan(value: Any) -> bool:
    try:
        return math.isnan(float(value))
    except (TypeError, ValueError):
        return True


def is_finite(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _make_console(prefix: str) -> SimpleNamespace:
    def _emit(level: int, args: tuple) -> None:
        script_logger.log(level, "%s %s", prefix, " ".join(str(a) for a in args))

    return SimpleNamespace(
        log=lambda *args: _emit(logging.INFO, args),
        warn=lambda *args: _emit(logging.WARNING, args),
        error=lambda *args: _emit(logging.ERROR, args),
    )


class _ConsolePrinter:
    """``_print_`` hook: routes print() calls in scripts to console.log."""

    def __init__(self, console: SimpleNamespace, _getattr_=None):
        self._console = console
        self._lines: list[str] = []

    def _call_print(self, *objects, **kwargs) -> None:
        sep = kwargs.get("sep", " ")
        line = sep.join(str(obj) for obj in objects)
        self._lines.append(line)
        self._console.log(line)

    def __call__(self) -> str:
        return "\n".join(self._lines)


_INPLACE_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "<<=": operator.ilshift,
    ">>=": operator.irshift,
    "&=": operator.iand,
    "|=": operator.ior,
    "^=": operator.ixor,
}


def _inplacevar(op: str, x: Any, y: Any) -> Any:
    func = _INPLACE_OPERATORS.get(op)
    if func is None:
        raise SyntaxError(f"Unsupported in-place operator: {op}")
    return func(x, y)


# Explicit capability table. Anything not listed here (or in safe_builtins)
# is unreachable from a script.
SCRIPT_BINDINGS: dict[str, Any] = {
    # Structured data
    "json": SimpleNamespace(dumps=json.dumps, loads=json.loads),
    "list": list,
    "dict": dict,
    "set": set,
    # Math
    "math": math,
    "min": min,
    "max": max,
    "sum": sum,
    # Date/time
    "datetime": datetime,
    "date": date,
    "timedelta": timedelta,
    "timezone": timezone,
    # Coercers
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    # Numeric parsing and predicates
    "parse_int": parse_int,
    "parse_float": parse_float,
    "isnan": is_nan,
    "isfinite": is_finite,
    # Iteration helpers
    "enumerate": enumerate,
    "reversed": reversed,
    "any": any,
    "all": all,
    "map": map,
    "filter": filter,
}


# =============================================================================
# Truthiness
# =============================================================================


def classify_truthiness(output: Any) -> bool:
    """Turn a node output into a branch decision.

    bool passes through; numbers are truthy iff nonzero; strings and
    sequences/sets iff non-empty; None is false; anything else (including
    mappings, empty or not) is truthy.
    """
    if isinstance(output, bool):
        return output
    if isinstance(output, (int, float)):
        return output != 0
    if isinstance(output, str):
        return len(output) > 0
    if isinstance(output, (Sequence, Set)):
        return len(output) > 0
    if output is None:
        return False
    return True


# =============================================================================
# Script Runner
# =============================================================================


def _wrap_script(script: str) -> str:
    """Wrap script text into the entrypoint function source.

    The script is parsed on its own and its statements become the function
    body, so string literals are kept byte for byte. The trailing expression
    statement is rewritten into a return.
    """
    body = ast.parse(script, SCRIPT_FILENAME).body or [ast.Pass()]
    last = body[-1]
    if isinstance(last, ast.Expr):
        body[-1] = ast.copy_location(ast.Return(value=last.value), last)

    module = ast.parse(f"def {ENTRYPOINT}(input, variables):\n    pass\n", SCRIPT_FILENAME)
    module.body[0].body = body
    return ast.unparse(ast.fix_missing_locations(module))


class ScriptRunner:
    """Compile and run node scripts inside the restricted namespace.

    execute() never raises: compile errors, runtime errors and timeouts are
    all reported as ``ExecutionResult(success=False, error=...)``.
    """

    def __init__(self, config: SandboxConfig | None = None):
        self.config = config or SandboxConfig()

    def _build_globals(self) -> dict[str, Any]:
        console = _make_console(self.config.log_prefix)
        builtins = dict(safe_builtins)
        builtins.update(SCRIPT_BINDINGS)
        builtins["console"] = console
        return {
            "__builtins__": builtins,
            "__name__": "node_script",
            "_getattr_": safer_getattr,
            "_getitem_": default_guarded_getitem,
            "_getiter_": default_guarded_getiter,
            "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
            "_unpack_sequence_": guarded_unpack_sequence,
            "_write_": full_write_guard,
            "_inplacevar_": _inplacevar,
            "_print_": lambda _getattr_=None: _ConsolePrinter(console, _getattr_),
        }

    def compile(self, script: str) -> Callable[[Any, dict[str, Any]], Any]:
        """Compile ``script`` into a callable ``(input, variables) -> output``.

        Raises:
            ScriptCompileError: If the script is not valid restricted Python.
        """
        try:
            source = _wrap_script(script)
            code = compile_restricted(source, filename=SCRIPT_FILENAME, mode="exec")
        except SyntaxError as e:
            # RestrictedPython reports policy violations as a tuple of messages
            detail = e.args[0] if e.args else ""
            if isinstance(detail, (list, tuple)):
                detail = "; ".join(str(item) for item in detail)
            else:
                detail = str(e)
            raise ScriptCompileError(f"Code compilation error: {detail}") from e

        namespace = self._build_globals()
        exec(code, namespace)
        return namespace[ENTRYPOINT]

    async def _invoke(self, func: Callable, context: ExecutionContext) -> Any:
        timeout = self.config.timeout
        if timeout is None:
            result = func(context.input, context.variables)
        else:
            try:
                result = await asyncio.wait_for(
                    asyncio.to_thread(func, context.input, context.variables),
                    timeout=timeout,
                )
            except asyncio.TimeoutError as e:
                raise ScriptTimeoutError(f"Script timed out after {timeout}s") from e

        # Always awaited, whether or not the script handed back something deferred
        if inspect.isawaitable(result):
            result = await result
        return result

    async def execute(
        self,
        script: str,
        context: ExecutionContext | None = None,
    ) -> ExecutionResult:
        """Run ``script`` against ``context`` and return a typed outcome."""
        context = context or ExecutionContext()
        try:
            func = self.compile(script)
            output = await self._invoke(func, context)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.debug("Script failed: %s", message)
            return ExecutionResult(success=False, error=message)

        return ExecutionResult(success=True, output=output)


def get_script_runner(config: SandboxConfig | None = None) -> ScriptRunner:
    """Get a script runner with the given (or default) sandbox config."""
    return ScriptRunner(config)
