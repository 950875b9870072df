"""
Sandbox

Runs one user-authored function body with RestrictedPython in a fresh child
process. The body is wrapped as ``def weft_tool(args, env): ...``; the child is
killed when the timeout elapses so the host never hangs on user code.
"""

from __future__ import annotations

import asyncio
import json
import multiprocessing
import operator
import textwrap
from dataclasses import dataclass
from queue import Empty as QueueEmpty
from types import ModuleType
from typing import Any

from RestrictedPython import compile_restricted, compile_restricted_exec, safe_builtins
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)
from RestrictedPython.PrintCollector import PrintCollector

from weft.config import SandboxConfig
from weft.errors import SandboxError
from weft.infra.logging import get_logger

logger = get_logger(__name__)

ENTRYPOINT = "weft_tool"
TIMEOUT_ERROR = "timeout"

_EXTRA_BUILTINS = {
    "list": list,
    "dict": dict,
    "set": set,
    "frozenset": frozenset,
    "min": min,
    "max": max,
    "sum": sum,
    "any": any,
    "all": all,
    "enumerate": enumerate,
    "map": map,
    "filter": filter,
    "reversed": reversed,
}

_INPLACE_OPS = {
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


@dataclass
class SandboxResult:
    success: bool
    result: Any = None
    error: str | None = None


def wrap_function_body(body: str) -> str:
    """Turn a function body into a module that calls it with ``args`` and ``env``."""
    inner = textwrap.dedent(body).strip("\n") or "pass"
    return (
        f"def {ENTRYPOINT}(args, env):\n"
        f"{textwrap.indent(inner, '    ')}\n"
        f"\n"
        f"result = {ENTRYPOINT}(args, env)\n"
    )


def _inplacevar(op: str, x: Any, y: Any) -> Any:
    fn = _INPLACE_OPS.get(op)
    if fn is None:
        raise SyntaxError(f"Unsupported in-place operator {op}")
    return fn(x, y)


def _guarded_getattr(obj: Any, name: str, default: Any = None, getattr=getattr) -> Any:
    # allowed modules must not lead to other modules (json.codecs -> open, sys)
    value = safer_getattr(obj, name, default, getattr)
    if isinstance(value, ModuleType):
        raise SandboxError(f"Access to module '{name}' is not allowed")
    return value


def _restricted_globals(allowed_modules: list[str]) -> dict[str, Any]:
    builtins = dict(safe_builtins)
    builtins.update(_EXTRA_BUILTINS)

    def safe_import(name, globals=None, locals=None, fromlist=(), level=0):
        if name not in allowed_modules:
            raise ImportError(f"Import of '{name}' is not allowed")
        module = __import__(name, globals, locals, fromlist, level)
        for attr in fromlist or ():
            if attr != "*":
                _guarded_getattr(module, attr, None)
        return module

    builtins["__import__"] = safe_import

    env: dict[str, Any] = {
        "__builtins__": builtins,
        "__name__": "weft_sandbox",
        "_getattr_": _guarded_getattr,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": _inplacevar,
        "_print_": PrintCollector,
        "_apply_": lambda f, *a, **kw: f(*a, **kw),
    }
    for module_name in allowed_modules:
        try:
            env[module_name] = __import__(module_name)
        except ImportError:
            logger.warning("sandbox_module_unavailable", module=module_name)
    return env


def _to_json_safe(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


def _run_sandboxed_code(
    source: str,
    args: dict[str, Any],
    env: dict[str, Any],
    allowed_modules: list[str],
    result_queue: "multiprocessing.Queue[dict[str, Any]]",
) -> None:
    """Child-process entrypoint."""
    try:
        byte_code = compile_restricted(source, "<sandbox>", "exec")
        namespace = _restricted_globals(allowed_modules)
        namespace["args"] = args
        namespace["env"] = env
        exec(byte_code, namespace)
        result_queue.put({"success": True, "result": _to_json_safe(namespace.get("result"))})
    except BaseException as e:  # noqa: BLE001 - reported to the parent, never re-raised
        result_queue.put({"success": False, "error": str(e) or type(e).__name__})


class Sandbox:
    """Executes function bodies in isolated, killable child processes."""

    def __init__(self, config: SandboxConfig | None = None, poll_interval: float = 0.02) -> None:
        self.config = config or SandboxConfig()
        self.poll_interval = poll_interval

    def effective_timeout_ms(self, timeout_ms: int | None) -> int:
        requested = timeout_ms if timeout_ms and timeout_ms > 0 else self.config.timeout_ms
        return min(requested, self.config.max_timeout_ms)

    async def execute(
        self,
        body: str,
        args: dict[str, Any] | None = None,
        timeout_ms: int | None = None,
        env: dict[str, Any] | None = None,
    ) -> SandboxResult:
        source = wrap_function_body(body)

        # compile in the parent first: syntax and policy errors never spawn a process
        compiled = compile_restricted_exec(source, "<sandbox>")
        if compiled.errors:
            return SandboxResult(False, error="; ".join(compiled.errors))

        timeout = self.effective_timeout_ms(timeout_ms) / 1000
        result_queue: multiprocessing.Queue[dict[str, Any]] = multiprocessing.Queue()
        process = multiprocessing.Process(
            target=_run_sandboxed_code,
            args=(source, dict(args or {}), dict(env or {}), list(self.config.allowed_modules), result_queue),
            daemon=True,
        )
        process.start()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        try:
            while loop.time() < deadline:
                try:
                    payload = result_queue.get_nowait()
                    return SandboxResult(**payload)
                except QueueEmpty:
                    pass
                if not process.is_alive():
                    # the feeder may still be flushing the final payload
                    try:
                        payload = await asyncio.to_thread(result_queue.get, True, 0.5)
                        return SandboxResult(**payload)
                    except QueueEmpty:
                        return SandboxResult(
                            False, error=f"Process exited with code {process.exitcode}"
                        )
                await asyncio.sleep(self.poll_interval)

            logger.info("sandbox_timeout", timeout_ms=int(timeout * 1000))
            return SandboxResult(False, error=TIMEOUT_ERROR)
        finally:
            if process.is_alive():
                process.kill()
            await asyncio.to_thread(process.join, 1)
            result_queue.close()
