from __future__ import annotations

import subprocess
import time
from dataclasses import dataclass


@dataclass(frozen=True)
class ReloadOutcome:
    ok: bool
    returncode: int | None
    output: str
    error: str | None
    duration_s: float


def reload(script_path: str, timeout_s: float | None = 30.0) -> ReloadOutcome:
    """Run the reload script with no arguments and capture stdout+stderr.

    Never raises for script failures: non-zero exit, spawn errors and
    timeouts come back as ``ok=False``. ``timeout_s`` <= 0 or None waits forever.
    """
    timeout = timeout_s if timeout_s and timeout_s > 0 else None
    start = time.monotonic()
    try:
        proc = subprocess.run(
            [script_path],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        # subprocess.run kills the child before re-raising.
        output = (e.stdout or b"").decode("utf-8", errors="replace")
        return ReloadOutcome(False, None, output, f"timed out after {timeout}s", _since(start))
    except OSError as e:
        return ReloadOutcome(False, None, "", f"{type(e).__name__}: {e}", _since(start))

    output = proc.stdout.decode("utf-8", errors="replace")
    if proc.returncode != 0:
        return ReloadOutcome(False, proc.returncode, output, f"exit status {proc.returncode}", _since(start))
    return ReloadOutcome(True, 0, output, None, _since(start))


def _since(start: float) -> float:
    return round(time.monotonic() - start, 3)
