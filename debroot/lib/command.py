from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Dict, Mapping, Sequence

from ..errors import CommandError

logger = logging.getLogger(__name__)

# Exit status a shell reports for a command it cannot find.
NOT_FOUND = 127


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def _merged_env(extra: Mapping[str, str] | None) -> Dict[str, str]:
    env = dict(os.environ)
    env.update(extra or {})
    return env


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    input_text: str | None = None,
) -> CmdResult:
    """Run an external tool and log it.

    Every invocation is logged as `CMD ...`; captured output goes to the log
    at debug level. With check=True a non-zero exit raises CommandError
    carrying argv, exit status and stderr.
    """

    cmd = [str(a) for a in argv]
    shown = format_argv(cmd)
    logger.info("CMD %s", shown)

    try:
        proc = subprocess.run(
            cmd,
            input=input_text,
            capture_output=True,
            text=True,
            cwd=cwd,
            env=_merged_env(env),
        )
    except FileNotFoundError as e:
        raise CommandError(cmd, NOT_FOUND, str(e), f"{cmd[0]}: command not found") from e

    result = CmdResult(argv=cmd, returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)
    for stream, text in (("stdout", result.stdout), ("stderr", result.stderr)):
        if text.strip():
            logger.debug("%s of %s:\n%s", stream, cmd[0], text.rstrip())

    if check and not result.ok:
        raise CommandError(
            cmd,
            result.returncode,
            result.stderr,
            f"{shown} exited with {result.returncode}: {result.stderr.strip() or 'no error output'}",
        )
    return result
