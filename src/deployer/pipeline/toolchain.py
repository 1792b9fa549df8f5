"""External toolchain execution.

Commands are argument vectors handed straight to the OS via
``asyncio.create_subprocess_exec``; no shell ever parses them. On top of
that every command goes through ``CommandSanitizer`` first, which rejects
shell metacharacters and programs outside the allow-list. The sanitizer
is a secondary guard only and its character list is not exhaustive.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Mapping, Optional, Sequence

from deployer.errors import (
    CommandNotAllowed,
    DangerousInput,
    DeploymentTimeout,
    ToolchainError,
    UnsafeCommand,
)
from deployer.pipeline.workspace import Workspace

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("deployer.security")

DANGEROUS_CHARACTERS = (";", "&", "|", "`", "$", "(", ")", "{", "}", "[", "]", "<", ">", '"', "'")
DEFAULT_ALLOWED_PROGRAMS = ("npx", "npm", "aptos", "hardhat")

# Environment kept when the ambient environment is not inherited
MINIMAL_ENV_KEYS = ("PATH", "HOME", "LANG", "TMPDIR", "SYSTEMROOT")

# Counter for blocked commands (for monitoring)
_blocked_attempts: dict[str, int] = {}


def log_blocked_command(reason: str, command: str) -> None:
    """Record a sanitizer trip as a possible attack signal."""
    _blocked_attempts[reason] = _blocked_attempts.get(reason, 0) + 1
    security_logger.warning(
        "SECURITY BLOCK: %s in toolchain command %r. Attempt #%d.",
        reason,
        command[:200],
        _blocked_attempts[reason],
    )


def get_blocked_attempts() -> dict[str, int]:
    """Get count of blocked commands per reason."""
    return _blocked_attempts.copy()


def clear_blocked_attempts() -> None:
    """Reset blocked command counters (useful for testing)."""
    _blocked_attempts.clear()


class CommandSanitizer:
    """Deny-list / allow-list check applied to every command before it runs."""

    def __init__(
        self,
        allowed_programs: Iterable[str] = DEFAULT_ALLOWED_PROGRAMS,
        dangerous_characters: Iterable[str] = DANGEROUS_CHARACTERS,
    ):
        self.allowed_programs = frozenset(allowed_programs)
        self.dangerous_characters = tuple(dangerous_characters)

    def check(self, command: "str | Sequence[str]") -> list[str]:
        """Validate a command and return it as an argument vector.

        Raises:
            DangerousInput: Command contains a shell metacharacter
            CommandNotAllowed: Leading program is not allowed
        """
        argv = command.split() if isinstance(command, str) else [str(a) for a in command]
        joined = " ".join(argv)

        for char in self.dangerous_characters:
            if char in joined:
                log_blocked_command(f"dangerous character {char!r}", joined)
                raise DangerousInput(char)

        program = argv[0] if argv else ""
        if program not in self.allowed_programs:
            log_blocked_command(f"program {program!r} not allowed", joined)
            raise CommandNotAllowed(program)

        return argv


@dataclass(frozen=True)
class ToolchainStep:
    """One command in a toolchain sequence."""

    name: str
    argv: tuple[str, ...]
    cwd: str = "."
    timeout: Optional[float] = None


@dataclass
class ToolchainResult:
    """Captured outcome of a single step."""

    step: str
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0 and not self.timed_out


@dataclass
class CommandSpec:
    """Fully resolved command handed to a runner."""

    argv: list[str]
    cwd: str
    env: dict[str, str] = field(repr=False)
    timeout: Optional[float] = None


Runner = Callable[[CommandSpec], Awaitable[ToolchainResult]]


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()


async def _collect(stream: Optional[asyncio.StreamReader], sink: bytearray) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(65536)
        if not chunk:
            return
        sink.extend(chunk)


def _decode(data: bytearray) -> str:
    return bytes(data).decode("utf-8", errors="replace")


async def run_subprocess(spec: CommandSpec, step: str = "") -> ToolchainResult:
    """Run a command without a shell, capturing stdout and stderr.

    Output is collected as it arrives, so a step that times out still
    reports what it printed before it was killed.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *spec.argv,
            cwd=spec.cwd,
            env=spec.env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        return ToolchainResult(step=step, returncode=127, stdout="", stderr=str(e))

    stdout, stderr = bytearray(), bytearray()
    try:
        await asyncio.wait_for(
            asyncio.gather(
                _collect(process.stdout, stdout),
                _collect(process.stderr, stderr),
                process.wait(),
            ),
            timeout=spec.timeout,
        )
    except asyncio.TimeoutError:
        await _terminate(process)
        partial_stderr = _decode(stderr)
        if partial_stderr and not partial_stderr.endswith("\n"):
            partial_stderr += "\n"
        return ToolchainResult(
            step=step,
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=_decode(stdout),
            stderr=f"{partial_stderr}Timed out after {spec.timeout}s",
            timed_out=True,
        )
    except asyncio.CancelledError:
        await asyncio.shield(_terminate(process))
        raise

    return ToolchainResult(
        step=step,
        returncode=process.returncode,
        stdout=_decode(stdout),
        stderr=_decode(stderr),
    )


class ToolchainInvoker:
    """Runs a toolchain sequence inside a workspace, stopping at the first failure."""

    def __init__(
        self,
        sanitizer: Optional[CommandSanitizer] = None,
        runner: Optional[Runner] = None,
        step_timeout: Optional[float] = 300.0,
        inherit_env: bool = True,
    ):
        self.sanitizer = sanitizer or CommandSanitizer()
        self._runner = runner
        self.step_timeout = step_timeout
        self.inherit_env = inherit_env

    def build_env(self, extra: Optional[Mapping[str, str]] = None) -> dict[str, str]:
        """Ambient (or minimal) environment plus injected variables."""
        if self.inherit_env:
            env = dict(os.environ)
        else:
            env = {k: os.environ[k] for k in MINIMAL_ENV_KEYS if k in os.environ}
        if extra:
            env.update({k: str(v) for k, v in extra.items()})
        return env

    def prepare(self, step: ToolchainStep, workspace: Workspace, env: dict[str, str]) -> CommandSpec:
        """Sanitize a step and pin its working directory inside the workspace."""
        argv = self.sanitizer.check(step.argv)
        try:
            cwd = workspace.resolve(step.cwd)
        except ValueError as e:
            log_blocked_command("working directory outside workspace", step.cwd)
            raise UnsafeCommand(str(e)) from e

        return CommandSpec(
            argv=argv,
            cwd=str(cwd),
            env=env,
            timeout=step.timeout or self.step_timeout,
        )

    async def run_step(
        self, step: ToolchainStep, workspace: Workspace, env: Optional[Mapping[str, str]] = None
    ) -> ToolchainResult:
        """Run a single step and return its captured result (never raises on exit code)."""
        spec = self.prepare(step, workspace, self.build_env(env))
        return await self._run(step, spec)

    async def run_sequence(
        self,
        steps: Sequence[ToolchainStep],
        workspace: Workspace,
        env: Optional[Mapping[str, str]] = None,
    ) -> ToolchainResult:
        """Run steps in order and return the last step's result.

        All steps are sanitized before the first one starts.

        Raises:
            UnsafeCommand: A step failed sanitization
            ToolchainError: A step exited non-zero (carries its output)
            DeploymentTimeout: A step exceeded its timeout
        """
        if not steps:
            raise ToolchainError("No toolchain steps configured")

        full_env = self.build_env(env)
        specs = [self.prepare(step, workspace, full_env) for step in steps]

        result: Optional[ToolchainResult] = None
        for step, spec in zip(steps, specs):
            logger.info(f"[{workspace.id}] Running step '{step.name}': {' '.join(spec.argv)}")
            result = await self._run(step, spec)

            if result.timed_out:
                logger.warning(f"[{workspace.id}] Step '{step.name}' timed out")
                raise DeploymentTimeout(
                    f"Step '{step.name}' timed out",
                    step=step.name,
                    stdout=result.stdout,
                    stderr=result.stderr,
                    returncode=result.returncode,
                )
            if not result.succeeded:
                logger.warning(
                    f"[{workspace.id}] Step '{step.name}' failed with exit code {result.returncode}"
                )
                raise ToolchainError(
                    f"Step '{step.name}' failed with exit code {result.returncode}",
                    step=step.name,
                    stdout=result.stdout,
                    stderr=result.stderr,
                    returncode=result.returncode,
                )
            logger.info(f"[{workspace.id}] Step '{step.name}' completed")

        return result

    async def _run(self, step: ToolchainStep, spec: CommandSpec) -> ToolchainResult:
        if self._runner is not None:
            result = await self._runner(spec)
            result.step = result.step or step.name
            return result
        return await run_subprocess(spec, step=step.name)
