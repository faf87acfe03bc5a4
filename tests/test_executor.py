"""Tests for the subprocess executor and the streaming process handle."""

import json
import sys
from pathlib import Path
from typing import Callable

import anyio
import pytest

from claude_bridge._errors import (
    CLIConnectionError,
    CLINotFoundError,
    ProcessError,
    StreamReadError,
)
from claude_bridge._internal.executor import (
    MAX_LINE_SIZE_ENV,
    SubprocessExecutor,
    default_max_line_size,
    run_command,
)

pytestmark = pytest.mark.skipif(
    sys.platform == "win32", reason="fake CLI scripts rely on shebang execution"
)

MakeCli = Callable[..., str]


class TestExecute:
    @pytest.mark.asyncio
    async def test_prompt_goes_to_stdin_and_args_are_passed(self, make_cli: MakeCli) -> None:
        cli = make_cli(
            """
            prompt = sys.stdin.read()
            print(json.dumps({"argv": sys.argv[1:], "prompt": prompt}))
            """
        )
        output = await SubprocessExecutor().execute(cli, ["--print", "-x"], "hello there")
        assert json.loads(output) == {"argv": ["--print", "-x"], "prompt": "hello there"}

    @pytest.mark.asyncio
    async def test_output_combines_stdout_and_stderr(self, make_cli: MakeCli) -> None:
        cli = make_cli(
            """
            sys.stdout.write("out\\n"); sys.stdout.flush()
            sys.stderr.write("err\\n"); sys.stderr.flush()
            """
        )
        output = await SubprocessExecutor().execute(cli, [], "p")
        assert b"out" in output
        assert b"err" in output

    @pytest.mark.asyncio
    async def test_non_zero_exit_raises_process_error(self, make_cli: MakeCli) -> None:
        cli = make_cli(
            """
            sys.stderr.write("boom")
            sys.exit(2)
            """
        )
        with pytest.raises(ProcessError) as exc_info:
            await SubprocessExecutor().execute(cli, [], "p")
        assert exc_info.value.exit_code == 2
        assert "boom" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_working_dir(self, make_cli: MakeCli, tmp_path: Path) -> None:
        workdir = tmp_path / "work"
        workdir.mkdir()
        cli = make_cli("print(os.getcwd())")
        output = await SubprocessExecutor().execute(cli, [], "p", str(workdir))
        assert Path(output.decode().strip()).resolve() == workdir.resolve()

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path: Path) -> None:
        missing = str(tmp_path / "no-such-claude")
        with pytest.raises(CLINotFoundError) as exc_info:
            await SubprocessExecutor().execute(missing, [], "p")
        assert exc_info.value.cli_path == missing

    @pytest.mark.asyncio
    async def test_missing_working_dir(self, make_cli: MakeCli, tmp_path: Path) -> None:
        cli = make_cli("print('unreachable')")
        with pytest.raises(CLIConnectionError, match="Working directory does not exist"):
            await SubprocessExecutor().execute(cli, [], "p", str(tmp_path / "gone"))

    @pytest.mark.asyncio
    async def test_cancellation_kills_process(self, make_cli: MakeCli) -> None:
        cli = make_cli("time.sleep(30)")
        with anyio.fail_after(10):
            with anyio.move_on_after(0.5) as scope:
                await SubprocessExecutor().execute(cli, [], "p")
        assert scope.cancelled_caught


class TestExecuteStream:
    @pytest.mark.asyncio
    async def test_reads_lines_in_order(self, make_cli: MakeCli) -> None:
        cli = make_cli(
            """
            sys.stdin.read()
            sys.stdout.write("one\\r\\ntwo\\n\\nthree")
            """
        )
        stream = await SubprocessExecutor().execute_stream(cli, [], "p")
        lines = [line async for line in stream]
        await stream.aclose()
        assert lines == ["one", "two", "", "three"]
        assert stream.exhausted is True
        assert stream.returncode == 0

    @pytest.mark.asyncio
    async def test_prompt_reaches_stdin(self, make_cli: MakeCli) -> None:
        cli = make_cli("print(sys.stdin.read().upper())")
        stream = await SubprocessExecutor().execute_stream(cli, [], "shout")
        assert await stream.receive_line() == "SHOUT"
        assert await stream.receive_line() is None
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_close_reports_exit_status_with_stderr(self, make_cli: MakeCli) -> None:
        cli = make_cli(
            """
            print("partial")
            sys.stderr.write("boom")
            sys.exit(2)
            """
        )
        stream = await SubprocessExecutor().execute_stream(cli, [], "p")
        assert [line async for line in stream] == ["partial"]
        with pytest.raises(ProcessError) as exc_info:
            await stream.aclose()
        assert exc_info.value.exit_code == 2
        assert exc_info.value.message == "boom"

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, make_cli: MakeCli) -> None:
        cli = make_cli("sys.exit(3)")
        stream = await SubprocessExecutor().execute_stream(cli, [], "p")
        assert await stream.receive_line() is None
        with pytest.raises(ProcessError):
            await stream.aclose()
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_close_before_exhaustion_kills_process(self, make_cli: MakeCli) -> None:
        cli = make_cli(
            """
            print("first", flush=True)
            time.sleep(30)
            """
        )
        stream = await SubprocessExecutor().execute_stream(cli, [], "p")
        with anyio.fail_after(10):
            assert await stream.receive_line() == "first"
            with pytest.raises(ProcessError):
                await stream.aclose()
        assert stream.returncode is not None
        assert stream.returncode != 0

    @pytest.mark.asyncio
    async def test_line_too_long(self, make_cli: MakeCli) -> None:
        cli = make_cli(
            """
            sys.stdout.write("x" * 200)
            sys.stdout.flush()
            time.sleep(30)
            """
        )
        stream = await SubprocessExecutor(max_line_size=16).execute_stream(cli, [], "p")
        with pytest.raises(StreamReadError, match="exceeded buffer size"):
            await stream.receive_line()
        with pytest.raises(ProcessError):
            await stream.aclose()

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path: Path) -> None:
        with pytest.raises(CLINotFoundError):
            await SubprocessExecutor().execute_stream(str(tmp_path / "nope"), [], "p")


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_returns_stdout_only(self, make_cli: MakeCli) -> None:
        cli = make_cli(
            """
            print(" ".join(sys.argv[1:]))
            sys.stderr.write("noise")
            """
        )
        output = await run_command(cli, ["--version"])
        assert output.decode().strip() == "--version"

    @pytest.mark.asyncio
    async def test_failure_carries_stderr(self, make_cli: MakeCli) -> None:
        cli = make_cli(
            """
            sys.stderr.write("bad flag")
            sys.exit(1)
            """
        )
        with pytest.raises(ProcessError) as exc_info:
            await run_command(cli, ["--nope"])
        assert exc_info.value.exit_code == 1
        assert exc_info.value.message == "bad flag"


class TestMaxLineSize:
    def test_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(MAX_LINE_SIZE_ENV, raising=False)
        assert default_max_line_size() == 1024 * 1024

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(MAX_LINE_SIZE_ENV, "2048")
        assert default_max_line_size() == 2048
        assert SubprocessExecutor().max_line_size == 2048

    @pytest.mark.parametrize("value", ["abc", "0", "-4"])
    def test_invalid_env_falls_back(self, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
        monkeypatch.setenv(MAX_LINE_SIZE_ENV, value)
        assert default_max_line_size() == 1024 * 1024
