"""Thin async wrapper around the docker and docker compose CLIs."""

import asyncio
import logging
import shlex
import shutil
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

log = logging.getLogger(__name__)

COMMAND_NOT_FOUND = 127


@dataclass(frozen=True, kw_only=True)
class CommandResult:
    """Exit status and captured output of an external command."""

    args: Sequence[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        """Whether the command exited with status zero."""
        return self.returncode == 0

    def lines(self) -> Sequence[str]:
        """Non-empty stdout lines."""
        return [line.strip() for line in self.stdout.splitlines() if line.strip()]


async def run_command(
    *args: str, cwd: Path | None = None, verbose: bool = False
) -> CommandResult:
    """Run a command to completion and capture its output.

    A missing executable is reported as exit status 127, the way a shell
    would, so callers only ever inspect the result.
    """
    log.debug("Running: %s", shlex.join(args))
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        return CommandResult(
            args=args,
            returncode=COMMAND_NOT_FOUND,
            stderr=f"{args[0]}: command not found",
        )

    stdout, stderr = await process.communicate()
    result = CommandResult(
        args=args,
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )

    if verbose:
        for line in (result.stdout + result.stderr).splitlines():
            log.info("  %s", line)

    return result


async def stream_command(
    *args: str, log_path: Path, cwd: Path | None = None, echo: bool = False
) -> int:
    """Run a command with stderr merged into stdout, capturing it to a log file.

    Returns:
        The exit status of the command

    """
    log.debug("Streaming: %s > %s", shlex.join(args), log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    with log_path.open("w", encoding="utf-8") as log_file:
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError:
            log_file.write(f"{args[0]}: command not found\n")
            return COMMAND_NOT_FOUND

        if process.stdout is None:
            raise RuntimeError(f"No output pipe for {args[0]}")
        async for raw_line in process.stdout:
            line = raw_line.decode(errors="replace")
            log_file.write(line)
            if echo:
                sys.stdout.write(line)

        return await process.wait()


async def detect_compose_command(docker: str = "docker") -> Sequence[str] | None:
    """Find the compose command, preferring the v2 plugin over v1 standalone."""
    if (await run_command(docker, "compose", "version")).ok:
        return (docker, "compose")
    if standalone := shutil.which("docker-compose"):
        return (standalone,)
    return None


@dataclass(frozen=True, kw_only=True)
class DockerCli:
    """Docker and compose operations against one test topology."""

    executable: str = "docker"
    compose_command: Sequence[str] | None = None
    compose_file: Path
    project_dir: Path
    verbose: bool = False

    async def is_running(self) -> bool:
        """Check that the docker daemon answers."""
        return (await self._docker("info")).ok

    async def compose(self, *args: str, quiet: bool = False) -> CommandResult:
        """Run a compose subcommand against the test compose file.

        Output is echoed in verbose mode unless ``quiet`` is set.
        """
        if not self.compose_command:
            raise RuntimeError("No docker compose command available")
        return await run_command(
            *self.compose_command,
            "-f",
            str(self.compose_file),
            *args,
            cwd=self.project_dir,
            verbose=self.verbose and not quiet,
        )

    def exec_args(self, container: str, *args: str) -> Sequence[str]:
        """Command line executing ``args`` inside a running container."""
        return (self.executable, "exec", container, *args)

    async def exec(self, container: str, *args: str) -> CommandResult:
        """Execute a command inside a running container."""
        return await run_command(*self.exec_args(container, *args))

    async def list_containers(self, name_filters: Sequence[str]) -> Sequence[str]:
        """IDs of all containers (running or not) matching any name filter."""
        if not name_filters:
            return []
        filters = [arg for name in name_filters for arg in ("--filter", f"name={name}")]
        result = await self._docker("ps", "-a", *filters, "-q")
        return result.lines() if result.ok else []

    async def describe_containers(self, name_filters: Sequence[str]) -> Sequence[str]:
        """``name<TAB>status`` lines of containers matching any name filter."""
        if not name_filters:
            return []
        filters = [arg for name in name_filters for arg in ("--filter", f"name={name}")]
        result = await self._docker(
            "ps", "-a", *filters, "--format", "{{.Names}}\t{{.Status}}"
        )
        return result.lines() if result.ok else []

    async def remove_containers(self, container_ids: Sequence[str]) -> CommandResult:
        """Force-remove containers."""
        return await self._docker("rm", "-f", *container_ids, verbose=self.verbose)

    async def list_images(
        self,
        *,
        references: Sequence[str] = (),
        labels: Sequence[str] = (),
        dangling: bool = False,
    ) -> Sequence[str]:
        """IDs of images matching any of the given filters."""
        filters: list[str] = []
        filters += [arg for ref in references for arg in ("--filter", f"reference={ref}")]
        filters += [arg for label in labels for arg in ("--filter", f"label={label}")]
        if dangling:
            filters += ["--filter", "dangling=true"]
        if not filters:
            return []
        result = await self._docker("images", *filters, "-q")
        return result.lines() if result.ok else []

    async def describe_images(self, references: Sequence[str]) -> Sequence[str]:
        """``repository:tag<TAB>size`` lines of images matching any reference."""
        if not references:
            return []
        filters = [arg for ref in references for arg in ("--filter", f"reference={ref}")]
        result = await self._docker(
            "images", *filters, "--format", "{{.Repository}}:{{.Tag}}\t{{.Size}}"
        )
        return result.lines() if result.ok else []

    async def remove_images(self, image_ids: Sequence[str]) -> CommandResult:
        """Force-remove images."""
        return await self._docker("rmi", "-f", *image_ids, verbose=self.verbose)

    async def compose_images(self) -> Sequence[str]:
        """Image names declared by the compose file."""
        if not self.compose_command or not self.compose_file.is_file():
            return []
        result = await self.compose("config", "--images", quiet=True)
        return result.lines() if result.ok else []

    async def _docker(self, *args: str, verbose: bool = False) -> CommandResult:
        return await run_command(self.executable, *args, verbose=verbose)
