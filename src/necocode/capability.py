import asyncio
import logging
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path

from necocode.errors import ToolError
from necocode.tools import Tool, tool

logger = logging.getLogger(__name__)

MAX_GREP_HITS = 50


class Capability(ABC):
    """A cohesive group of tools sharing configuration.

    Capabilities are the unit between a tool and an agent: an Agent
    collects the tools of every capability it is given and registers
    them alongside its own.

    Args:
        name: Unique name identifying this capability.
    """

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def tools(self) -> list[Tool]:
        """Return the tools this capability provides.

        Tools typically close over ``self`` to reach the capability's
        configuration.
        """
        ...


class CodingTools(Capability):
    """The six file-system and shell tools of the coding assistant.

    Relative paths are resolved against *cwd*, which is also the working
    directory of ``bash``.

    Args:
        cwd: Working directory for path resolution and commands.
        bash_timeout: Seconds before a ``bash`` command is killed.
    """

    def __init__(self, cwd: str | os.PathLike = ".", bash_timeout: float = 300.0):
        super().__init__("coding")
        self.cwd = Path(cwd)
        self.bash_timeout = bash_timeout

    def _resolve(self, path: str) -> Path:
        return self.cwd / Path(path).expanduser()

    def tools(self) -> list[Tool]:
        cap = self

        @tool
        def read(path: str, offset: int | None = None, limit: int | None = None):
            """Read a file or list a directory. File output is prefixed with line numbers so lines can be referenced easily.

            Args:
                path: The absolute or relative path to the file or directory to read.
                offset: Number of lines to skip before reading. Only valid for files.
                limit: The maximum number of lines to read. Only valid for files.
            """
            return cap.read(path, offset, limit)

        @tool
        def write(path: str, content: str):
            """Write content to a file, creating it or overwriting it if it already exists.

            Args:
                path: The absolute or relative path to the file to write.
                content: The content to write to the file.
            """
            return cap.write(path, content)

        @tool
        def edit(path: str, old: str, new: str, all: bool = False):
            """Edit a file by replacing an exact string. The old string must be unique unless all is true.

            Args:
                path: The absolute or relative path to the file to edit.
                old: The exact text to replace, including whitespace and indentation.
                new: The replacement text.
                all: Replace every occurrence instead of requiring a unique match.
            """
            return cap.edit(path, old, new, all)

        @tool
        def glob(pat: str, path: str | None = None):
            """Find files by glob pattern such as "**/*.py". Returns matching paths, newest first.

            Args:
                pat: The glob pattern to match files against.
                path: The directory to search in. Defaults to the working directory.
            """
            return cap.glob(pat, path)

        @tool
        def grep(pat: str, path: str | None = None):
            """Search file contents with a regular expression. Returns path:line:text for each match.

            Args:
                pat: The regular expression to search for.
                path: The directory to search in. Defaults to the working directory.
            """
            return cap.grep(pat, path)

        @tool
        async def bash(cmd: str):
            """Run a shell command and return its combined output. Use the dedicated tools for reading, writing and searching files.

            Args:
                cmd: The shell command to execute.
            """
            return await cap.bash(cmd)

        return [read, write, edit, glob, grep, bash]

    # ------------------------------------------------------------------
    # Implementations
    # ------------------------------------------------------------------

    def read(self, path: str, offset: int | None = None, limit: int | None = None) -> str:
        target = self._resolve(path)
        if target.is_dir():
            entries = sorted(
                p.name + ("/" if p.is_dir() else "") for p in target.iterdir()
            )
            return "\n".join(entries) if entries else "(empty directory)"

        lines = target.read_text(encoding="utf-8", errors="replace").splitlines()
        start = max(offset or 0, 0)
        end = len(lines) if limit is None else start + max(limit, 0)
        return "\n".join(
            f"{start + i + 1:4}| {line}" for i, line in enumerate(lines[start:end])
        )

    def write(self, path: str, content: str) -> str:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        return "ok"

    def edit(self, path: str, old: str, new: str, replace_all: bool = False) -> str:
        target = self._resolve(path)
        content = target.read_text(encoding="utf-8")
        count = content.count(old) if old else 0
        if count == 0:
            return "error: old_string not found"
        if count > 1 and not replace_all:
            return f"error: old_string appears {count} times, must be unique (use all=true)"
        target.write_text(
            content.replace(old, new) if replace_all else content.replace(old, new, 1),
            encoding="utf-8",
        )
        return "ok"

    def glob(self, pat: str, path: str | None = None) -> str:
        root = self._resolve(path or ".")
        try:
            matches = [p for p in root.glob(pat) if p.is_file()]
        except (ValueError, NotImplementedError) as e:
            raise ToolError(f"invalid glob pattern {pat!r}: {e}") from e
        if not matches:
            return "none"
        matches.sort(key=lambda p: p.stat().st_mtime, reverse=True)
        return "\n".join(p.as_posix() for p in matches)

    def grep(self, pat: str, path: str | None = None) -> str:
        try:
            pattern = re.compile(pat)
        except re.error as e:
            raise ToolError(f"invalid regex pattern {pat!r}: {e}") from e

        root = self._resolve(path or ".")
        hits: list[str] = []
        seen: set[tuple[int, int]] = set()
        for dirpath, dirnames, filenames in os.walk(root, followlinks=True):
            # Symlinks may point back up the tree; visit each directory once
            try:
                st = os.stat(dirpath)
            except OSError:
                dirnames[:] = []
                continue
            if (st.st_dev, st.st_ino) in seen:
                dirnames[:] = []
                continue
            seen.add((st.st_dev, st.st_ino))
            dirnames.sort()
            for filename in sorted(filenames):
                filepath = Path(dirpath) / filename
                try:
                    text = filepath.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError):
                    continue
                for line_num, line in enumerate(text.splitlines(), start=1):
                    if pattern.search(line):
                        hits.append(f"{filepath.as_posix()}:{line_num}:{line.strip()}")
                        if len(hits) >= MAX_GREP_HITS:
                            return "\n".join(hits)
        return "\n".join(hits) if hits else "none"

    async def bash(self, cmd: str) -> str:
        proc = await asyncio.create_subprocess_shell(
            cmd,
            cwd=self.cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), self.bash_timeout)
        except asyncio.TimeoutError:
            raise ToolError(f"command timed out after {self.bash_timeout}s")
        finally:
            # Timeout or cancellation: the child must not outlive the call
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

        output_lines = []
        for stream in (stdout, stderr):
            for line in stream.decode("utf-8", errors="replace").splitlines():
                logger.info(f"  │ {line}")
                output_lines.append(line)
        if proc.returncode != 0:
            output_lines.append(f"(exit code: {proc.returncode})")

        result = "\n".join(output_lines).strip()
        return result or "(empty)"
