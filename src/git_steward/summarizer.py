"""Commit message generation from diff text.

A summarizer maps the diff of a repository to a short commit message. Summarizers
never raise: when no specific message can be produced they return
`FALLBACK_COMMIT_MESSAGE`.
"""

import logging
import subprocess
from typing import Protocol

from .constants import APP_NAME, FALLBACK_COMMIT_MESSAGE

logger = logging.getLogger(APP_NAME)


class Summarizer(Protocol):
    def summarize(self, diff_text: str) -> str: ...


def parse_diff(diff_text: str) -> tuple[list[str], int, int]:
    """Extracts the touched files and line counts from a unified diff.

    Args:
        diff_text (str): The output of `git diff`.

    Returns:
        tuple[list[str], int, int]: (files, insertions, deletions). Files keep
                                    the order in which the diff lists them.
    """
    files: list[str] = []
    insertions = deletions = 0
    in_hunk = False

    for line in diff_text.splitlines():
        if line.startswith("diff --git "):
            in_hunk = False
            # diff --git a/<path> b/<path>
            target = line.rsplit(" b/", 1)
            if len(target) == 2 and target[1] not in files:
                files.append(target[1])
        elif line.startswith("@@"):
            in_hunk = True
        elif not in_hunk:
            continue  # File headers (index, ---, +++, mode changes).
        elif line.startswith("+"):
            insertions += 1
        elif line.startswith("-"):
            deletions += 1

    return files, insertions, deletions


class DiffStatSummarizer:
    """Builds a deterministic message such as `Update 2 files (+10/-3): a.py, b.py`.

    Attributes:
        max_files (int): Maximum number of file names listed in the message.
    """

    def __init__(self, max_files: int = 3):
        self.max_files = max_files

    def summarize(self, diff_text: str) -> str:
        try:
            files, insertions, deletions = parse_diff(diff_text)
        except Exception as e:
            logger.warning(f"SUMMARY ERROR: Could not parse diff: {e}")
            return FALLBACK_COMMIT_MESSAGE

        if not files:
            return FALLBACK_COMMIT_MESSAGE

        noun = "file" if len(files) == 1 else "files"
        names = ", ".join(files[: self.max_files])
        if len(files) > self.max_files:
            names += f" and {len(files) - self.max_files} more"
        return f"Update {len(files)} {noun} (+{insertions}/-{deletions}): {names}"


class CommandSummarizer:
    """Delegates summarization to an external command (e.g. an LLM CLI).

    The diff is written to the command's stdin and the first non-empty line of
    its stdout becomes the commit message. Any failure falls back to `fallback`.

    Attributes:
        command (str): The shell command to run.
        timeout (int): Seconds before the command is abandoned.
        fallback (Summarizer): Used when the command fails.
    """

    def __init__(
        self, command: str, timeout: int = 60, fallback: Summarizer | None = None
    ):
        self.command = command
        self.timeout = timeout
        self.fallback = fallback or DiffStatSummarizer()

    def summarize(self, diff_text: str) -> str:
        try:
            res = subprocess.run(
                self.command,
                shell=True,
                input=diff_text,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=True,
            )
        except subprocess.TimeoutExpired:
            logger.warning(
                f"SUMMARY TIMEOUT: '{self.command}' exceeded {self.timeout}s"
            )
            return self.fallback.summarize(diff_text)
        except (subprocess.CalledProcessError, OSError) as e:
            logger.warning(f"SUMMARY ERROR: '{self.command}' failed: {e}")
            return self.fallback.summarize(diff_text)

        for line in res.stdout.splitlines():
            if line.strip():
                return line.strip()

        logger.warning(f"SUMMARY ERROR: '{self.command}' produced no output")
        return self.fallback.summarize(diff_text)


def build_summarizer(command: str | None, timeout: int, max_files: int) -> Summarizer:
    """Selects the summarizer described by the configuration."""
    base = DiffStatSummarizer(max_files=max_files)
    if command:
        return CommandSummarizer(command, timeout=timeout, fallback=base)
    return base
