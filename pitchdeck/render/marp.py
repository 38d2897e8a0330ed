"""Marp CLI renderer: converts the generated deck markdown into PDF or HTML."""
import logging
import shlex
import subprocess
from typing import List, Optional

from pitchdeck.core.errors import CollaboratorTimeoutError, RenderError

logger = logging.getLogger(__name__)

FORMATS = ("pdf", "html")
STDERR_TAIL_CHARS = 1000


class MarpRenderer:
    """Runs `<command> <md> --pdf|--html --output <out> --theme <theme> --allow-local-files`.
    Why available: The worker renders every deck twice (steps 4 and 5) through this one entry point."""

    def __init__(self, command: str = "npx @marp-team/marp-cli"):
        self.command = command

    def build_args(self, md_path: str, out_path: str, fmt: str, theme: str) -> List[str]:
        if fmt not in FORMATS:
            raise ValueError(f"unsupported render format: {fmt}")
        return shlex.split(self.command) + [
            md_path,
            f"--{fmt}",
            "--output",
            out_path,
            "--theme",
            theme,
            "--allow-local-files",
        ]

    def render(
        self,
        md_path: str,
        out_path: str,
        fmt: str,
        theme: str,
        *,
        timeout: Optional[float] = None,
    ) -> str:
        args = self.build_args(md_path, out_path, fmt, theme)
        logger.info("marp render fmt=%s theme=%s out=%s", fmt, theme, out_path)
        try:
            proc = subprocess.run(args, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise CollaboratorTimeoutError(f"marp {fmt} conversion timed out after {timeout}s") from e
        except OSError as e:
            raise RenderError(f"could not start marp ({args[0]}): {e}") from e

        if proc.returncode != 0:
            tail = (proc.stderr or proc.stdout or "").strip()[-STDERR_TAIL_CHARS:]
            raise RenderError(f"marp exited with status {proc.returncode}: {tail}")
        return out_path
