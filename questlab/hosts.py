"""Managed block in the local hosts file.

Only the lines between the BEGIN/END markers belong to questlab. Everything
else in the file is preserved byte for byte.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from questlab.config import settings
from questlab.errors import HostsFileError

logger = logging.getLogger(__name__)

BEGIN_MARKER = "# BEGIN questlab"
END_MARKER = "# END questlab"


def short_name(name: str) -> str:
    """First label of a dotted host name."""
    return name.split(".", 1)[0]


class HostsFile:
    """Reads and rewrites the questlab block of a hosts file."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path or settings.hosts_path)

    @property
    def target(self) -> Path:
        """The real file behind the path; a symlinked hosts file stays a symlink."""
        return self.path.resolve()

    @property
    def backup_path(self) -> Path:
        target = self.target
        return target.with_name(target.name + ".questlab.bak")

    @staticmethod
    def render(addresses: dict[str, str]) -> str:
        """Render the managed block for a node name -> IP mapping."""
        lines = [BEGIN_MARKER]
        for name in sorted(addresses):
            short = short_name(name)
            names = name if short == name else f"{name} {short}"
            lines.append(f"{addresses[name]}\t{names}")
        lines.append(END_MARKER)
        return "\n".join(lines) + "\n"

    @staticmethod
    def strip_block(content: str) -> str:
        """Remove the managed block (markers included) from file content."""
        kept = []
        block: list[str] = []
        inside = False
        for line in content.splitlines(keepends=True):
            stripped = line.strip()
            if stripped == BEGIN_MARKER and not inside:
                inside = True
                block = [line]
            elif inside:
                block.append(line)
                if stripped == END_MARKER:
                    inside = False
                    block = []
            else:
                kept.append(line)
        # An unterminated block is not ours to drop
        kept.extend(block)
        return "".join(kept)

    def read(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""

    def update(self, addresses: dict[str, str]) -> None:
        """Replace the managed block with entries for addresses."""
        base = self.strip_block(self.read())
        if base and not base.endswith("\n"):
            base += "\n"
        self._write(base + self.render(addresses))
        logger.info(f"Wrote {len(addresses)} node entries to {self.path}")

    def clear(self) -> None:
        """Remove the managed block entirely."""
        content = self.read()
        stripped = self.strip_block(content)
        if stripped == content:
            logger.debug(f"No questlab entries in {self.path}")
            return
        self._write(stripped)
        logger.info(f"Removed questlab entries from {self.path}")

    def _write(self, content: str) -> None:
        """Write content, keeping the old file aside until the write succeeds.

        Raises:
            HostsFileError: If the file cannot be moved aside or written
        """
        target = self.target
        backup = self.backup_path
        had_original = target.exists()
        if had_original:
            try:
                os.replace(target, backup)
            except OSError as e:
                raise HostsFileError(str(target), str(e)) from e

        try:
            target.write_text(content, encoding="utf-8")
            if had_original:
                shutil.copymode(backup, target)
        except BaseException as e:
            if had_original:
                self._restore(target, backup)
            if isinstance(e, OSError):
                raise HostsFileError(str(target), str(e)) from e
            raise

        if had_original:
            try:
                backup.unlink()
            except OSError as e:
                logger.warning(f"Could not remove backup {backup}: {e}")

    @staticmethod
    def _restore(target: Path, backup: Path) -> None:
        try:
            os.replace(backup, target)
            logger.warning(f"Restored {target} after failed write")
        except OSError as restore_err:
            logger.error(f"Could not restore {target} from {backup}: {restore_err}")
