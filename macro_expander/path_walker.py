"""
Path Walker

Depth-first visit of the input roots:

  • directory → every direct child, recursively, in listing order
  • file      → FileProcessor (non-whitelisted files are skipped there)
  • archive   → a zip file whose extension is not whitelisted; each
                whitelisted member is expanded and the archive rebuilt
  • anything else (missing path, broken link, device, FIFO) → InvalidPathError
"""

import logging
import os
import shutil
import tempfile
import zipfile
from dataclasses import dataclass
from typing import Iterable, Optional

from .errors import InvalidPathError
from .file_processor import SOURCE_ENCODING, SOURCE_ERRORS, FileProcessor

logger = logging.getLogger(__name__)


@dataclass
class WalkSummary:
    files_processed: int = 0
    files_skipped: int = 0
    archives_processed: int = 0
    lines_rewritten: int = 0

    def describe(self) -> str:
        return (
            f"{self.files_processed} file(s) expanded, {self.files_skipped} skipped, "
            f"{self.archives_processed} archive(s), {self.lines_rewritten} line(s) rewritten"
        )


class PathWalker:
    def __init__(self, processor: FileProcessor):
        self.processor = processor
        self.settings = processor.settings

    def visit_all(self, paths: Iterable[str]) -> WalkSummary:
        summary = WalkSummary()
        for path in paths:
            self.visit(path, summary)
        return summary

    def visit(self, path: str, summary: Optional[WalkSummary] = None) -> WalkSummary:
        if summary is None:
            summary = WalkSummary()

        if os.path.isdir(path):
            for entry in os.listdir(path):
                self.visit(os.path.join(path, entry), summary)
        elif os.path.isfile(path):
            if self._is_archive(path):
                self._visit_archive(path, summary)
            elif self.settings.is_whitelisted(path):
                summary.lines_rewritten += self.processor.process_file(path)
                summary.files_processed += 1
            else:
                self.processor.process_file(path)
                summary.files_skipped += 1
        else:
            raise InvalidPathError(path)
        return summary

    def _is_archive(self, path: str) -> bool:
        if self.settings.is_whitelisted(path):
            return False
        # Earlier non-overwrite output of an archive is not an input
        if path.endswith(self.settings.output_suffix):
            return False
        return zipfile.is_zipfile(path)

    # ────────────────────────────────────────────────────────────────
    #  Archives
    # ────────────────────────────────────────────────────────────────

    def _visit_archive(self, path: str, summary: WalkSummary):
        """Rebuild ``path`` with its whitelisted members expanded.

        Written to a temp file first and moved to the processor's output
        path (the archive itself in overwrite mode) only on success.
        Archives without whitelisted members are skipped and left as they
        are.  Nested archives are copied, not descended into.
        """
        try:
            with zipfile.ZipFile(path) as src:
                members = [i for i in src.infolist() if self._is_source_member(i)]
        except zipfile.BadZipFile as e:
            raise InvalidPathError(path) from e

        if not members:
            logger.info("Skipping archive %s: no whitelisted members", path)
            summary.files_skipped += 1
            return

        target = self.processor.output_path(path)
        directory = os.path.dirname(os.path.abspath(path))
        fd, tmp_path = tempfile.mkstemp(prefix=".macro-", suffix=".zip", dir=directory)
        os.close(fd)
        expanded = 0
        try:
            with zipfile.ZipFile(path) as src, zipfile.ZipFile(tmp_path, "w") as dst:
                for info in src.infolist():
                    data = src.read(info)
                    if self._is_source_member(info):
                        text = data.decode(SOURCE_ENCODING, SOURCE_ERRORS)
                        new_text, rewritten = self.processor.process_text(
                            text, suffix=os.path.splitext(info.filename)[1]
                        )
                        data = new_text.encode(SOURCE_ENCODING, SOURCE_ERRORS)
                        expanded += 1
                        summary.lines_rewritten += rewritten
                        logger.debug("Expanded %d line(s) in %s:%s", rewritten, path, info.filename)
                    elif not info.is_dir():
                        summary.files_skipped += 1
                    dst.writestr(info, data)
            shutil.copymode(path, tmp_path)
            os.replace(tmp_path, target)
        # RuntimeError: encrypted member; NotImplementedError: unknown compression
        except (zipfile.BadZipFile, RuntimeError, NotImplementedError) as e:
            logger.error("Cannot read archive %s: %s", path, e)
            raise InvalidPathError(path) from e
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)

        summary.files_processed += expanded
        summary.archives_processed += 1
        logger.info("Expanded %d member(s) of archive %s -> %s", expanded, path, target)

    def _is_source_member(self, info: zipfile.ZipInfo) -> bool:
        return not info.is_dir() and self.settings.is_whitelisted(info.filename)
