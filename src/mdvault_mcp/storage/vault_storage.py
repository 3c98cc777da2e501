"""File access for the configured vaults.

Maps virtual paths (``/<vault>/<relative path>``) onto the filesystem,
reads and writes documents, and enumerates the documents of each vault.
Every multi-document scan goes through ``iter_documents`` so a future
index can replace the directory walk without touching the scanners.
"""
import logging
import os
import posixpath
import tempfile
import threading
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from mdvault_mcp.config import VaultConfig, config as default_config
from mdvault_mcp.exceptions import (
    DocumentNotFoundError,
    ErrorCode,
    InvalidPathError,
    StorageError,
)
from mdvault_mcp.models.schema import DocumentRef
from mdvault_mcp.utils import compute_etag

logger = logging.getLogger(__name__)


class VaultStorage:
    """Reads and writes documents inside the configured vault roots."""

    def __init__(self, vault_config: Optional[VaultConfig] = None):
        self.config = vault_config or default_config
        self._roots = {
            name: root.expanduser().resolve()
            for name, root in self.config.vaults.items()
        }
        self._ignored = set(self.config.ignored_dirs)
        # Serializes compare-and-write within this process
        self.file_lock = threading.RLock()

    @property
    def vault_names(self) -> List[str]:
        return list(self._roots)

    def iter_vaults(self) -> List[Tuple[str, Path]]:
        """Return ``(name, root)`` pairs in configuration order."""
        return list(self._roots.items())

    def resolve(self, path: str) -> DocumentRef:
        """Resolve a virtual path to a document reference.

        Args:
            path: ``/<vault>/<relative path>``; the leading slash is optional.

        Returns:
            The matching DocumentRef (the file need not exist).

        Raises:
            InvalidPathError: If the vault is unknown or the path leaves the vault.
        """
        normalized = (path or "").strip().lstrip("/").rstrip("/")
        vault, _, relative = normalized.partition("/")

        root = self._roots.get(vault)
        if root is None:
            available = ", ".join(self._roots) or "(none)"
            raise InvalidPathError(
                f'Invalid vault name: "{vault}". Path must start with a vault name. '
                f"Available vaults: {available}",
                path=path,
                code=ErrorCode.VAULT_NOT_FOUND,
                suggestion="Use list_vaults to see the configured vaults.",
            )

        if relative:
            if ".." in relative.split("/"):
                raise InvalidPathError(
                    "Path traversal not allowed",
                    path=path,
                    code=ErrorCode.PATH_TRAVERSAL_DETECTED,
                )
            relative = posixpath.normpath(relative)
            if relative == ".":
                relative = ""

        full_path = (root / relative).resolve() if relative else root
        if full_path != root and root not in full_path.parents:
            raise InvalidPathError(
                "Path traversal not allowed",
                path=path,
                code=ErrorCode.PATH_TRAVERSAL_DETECTED,
            )

        return DocumentRef(vault=vault, relative_path=relative, full_path=full_path)

    def ref_for(self, vault: str, full_path: Path) -> DocumentRef:
        """Build a reference for a file found under a vault root."""
        root = self._roots[vault]
        relative = full_path.relative_to(root).as_posix()
        return DocumentRef(vault=vault, relative_path=relative, full_path=full_path)

    def exists(self, ref: DocumentRef) -> bool:
        return ref.full_path.is_file()

    def read(self, ref: DocumentRef) -> str:
        """Read a document's full text, line endings untouched.

        Raises:
            DocumentNotFoundError: If the document does not exist.
            StorageError: If the file cannot be read or decoded.
        """
        if not ref.full_path.is_file():
            raise DocumentNotFoundError(ref.virtual_path)
        try:
            with open(ref.full_path, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(
                f"Failed to read {ref.virtual_path}",
                operation="read",
                path=ref.relative_path,
                original_error=e,
            ) from e

    def write(self, ref: DocumentRef, content: str) -> None:
        """Write a document atomically, creating parent directories.

        The text goes to a temp file in the target directory and is then
        renamed over the destination, so readers never see a partial file.
        """
        target = ref.full_path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(
                prefix=f".{target.name}.", suffix=".tmp", dir=target.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                    f.write(content)
                os.replace(temp_name, target)
            except BaseException:
                if os.path.exists(temp_name):
                    os.unlink(temp_name)
                raise
        except OSError as e:
            raise StorageError(
                f"Failed to write {ref.virtual_path}",
                operation="write",
                path=ref.relative_path,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.debug(f"Wrote {ref.virtual_path} ({len(content)} chars)")

    def compare_and_write(
        self, ref: DocumentRef, content: str, expected_etag: str
    ) -> Optional[str]:
        """Write only if the stored text still has ``expected_etag``.

        Returns:
            None when the write happened, otherwise the current stored text.
        """
        with self.file_lock:
            current = self.read(ref)
            if compute_etag(current) != expected_etag:
                return current
            self.write(ref, content)
            return None

    def iter_documents(
        self, vault: Optional[str] = None, markdown_only: bool = True
    ) -> Iterator[DocumentRef]:
        """Enumerate documents, sorted by path, skipping ignored directories.

        Args:
            vault: Restrict the walk to one vault (default: every vault).
            markdown_only: Yield only ``.md`` files.
        """
        vaults = [vault] if vault else list(self._roots)
        for name in vaults:
            root = self._roots[name]
            yield from self._walk(name, root, markdown_only)

    def iter_scope(self, path: Optional[str] = None) -> Iterator[DocumentRef]:
        """Enumerate Markdown documents under a virtual directory or file.

        Without a path every vault is scanned.
        """
        if not path or path.strip("/") == "":
            yield from self.iter_documents()
            return
        ref = self.resolve(path)
        if ref.full_path.is_file():
            if ref.is_markdown:
                yield ref
            return
        if not ref.full_path.is_dir():
            raise DocumentNotFoundError(
                ref.virtual_path, message=f"Path does not exist: {ref.virtual_path}"
            )
        yield from self._walk(ref.vault, ref.full_path, True)

    def _walk(self, vault: str, start: Path, markdown_only: bool) -> Iterator[DocumentRef]:
        for dirpath, dirnames, filenames in os.walk(start):
            dirnames[:] = sorted(d for d in dirnames if d not in self._ignored)
            for filename in sorted(filenames):
                if markdown_only and not filename.lower().endswith(".md"):
                    continue
                yield self.ref_for(vault, Path(dirpath) / filename)
