"""Content store: reads corpus files once and serves them from memory."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

from langchain_community.document_loaders import TextLoader

from docsift.metrics.observability import PipelineMetrics, get_logger
from docsift.models import Category, Document

DEFAULT_EXTENSIONS: tuple[str, ...] = (".txt", ".md")


class DocumentLoadError(IOError):
    """Raised when a single corpus file cannot be read or decoded."""


class CorpusLoadError(IOError):
    """Raised when the corpus as a whole cannot be loaded."""


class ContentStore:
    """In-memory cache of corpus documents, keyed by category and document id.

    Each file is read exactly once, by ``load``. ``get`` never touches disk.
    """

    _logger = get_logger("corpus")

    def __init__(self, *, extensions: Sequence[str] = DEFAULT_EXTENSIONS, encoding: str = "utf-8") -> None:
        self._extensions = tuple(ext.lower() for ext in extensions)
        self._encoding = encoding
        self._documents: Dict[Category, Dict[str, Document]] = {}

    def load(self, corpus_root: Path | str, category: Category | str) -> set[Document]:
        category = Category.parse(category)
        directory = Path(corpus_root) / category.directory
        loaded: Dict[str, Document] = {}
        if not directory.is_dir():
            self._logger.warning(
                "corpus.category_missing",
                category=category.value,
                directory=str(directory),
            )
            self._documents[category] = loaded
            return set()

        for path in self._candidate_files(directory):
            try:
                document = self._read(path, directory, category)
            except DocumentLoadError as exc:
                PipelineMetrics.observe_skipped_document()
                self._logger.warning(
                    "corpus.document_skipped",
                    category=category.value,
                    path=str(path),
                    error=str(exc),
                )
                continue
            loaded[document.document_id] = document

        self._documents[category] = loaded
        self._logger.info(
            "corpus.category_loaded",
            category=category.value,
            directory=str(directory),
            document_count=len(loaded),
        )
        return set(loaded.values())

    def get(self, document_id: str, category: Category | str) -> Document:
        category = Category.parse(category)
        try:
            return self._documents[category][document_id]
        except KeyError:
            raise KeyError(f"Unknown document {document_id!r} in category {category.value!r}") from None

    def documents(self, category: Category | str) -> List[Document]:
        category = Category.parse(category)
        return sorted(self._documents.get(category, {}).values(), key=lambda doc: doc.document_id)

    def categories(self) -> List[Category]:
        return [category for category in Category if category in self._documents]

    def count(self) -> int:
        return sum(len(documents) for documents in self._documents.values())

    def _candidate_files(self, directory: Path) -> Iterable[Path]:
        for path in sorted(directory.rglob("*")):
            if any(part.startswith(".") for part in path.relative_to(directory).parts):
                continue
            if path.is_file() and path.suffix.lower() in self._extensions:
                yield path

    def _read(self, path: Path, directory: Path, category: Category) -> Document:
        loader = TextLoader(str(path), encoding=self._encoding)
        try:
            pages = loader.load()
        except RuntimeError as exc:
            cause = exc.__cause__ or exc
            raise DocumentLoadError(f"Failed to read {path}: {cause}") from exc
        text = "".join(page.page_content for page in pages)
        return Document(
            document_id=path.relative_to(directory).as_posix(),
            category=category,
            source_path=str(path.resolve()),
            text=text,
            content_hash=hashlib.sha256(text.encode("utf-8")).hexdigest(),
        )
