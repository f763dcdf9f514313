from __future__ import annotations

from pathlib import Path

import pytest

from docsift.config import get_settings
from docsift.models import Category
from docsift.retrieval.service import RetrievalEngine


def write_document(root: Path, category: Category, name: str, text: str) -> Path:
    path = root / category.directory / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture()
def corpus_root(tmp_path: Path) -> Path:
    root = tmp_path / "corpus"
    write_document(root, Category.INVOICES, "invoice_1.txt", "Invoice INV-2025-001 total due $450 from Acme Corp")
    write_document(root, Category.INVOICES, "invoice_2.txt", "Invoice INV-2025-002 total due $120 from Globex")
    write_document(
        root,
        Category.CONTRACTS,
        "contract_alice.txt",
        "Employment contract for Alice. Notice period is 30 days. Annual leave is 25 days.",
    )
    write_document(
        root,
        Category.SUPPORT,
        "ticket_42.txt",
        "Customer reports the login page times out after password reset.",
    )
    return root


@pytest.fixture()
def engine() -> RetrievalEngine:
    return RetrievalEngine.from_settings(get_settings({"environment": "test"}))
