"""CLI for evaluating docsift retrieval accuracy."""

from __future__ import annotations

import argparse
import json
import statistics
import sys
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

from docsift.config import Settings, get_settings
from docsift.models import Category
from docsift.retrieval.service import RetrievalEngine


@dataclass(frozen=True)
class DocumentFixture:
    id: str
    category: Category
    content: str


@dataclass(frozen=True)
class QueryFixture:
    question: str
    category: Category
    relevant_document_ids: Sequence[str]


@dataclass(frozen=True)
class EvaluationResult:
    total_queries: int
    hits: int
    recall_at_k: float
    mean_reciprocal_rank: float
    average_latency_ms: float
    details: List[dict]

    def to_dict(self) -> dict:
        return {
            "total_queries": self.total_queries,
            "hits": self.hits,
            "recall_at_k": self.recall_at_k,
            "mean_reciprocal_rank": self.mean_reciprocal_rank,
            "average_latency_ms": self.average_latency_ms,
            "details": self.details,
        }


def load_dataset(path: Path) -> tuple[list[DocumentFixture], list[QueryFixture]]:
    data = json.loads(path.read_text(encoding="utf-8"))
    documents = [
        DocumentFixture(
            id=item["id"],
            category=Category.parse(item.get("category")),
            content=item["content"],
        )
        for item in data["documents"]
    ]
    queries = [
        QueryFixture(
            question=item["question"],
            category=Category.parse(item.get("category")),
            relevant_document_ids=item.get("relevant_document_ids", []),
        )
        for item in data["queries"]
    ]
    return documents, queries


def _write_corpus(root: Path, fixtures: Sequence[DocumentFixture]) -> None:
    for fixture in fixtures:
        name = fixture.id if Path(fixture.id).suffix else f"{fixture.id}.txt"
        path = root / fixture.category.directory / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(fixture.content, encoding="utf-8")


def _fixture_id(document_id: str) -> str:
    path = Path(document_id)
    return path.with_suffix("").as_posix() if path.suffix == ".txt" else document_id


def run_evaluation(
    dataset_path: Path,
    *,
    top_k: int = 3,
    settings: Settings | None = None,
    json_out: Path | None = None,
    markdown_out: Path | None = None,
) -> EvaluationResult:
    settings = settings or get_settings()
    documents, queries = load_dataset(dataset_path)
    fixture_ids = {fixture.id for fixture in documents}
    engine = RetrievalEngine.from_settings(settings)

    hits = 0
    reciprocal_ranks: list[float] = []
    latencies: list[float] = []
    details: list[dict] = []

    with tempfile.TemporaryDirectory() as tmpdir_str:
        root = Path(tmpdir_str)
        _write_corpus(root, documents)
        handle = engine.load_corpus(root)

        for query in queries:
            start = time.perf_counter()
            results = engine.retrieve(query.question, query.category, top_k, handle=handle)
            latency_ms = (time.perf_counter() - start) * 1000
            latencies.append(latency_ms)

            retrieved_ids: list[str] = []
            for result in results:
                doc_id = result.document_id if result.document_id in fixture_ids else _fixture_id(result.document_id)
                if doc_id not in retrieved_ids:
                    retrieved_ids.append(doc_id)
            relevant_set = set(query.relevant_document_ids)
            rank = None
            for index, doc_id in enumerate(retrieved_ids, start=1):
                if doc_id in relevant_set:
                    rank = index
                    break
            if rank is not None:
                hits += 1
                reciprocal_ranks.append(1 / rank)
            else:
                reciprocal_ranks.append(0.0)
            details.append(
                {
                    "question": query.question,
                    "category": query.category.value,
                    "retrieved": retrieved_ids,
                    "relevant": list(query.relevant_document_ids),
                    "latency_ms": latency_ms,
                },
            )

    total = len(queries)
    recall = hits / total if total else 0.0
    mrr = statistics.fmean(reciprocal_ranks) if reciprocal_ranks else 0.0
    avg_latency = statistics.fmean(latencies) if latencies else 0.0
    result = EvaluationResult(
        total_queries=total,
        hits=hits,
        recall_at_k=recall,
        mean_reciprocal_rank=mrr,
        average_latency_ms=avg_latency,
        details=details,
    )

    if json_out:
        json_out.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
    if markdown_out:
        markdown_out.write_text(_format_markdown(result), encoding="utf-8")
    return result


def _format_markdown(result: EvaluationResult) -> str:
    lines = [
        "# docsift Evaluation Report",
        "",
        f"- Total queries: {result.total_queries}",
        f"- Hits: {result.hits}",
        f"- Recall@k: {result.recall_at_k:.2f}",
        f"- MRR: {result.mean_reciprocal_rank:.2f}",
        f"- Avg latency (ms): {result.average_latency_ms:.2f}",
        "",
        "| Question | Category | Retrieved | Relevant |",
        "| --- | --- | --- | --- |",
    ]
    for item in result.details:
        retrieved = ", ".join(item["retrieved"]) if item["retrieved"] else "-"
        relevant = ", ".join(item["relevant"]) if item["relevant"] else "-"
        lines.append(f"| {item['question']} | {item['category']} | {retrieved} | {relevant} |")
    return "\n".join(lines)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Evaluate docsift retrieval accuracy.")
    parser.add_argument(
        "--dataset",
        type=Path,
        default=Path("evaluations/fixtures/sample.json"),
        help="Path to evaluation dataset JSON file.",
    )
    parser.add_argument("--top-k", type=int, default=3, help="Retrieval top-k value to evaluate")
    parser.add_argument("--json-out", type=Path, default=None, help="Optional path to write JSON report")
    parser.add_argument("--markdown-out", type=Path, default=None, help="Optional path to write Markdown report")
    parser.add_argument("--min-recall", type=float, default=None, help="Override recall threshold")
    parser.add_argument("--min-mrr", type=float, default=None, help="Override MRR threshold")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    settings = get_settings()
    min_recall = args.min_recall if args.min_recall is not None else settings.evaluation_min_recall
    min_mrr = args.min_mrr if args.min_mrr is not None else settings.evaluation_min_mrr

    result = run_evaluation(
        args.dataset,
        top_k=args.top_k,
        settings=settings,
        json_out=args.json_out,
        markdown_out=args.markdown_out,
    )
    print(json.dumps(result.to_dict(), indent=2))

    if result.recall_at_k < min_recall or result.mean_reciprocal_rank < min_mrr:
        print(
            f"Evaluation failed thresholds (recall {result.recall_at_k:.2f} vs {min_recall}, "
            f"MRR {result.mean_reciprocal_rank:.2f} vs {min_mrr})",
            file=sys.stderr,
        )
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
