"""Engine: the explicit context handle that owns and wires every component.

One Engine is built per process (or per test) with Engine.open(). It holds
the database connection, the repository, the in-memory lexical index and the
retrieval / annotation / planning components; nothing lives in module scope.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from groundwork.annotate import AnnotationPipeline, build_annotators
from groundwork.audit import export_run
from groundwork.config import GroundworkConfig
from groundwork.db.connection import Database
from groundwork.db.models import Feedback, RetrievalWeights, Run
from groundwork.db.repository import Repository
from groundwork.db.schema import initialize
from groundwork.errors import UnknownRun
from groundwork.graph.executor import Executor
from groundwork.graph.planner import Planner, repair_graph
from groundwork.graph.reasoning import ComposedAnswer, compose
from groundwork.graph.tasks import TaskGraph
from groundwork.ingest.processor import IngestionProcessor
from groundwork.ingest.sources import DocumentSource
from groundwork.learning.weights import WeightLearner
from groundwork.rag.bm25 import LexicalIndex
from groundwork.rag.embeddings import EmbeddingProvider
from groundwork.rag.expansion import QueryExpander
from groundwork.rag.llm_client import LiteLLMGenerator, TextGenerator, has_api_key
from groundwork.rag.reranker import Reranker
from groundwork.rag.retriever import HybridRetriever, ScoredChunk
from groundwork.rag.synthesizer import Synthesizer

logger = logging.getLogger(__name__)


@dataclass
class Answer:
    run_id: str
    text: str
    result: ComposedAnswer
    intents: list[str] = field(default_factory=list)
    latency_ms: int = 0


class Engine:
    """Retrieval-and-reasoning engine bound to one database.

    Use Engine.open() rather than the constructor. Close with close() or use
    the engine as a context manager.
    """

    def __init__(
        self,
        conn,
        config: GroundworkConfig,
        generator: TextGenerator | None = None,
    ) -> None:
        self.conn = conn
        self.config = config
        self.generator = generator
        self.repo = Repository(conn)
        self.index = LexicalIndex()

        gen = config.generation
        embed_model = config.embedding.model
        if embed_model and not has_api_key(embed_model):
            logger.info("stage=embed model=%s no API key, using hash embeddings", embed_model)
            embed_model = ""
        self.embedder = EmbeddingProvider(
            model=embed_model,
            timeout_s=config.embedding.timeout_s,
            batch_size=config.embedding.batch_size,
            fallback_dims=config.embedding.fallback_dims,
        )
        self.expander = QueryExpander(
            self.repo,
            generator=generator if config.expansion.ai_suggestions else None,
            model=gen.utility_model,
            seed_groups=config.expansion.seed_groups,
            suggestion_limit=config.expansion.suggestion_limit,
        )
        self.reranker = (
            Reranker(
                generator,
                gen.reranker_model,
                max_candidates=config.retrieval.rerank_max_candidates,
                cache_size=config.retrieval.rerank_cache_size,
            )
            if generator is not None and config.retrieval.rerank
            else None
        )
        self.retriever = HybridRetriever(
            self.repo,
            self.index,
            self.embedder,
            self.expander,
            reranker=self.reranker,
            lexical_candidates=config.retrieval.lexical_candidates,
            expansion_boost=config.retrieval.expansion_boost,
        )
        self.processor = IngestionProcessor(
            self.repo,
            embedder=self.embedder if config.ingest.embed_on_ingest else None,
            index=self.index,
            config=config.ingest,
        )
        self.annotators = build_annotators(
            claims_chars=config.annotation.claims_chars,
            entities_chars=config.annotation.entities_chars,
        )
        self.annotations = AnnotationPipeline(
            self.repo, generator, gen.annotator_model, wait_timeout_s=gen.timeout_s * 2
        )
        self.planner = Planner(generator, gen.utility_model, top_k=config.retrieval.top_k)
        self.executor = Executor(
            self.retriever,
            self.annotations,
            self.repo,
            self.repo.get_weights,
            self.annotators,
        )
        self.synthesizer = Synthesizer(generator, gen.model)
        self.learner = WeightLearner(self.repo, window=config.learning.feedback_window)

    @classmethod
    def open(
        cls,
        db_path: Path | str,
        config: GroundworkConfig | None = None,
        generator: TextGenerator | None = None,
    ) -> Engine:
        """Open (creating if needed) the database and build the engine.

        When *generator* is None a LiteLLMGenerator is used if the generation
        model's API key is present; otherwise every text-generation stage runs
        its local fallback. The lexical index is rebuilt from the store.
        """
        config = config or GroundworkConfig()
        conn = Database(db_path).connect()
        initialize(conn)
        if generator is None and has_api_key(config.generation.model):
            generator = LiteLLMGenerator(
                timeout_s=config.generation.timeout_s,
                num_retries=config.generation.num_retries,
            )
        engine = cls(conn, config, generator)
        engine.refresh_index()
        return engine

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> Engine:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Corpus
    # ------------------------------------------------------------------

    def refresh_index(self) -> int:
        """Rebuild the in-memory lexical index from the store. Returns the doc count."""
        count = self.index.rebuild(self.repo)
        logger.info("stage=index rebuilt chunks=%d", count)
        return count

    def ingest(
        self,
        origin_id: str,
        display_path: str,
        raw_text: str,
        *,
        source: str | None = None,
        append: bool = False,
    ) -> int:
        return self.processor.ingest(
            origin_id, display_path, raw_text, source=source, append=append
        )

    def ingest_source(self, source: DocumentSource, filter: str | None = None) -> int:
        """Ingest every candidate of *source*. Returns the total chunk count."""
        total = 0
        for candidate in source.list_candidates(filter):
            text = source.fetch_document(candidate.id)
            total += self.ingest(candidate.id, candidate.path, text)
        return total

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def weights(self) -> RetrievalWeights:
        return self.repo.get_weights()

    def search(self, query: str, k: int | None = None, rerank: bool = True) -> list[ScoredChunk]:
        return self.retriever.search(
            query, k or self.config.retrieval.top_k, self.repo.get_weights(), rerank=rerank
        )

    def answer(self, query: str, graph: dict | TaskGraph | None = None) -> Answer:
        """Plan, execute, persist, and synthesize an answer for *query*.

        *graph* overrides the planner; a dict goes through repair_graph().

        Raises:
            PlannerFailed: The graph is missing, malformed, or unrepairable.
            RagFailed: Execution failed.
        """
        started = time.monotonic()
        if graph is None:
            plan = self.planner.plan(query)
        elif isinstance(graph, TaskGraph):
            plan = graph
        else:
            plan = repair_graph(graph, query)

        run_id = uuid.uuid4().hex
        self.repo.add_artifact(run_id, "planner", plan.to_dict())
        output = self.executor.execute(plan, run_id)
        result = output if isinstance(output, ComposedAnswer) else compose(output)
        latency_ms = int((time.monotonic() - started) * 1000)

        self.repo.add_run(
            Run(
                id=run_id,
                query=query,
                intents=plan.intents,
                graph=plan.to_dict(),
                conclusions=[c["text"] for c in result.conclusions],
                support_count=len(result.support),
                valid=result.valid,
                latency_ms=latency_ms,
            )
        )
        text = self.synthesizer.synthesize(query, result, plan.intents)
        return Answer(
            run_id=run_id,
            text=text,
            result=result,
            intents=list(plan.intents),
            latency_ms=latency_ms,
        )

    # ------------------------------------------------------------------
    # Feedback + learning
    # ------------------------------------------------------------------

    def record_feedback(self, run_id: str, rating: int, comment: str | None = None) -> None:
        """Append feedback for *run_id*.

        Raises:
            ValueError: If *rating* is not an integer between 1 and 5.
            UnknownRun: If *run_id* does not exist.
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValueError(f"rating must be an integer from 1 to 5, got {rating!r}")
        if self.repo.get_run(run_id) is None:
            raise UnknownRun(run_id)
        self.repo.add_feedback(Feedback(run_id=run_id, rating=rating, comment=comment))

    def recompute_weights(self) -> RetrievalWeights | None:
        return self.learner.recompute()

    def export_run(self, run_id: str, dest: Path) -> Path:
        return export_run(self.repo, run_id, dest)
