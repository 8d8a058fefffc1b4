"""
Hydraulic Cylinder Knowledge Base — Service Facade

Responsibilities:
  1. Own the shared knowledge-base FactGraph and the engines over it
  2. Per-item pipeline: hierarchy → facts → classification → merge → BOM
  3. BOM generation and similar-cylinder search for arbitrary codes
  4. Maintenance: statistics, cleanup of superseded versions, review of generated BOMs
"""
from __future__ import annotations
import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from hydraulic_kb.bom_generator import BomGenerator
from hydraulic_kb.catalog import BomHierarchy, CatalogSource, traverse_hierarchy
from hydraulic_kb.classification import ClassificationEngine, ClassificationResult
from hydraulic_kb.code_parser import CYLINDER_PREFIXES, CodeParser, parse_strict
from hydraulic_kb.compatibility import CompatibilityEngine
from hydraulic_kb.config import Settings, get_settings
from hydraulic_kb.errors import GraphMergeError, ItemProcessingFailure, ParseError
from hydraulic_kb.fact_graph import HYDRAULIC_CYLINDER, FactGraph
from hydraulic_kb.memo import BoundedMemo
from hydraulic_kb.models import (
    BOMStructure, CatalogItem, CleanupReport, EntrySource, ErrorType, GeneratedBomStatistics,
    KnowledgeBaseEntry, KnowledgeBaseStatistics, SimilarityMatch, Specification, ValidationStatus,
)
from hydraulic_kb.repository import KnowledgeBaseRepository
from hydraulic_kb.rules import Rule
from hydraulic_kb.seeding import bom_facts, item_facts
from hydraulic_kb.similarity import SimilarityEngine

logger = logging.getLogger(__name__)

# Quality scores of generated BOMs before and after review
GENERATED_QUALITY_SCORE = 0.3
VALIDATED_QUALITY_SCORE = 0.8
INVALID_QUALITY_SCORE = 0.1


class KnowledgeBaseService:
    """
    Entry point for everything that reads or grows the knowledge base.

    CPU-bound work (closure, BOM generation) runs in worker threads via
    ``asyncio.to_thread``; the shared graph serializes merges itself.
    """

    def __init__(
        self,
        catalog: CatalogSource,
        repo: KnowledgeBaseRepository,
        settings: Optional[Settings] = None,
        rules: Optional[Iterable[Rule]] = None,
    ):
        self.settings = settings or get_settings()
        self.catalog = catalog
        self.repo = repo
        self.graph = FactGraph(name="knowledge-base")
        self.parser = CodeParser(BoundedMemo(self.settings.spec_cache_size))
        self.classifier = ClassificationEngine(
            rules, max_iterations=self.settings.closure_max_iterations)
        self.similarity = SimilarityEngine.from_settings(self.settings, parser=self.parser)
        self.compatibility = CompatibilityEngine.from_settings(
            self.settings, similarity=self.similarity, parser=self.parser)
        self.generator = BomGenerator(
            self.graph,
            classifier=self.classifier,
            compatibility=self.compatibility,
            similarity=self.similarity,
            parser=self.parser,
        )

    # ----------------------------------------------------------
    # Catalog loading
    # ----------------------------------------------------------

    async def load_catalog(self) -> int:
        """Seed base facts for every catalog item. Returns new facts added."""
        items = await self.catalog.list_items()
        facts = []
        for item in items:
            spec = self._spec_for(item)
            facts.extend(item_facts(item.item_code, item.item_name, item.item_spec, spec))
        added = self.graph.add_all(facts)
        logger.info(f"Seeded {added} facts for {len(items)} catalog items")
        return added

    def _spec_for(self, item: CatalogItem) -> Optional[Specification]:
        if item.item_code[:1] in CYLINDER_PREFIXES:
            return self.parser.parse(item.item_code)
        return None

    # ----------------------------------------------------------
    # Per-item pipeline
    # ----------------------------------------------------------

    async def process_item(
        self,
        item: CatalogItem,
        job_id: Optional[str] = None,
        include_hierarchy: bool = True,
    ) -> KnowledgeBaseEntry:
        """
        Build, classify and merge the facts for one catalog item.

        Cylinders also get a generated BOM. The entry is returned unsaved.
        Raises ItemProcessingFailure with an ErrorType for expected failures.
        """
        start = time.perf_counter()
        code = item.item_code
        spec: Optional[Specification] = None
        if code[:1] in CYLINDER_PREFIXES:
            try:
                spec = parse_strict(code)
            except ParseError as e:
                logger.warning(f"{code}: {e.reason}; continuing with a partial specification")
                spec = self.parser.parse(code)

        hierarchy = await traverse_hierarchy(
            self.catalog, code, max_depth=None if include_hierarchy else 1)
        item_graph = await self._item_graph(item, spec, hierarchy)

        closure: ClassificationResult = await asyncio.to_thread(self.classifier.run, item_graph)
        if closure.capped:
            raise ItemProcessingFailure(
                code, "classification did not converge", ErrorType.VALIDATION_FAILED)
        try:
            added = self.graph.merge(closure.graph)
        except GraphMergeError as e:
            raise ItemProcessingFailure(code, str(e), ErrorType.VALIDATION_FAILED) from e

        is_cylinder = HYDRAULIC_CYLINDER in closure.graph.types_of(code)
        bom: Optional[BOMStructure] = None
        if is_cylinder:
            bom = await asyncio.to_thread(self.generator.generate, code, spec)

        entry = KnowledgeBaseEntry(
            item_code=code,
            item_name=item.item_name,
            is_hydraulic_cylinder=is_cylinder,
            specifications=spec.model_dump(exclude_none=True) if spec else {},
            triple_count=len(closure.graph),
            component_count=len(hierarchy.component_codes),
            hierarchy_depth=hierarchy.max_depth,
            quality_score=bom.validation.completeness_score if bom else None,
            bom=bom,
            job_id=job_id,
        )
        logger.debug(
            f"Processed {code}: {entry.triple_count} facts ({added} new), "
            f"{entry.component_count} components, "
            f"{(time.perf_counter() - start) * 1000:.0f}ms"
        )
        return entry

    async def _item_graph(self, item: CatalogItem, spec: Optional[Specification],
                          hierarchy: BomHierarchy) -> FactGraph:
        graph = FactGraph(
            item_facts(item.item_code, item.item_name, item.item_spec, spec),
            name=item.item_code,
        )
        for child in hierarchy.component_codes:
            child_item = await self.catalog.get_item(child)
            if child_item is None:
                graph.add_all(item_facts(child))
            else:
                graph.add_all(item_facts(
                    child, child_item.item_name, child_item.item_spec, self._spec_for(child_item)))
        graph.add_all(bom_facts(
            (hl.line.master_code, hl.line.component_code) for hl in hierarchy.lines
        ))
        return graph

    async def ingest(self, code: str) -> KnowledgeBaseEntry:
        """Process and persist one catalog item outside any batch."""
        item = await self.catalog.get_item(code)
        if item is None:
            raise ItemProcessingFailure(code, "item not found in catalog", ErrorType.FILE_NOT_FOUND)
        entry = await self.process_item(item)
        return await self.repo.save_entry(entry)

    # ----------------------------------------------------------
    # Queries
    # ----------------------------------------------------------

    def generate_bom(self, code: str, spec: Optional[Specification] = None) -> BOMStructure:
        return self.generator.generate(code, spec)

    def find_similar_cylinders(self, code: str) -> list[SimilarityMatch]:
        return self.similarity.find_similar_cylinders(self.graph, code)

    def with_custom_rules(self, texts: Iterable[str]) -> None:
        """Extend the rule set used for every later classification."""
        self.classifier = self.classifier.with_custom_rules(texts)
        self.generator.classifier = self.classifier

    # ----------------------------------------------------------
    # Maintenance
    # ----------------------------------------------------------

    async def statistics(self) -> KnowledgeBaseStatistics:
        return await self.repo.entry_statistics()

    async def cleanup(self, retention_days: Optional[int] = None) -> CleanupReport:
        """Delete superseded entry versions older than the retention window."""
        if retention_days is None:
            retention_days = self.settings.cleanup_retention_days
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        deleted = await self.repo.purge_inactive_entries(cutoff)
        report = CleanupReport(cutoff=cutoff, deleted_item_codes=deleted)
        logger.info(
            f"Cleanup removed {report.deleted_count} superseded versions "
            f"last updated before {cutoff:%Y-%m-%d}"
        )
        return report

    # ----------------------------------------------------------
    # Generated BOM review
    # ----------------------------------------------------------

    async def save_generated_bom(
        self,
        code: str,
        description: str = "",
        bom: Optional[BOMStructure] = None,
    ) -> KnowledgeBaseEntry:
        """
        Persist a BOM generated for a code the catalog does not hold.
        The entry waits for review with a low quality score.
        """
        code = code.strip()
        existing = await self.repo.get_entry(code)
        if existing is not None and existing.source is EntrySource.CATALOG:
            raise ItemProcessingFailure(
                code, "already in the knowledge base from the catalog", ErrorType.VALIDATION_FAILED)
        if bom is None:
            bom = await asyncio.to_thread(self.generator.generate, code)
        entry = KnowledgeBaseEntry(
            item_code=code,
            is_hydraulic_cylinder=code[:1] in CYLINDER_PREFIXES,
            specifications=bom.specifications.model_dump(exclude_none=True),
            component_count=bom.metadata.total_components,
            quality_score=GENERATED_QUALITY_SCORE,
            bom=bom,
            source=EntrySource.GENERATED,
            validation_status=ValidationStatus.PENDING_VALIDATION,
            description=description,
        )
        stored = await self.repo.save_entry(entry)
        logger.info(f"Saved generated BOM for {code} (v{stored.version}), pending validation")
        return stored

    async def validate_generated_bom(self, code: str, is_valid: bool, notes: str = "") -> KnowledgeBaseEntry:
        entry = await self.repo.get_entry(code)
        if entry is None:
            raise ItemProcessingFailure(code, "no knowledge-base entry", ErrorType.FILE_NOT_FOUND)
        if entry.source is not EntrySource.GENERATED:
            raise ItemProcessingFailure(code, "not a generated BOM", ErrorType.VALIDATION_FAILED)
        if is_valid:
            entry.validation_status = ValidationStatus.VALIDATED
            entry.quality_score = VALIDATED_QUALITY_SCORE
        else:
            entry.validation_status = ValidationStatus.INVALID
            entry.quality_score = INVALID_QUALITY_SCORE
        entry.validation_notes = notes or None
        entry.updated_at = datetime.now(timezone.utc)
        await self.repo.update_entry(entry)
        logger.info(f"Generated BOM {code} marked {entry.validation_status.value}")
        return entry

    async def find_generated_boms_needing_validation(self) -> list[KnowledgeBaseEntry]:
        return await self.repo.list_generated_entries(ValidationStatus.PENDING_VALIDATION)

    async def generated_bom_statistics(self) -> GeneratedBomStatistics:
        return GeneratedBomStatistics.from_entries(await self.repo.list_generated_entries())
