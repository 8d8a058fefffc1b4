"""
Demo: run a batch over the sample catalog, generate a BOM for a cylinder
code that is not in the catalog and queue it for review.

    python -m hydraulic_kb
"""
from __future__ import annotations
import asyncio
import logging

from hydraulic_kb.batch import BatchCoordinator
from hydraulic_kb.config import get_settings
from hydraulic_kb.knowledge_base import KnowledgeBaseService
from hydraulic_kb.logging_config import configure_logging
from hydraulic_kb.models import BatchOptions
from hydraulic_kb.repository import InMemoryRepository
from hydraulic_kb.sample_data import sample_catalog

logger = logging.getLogger(__name__)


async def _example():
    settings = get_settings()
    configure_logging(settings)

    repo = InMemoryRepository()
    service = KnowledgeBaseService(sample_catalog(), repo, settings)
    await service.load_catalog()

    coordinator = BatchCoordinator(service, repo, settings)
    result = await coordinator.run(options=BatchOptions.from_settings(settings, pool_size=4, batch_size=5))

    print(f"\n--- Batch {result.job_id} ---")
    print(result.summary)
    print(f"Hydraulic cylinders: {result.hydraulic_cylinder_count}")
    for failure in result.failed_items:
        print(f"  FAILED {failure['item_code']} [{failure['error_type']}]: {failure['message']}")

    target = "30101090000300Y"
    bom = service.generate_bom(target)
    print(f"\n--- BOM for {target} ---")
    for key, value in bom.specification_summary.items():
        print(f"  {key}: {value}")
    print(f"Classifications: {', '.join(bom.classifications)}")
    for category, suggestions in bom.suggestions.items():
        if not suggestions:
            continue
        print(f"\n  {category.value} (qty {bom.quantities.get(category, 1)}):")
        for s in suggestions[:3]:
            print(f"    {s.component_code} {s.component_name} "
                  f"{s.confidence:.2f} [{s.priority.value}] {'; '.join(s.reasons)}")

    print(f"\nCompleteness: {bom.validation.completeness_score:.0%}")
    for warning in bom.validation.warnings:
        print(f"  ! {warning}")

    print("\n--- Similar cylinders ---")
    for match in bom.similar_products:
        print(f"  {match.code} {match.similarity_percentage}%: {', '.join(match.similarities)}")

    await service.save_generated_bom(target, "Demo quote", bom=bom)
    stats = await service.statistics()
    print("\n--- Knowledge base ---")
    print(f"Entries: {stats.total_entries} ({stats.hydraulic_cylinder_percentage:.0f}% cylinders), "
          f"{stats.pending_validation} generated BOM(s) awaiting review")


if __name__ == '__main__':
    asyncio.run(_example())
