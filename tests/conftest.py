"""
Shared fixtures: settings isolated from the environment, the sample
catalog, an in-memory repository and a knowledge-base service over them.
"""
import pytest

from hydraulic_kb.classification import ClassificationEngine
from hydraulic_kb.code_parser import parse
from hydraulic_kb.config import Settings
from hydraulic_kb.fact_graph import FactGraph
from hydraulic_kb.knowledge_base import KnowledgeBaseService
from hydraulic_kb.repository import InMemoryRepository
from hydraulic_kb.sample_data import sample_catalog
from hydraulic_kb.seeding import bom_facts, item_facts


@pytest.fixture
def settings():
    return Settings(_env_file=None, worker_pool_size=2, batch_size=5, task_timeout_seconds=5.0)


@pytest.fixture
def catalog():
    return sample_catalog()


@pytest.fixture
def repo():
    return InMemoryRepository()


@pytest.fixture
def service(catalog, repo, settings):
    return KnowledgeBaseService(catalog, repo, settings)


@pytest.fixture(scope="session")
def classifier():
    return ClassificationEngine()


def cylinder_graph(code, name="", components=(), reference_boms=()):
    """
    A graph holding one cylinder, bare component facts for ``components``
    (code or (code, name, material)), and optional reference BOM edges.
    """
    graph = FactGraph(item_facts(code, name, spec=parse(code)), name=code)
    for component in components:
        if isinstance(component, str):
            component = (component, "", "")
        c_code, c_name, c_material = component
        graph.add_all(item_facts(c_code, c_name, c_material))
    for reference, children in reference_boms:
        graph.add_all(item_facts(reference, spec=parse(reference)))
        graph.add_all(bom_facts((reference, child) for child in children))
    return graph


@pytest.fixture
def make_graph():
    return cylinder_graph
