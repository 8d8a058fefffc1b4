"""
Hydraulic Cylinder Knowledge Base

Item-code parsing, rule-based classification over a fact graph, component
compatibility and similarity scoring, BOM generation, and a checkpointed
batch coordinator that drives the pipeline across a catalog.
"""

__version__ = "1.0.0"
