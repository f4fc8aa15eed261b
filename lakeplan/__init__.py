"""
lakeplan: pipeline plan compiler and execution coordinator.

Compiles blueprints made of plugin-supplied sub-plans into one staged plan,
persists pipelines with their task rows, and enforces one active pipeline
per blueprint.
"""

__version__ = "0.1.0"
