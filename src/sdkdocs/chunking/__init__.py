"""Estrategias de chunking y el manager que las orquesta."""
