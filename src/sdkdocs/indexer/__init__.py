"""Carga del corpus, normalización, relaciones y pipeline de indexación."""
