"""Índice léxico, adaptador vectorial y ranking híbrido."""
