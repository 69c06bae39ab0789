"""sdkdocs: chunking, indexación y búsqueda híbrida sobre documentación de SDKs."""

__version__ = "0.1.0"
