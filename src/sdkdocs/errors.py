"""Taxonomía de errores de sdkdocs.

- Errores de entrada: se reportan por ítem y la ingesta continúa.
- Errores de configuración: fallan de inmediato en la llamada.
- Errores de servicios externos: se recuperan localmente (degradación).
- Errores de contrato: indican un bug y son fatales.
"""

from __future__ import annotations


class SdkDocsError(Exception):
    """Raíz de todos los errores propios."""


# ---------- Entrada ----------

class InputError(SdkDocsError):
    """Fuente malformada o con metadata faltante."""


class SourceParseError(InputError):
    """Un archivo del corpus no pudo leerse o decodificarse."""

    def __init__(self, source_file: str, reason: str) -> None:
        self.source_file = source_file
        self.reason = reason
        super().__init__(f"{source_file}: {reason}")


class NormalizationError(InputError):
    """Un ítem de la fuente no tiene la estructura mínima requerida."""

    def __init__(self, source_file: str, path: str, reason: str) -> None:
        self.source_file = source_file
        self.path = path
        self.reason = reason
        location = f"{source_file}#{path}" if path else source_file
        super().__init__(f"{location}: {reason}")


# ---------- Configuración ----------

class ConfigurationError(SdkDocsError):
    """Parámetros inválidos suministrados por quien llama."""


class UnknownStrategyError(ConfigurationError):
    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        self.available = available
        super().__init__(
            f"Estrategia de chunking desconocida '{name}'. Disponibles: {', '.join(available)}"
        )


class InvalidWeightError(ConfigurationError):
    """Peso de ranking no numérico (NaN, infinito o de otro tipo)."""


class InvalidFilterError(ConfigurationError):
    """Filtro de búsqueda con un nombre no soportado."""


class InvalidChunkingOptionsError(ConfigurationError):
    """Tamaños de chunk u overlap incoherentes."""


# ---------- Servicios externos ----------

class ExternalServiceError(SdkDocsError):
    """Falla del proveedor de embeddings o del vector store."""


class EmbeddingError(ExternalServiceError):
    pass


class VectorStoreError(ExternalServiceError):
    pass


# ---------- Contrato ----------

class ContractError(SdkDocsError):
    """Invariante interno violado: es un bug, no un error de datos."""


class DuplicateChunkIdError(ContractError):
    def __init__(self, chunk_id: str) -> None:
        self.chunk_id = chunk_id
        super().__init__(f"ID de chunk duplicado en la misma corrida: {chunk_id}")
