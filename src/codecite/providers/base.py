"""Provider protocols for dependency injection."""

from typing import Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel

SchemaT = TypeVar("SchemaT", bound=BaseModel)


@runtime_checkable
class Embedder(Protocol):
    """Protocol for embedding providers."""

    @property
    def model_name(self) -> str:
        """Identifier of the model producing the vectors.

        Stored vectors are only reused when this matches.
        """
        ...

    def embed_one(self, text: str) -> list[float]:
        """Embed a single text."""
        ...

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts in one provider round-trip.

        Returns one vector per input, in input order.
        """
        ...


@runtime_checkable
class ChatModel(Protocol):
    """Protocol for chat providers with schema-validated output."""

    def generate_structured(self, system: str, user: str, schema: type[SchemaT]) -> SchemaT:
        """Ask for a JSON answer and validate it against ``schema``.

        Raises:
            StructuredOutputError: The reply was not valid JSON for the schema.
            ProviderError: The call failed or timed out.
        """
        ...
