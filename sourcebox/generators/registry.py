"""Generator registry: maps generator specifications to implementations."""

from __future__ import annotations

from sourcebox.generators.base import FieldGenerator
from sourcebox.generators.derived import DerivedGenerator
from sourcebox.generators.enumeration import EnumerationGenerator
from sourcebox.generators.faker_generator import FakerFieldGenerator
from sourcebox.generators.reference import ForeignKeyReferenceGenerator
from sourcebox.generators.scalar import ScalarRangeGenerator
from sourcebox.generators.sequence import UniqueSequenceGenerator
from sourcebox.models import (
    ColumnDefinition,
    DerivedSpec,
    EnumerationSpec,
    FakerSpec,
    ForeignKeyReferenceSpec,
    ScalarRangeSpec,
    UniqueSequenceSpec,
)

# Generator names accepted in schema documents, by variant
GENERATOR_NAMES = {
    "scalar_range": [
        "range",
        "int_range",
        "decimal_range",
        "float_range",
        "date_range",
        "datetime_range",
    ],
    "enumeration": ["enum", "choice", "weighted_choice", "boolean"],
    "unique_sequence": ["sequence", "unique_sequence", "auto_increment"],
    "foreign_key_reference": ["foreign_key", "reference"],
    "derived": ["derived", "expression", "template"],
    "faker": ["faker", "<any faker provider name>"],
}


class GeneratorRegistry:
    """Registry of generator implementations keyed by specification type."""

    def __init__(self):
        self._generators: dict[type, type[FieldGenerator]] = {}

    def register(self, spec_type: type, generator_class: type[FieldGenerator]) -> None:
        """
        Register a generator implementation.

        Args:
            spec_type: Specification dataclass the generator handles
            generator_class: FieldGenerator subclass

        Raises:
            ValueError: If generator class doesn't subclass FieldGenerator
        """
        if not (isinstance(generator_class, type) and issubclass(generator_class, FieldGenerator)):
            raise ValueError(
                f"Generator class must subclass FieldGenerator. "
                f"{generator_class!r} does not."
            )
        self._generators[spec_type] = generator_class

    def get(self, spec_type: type) -> type[FieldGenerator] | None:
        """
        Get generator class for a specification type.

        Returns:
            Generator class or None if not found
        """
        return self._generators.get(spec_type)

    def build(self, table: str, column: ColumnDefinition) -> FieldGenerator:
        """
        Instantiate the generator for a column.

        Raises:
            KeyError: If no generator handles the column's specification
        """
        generator_class = self.get(type(column.generator))
        if generator_class is None:
            raise KeyError(type(column.generator).__name__)
        return generator_class(table, column)

    def list_generators(self) -> list[str]:
        """
        List registered specification types.

        Returns:
            List of specification class names
        """
        return [spec_type.__name__ for spec_type in self._generators]


# Global registry instance
_registry = GeneratorRegistry()
_registry.register(ScalarRangeSpec, ScalarRangeGenerator)
_registry.register(EnumerationSpec, EnumerationGenerator)
_registry.register(UniqueSequenceSpec, UniqueSequenceGenerator)
_registry.register(ForeignKeyReferenceSpec, ForeignKeyReferenceGenerator)
_registry.register(DerivedSpec, DerivedGenerator)
_registry.register(FakerSpec, FakerFieldGenerator)


def build_generator(table: str, column: ColumnDefinition) -> FieldGenerator:
    """
    Build the generator for a column using the global registry.

    Example:
        >>> generator = build_generator("orders", table.get_column("status"))
        >>> generator.generate(ctx)
        'shipped'
    """
    return _registry.build(table, column)


def list_generators() -> dict[str, list[str]]:
    """
    List generator names accepted in schema documents.

    Returns:
        Mapping of generator variant to its accepted names
    """
    return {variant: list(names) for variant, names in GENERATOR_NAMES.items()}
