"""Field generators for the supported generator variants."""

from sourcebox.generators.base import FieldGenerator, RowContext
from sourcebox.generators.derived import DerivedGenerator, compile_expression
from sourcebox.generators.enumeration import EnumerationGenerator
from sourcebox.generators.faker_generator import FakerFieldGenerator, provider_exists
from sourcebox.generators.reference import ForeignKeyReferenceGenerator
from sourcebox.generators.registry import (
    GeneratorRegistry,
    build_generator,
    list_generators,
)
from sourcebox.generators.scalar import ScalarRangeGenerator
from sourcebox.generators.sequence import UniqueSequenceGenerator

__all__ = [
    "DerivedGenerator",
    "EnumerationGenerator",
    "FakerFieldGenerator",
    "FieldGenerator",
    "ForeignKeyReferenceGenerator",
    "GeneratorRegistry",
    "RowContext",
    "ScalarRangeGenerator",
    "UniqueSequenceGenerator",
    "build_generator",
    "compile_expression",
    "list_generators",
    "provider_exists",
]
