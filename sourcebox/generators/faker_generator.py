"""Faker-based content generator."""

from __future__ import annotations

from typing import Any

from faker import Faker

from sourcebox.exceptions import GenerationError
from sourcebox.generators.base import FieldGenerator, RowContext
from sourcebox.models import ColumnDefinition, FakerSpec

# Only used to check provider names; generation uses the table-scoped instance.
_reference = Faker()

# Faker methods that are not content providers
NON_PROVIDERS = {
    "seed",
    "seed_instance",
    "seed_locale",
    "add_provider",
    "get_providers",
    "provider",
    "format",
    "parse",
    "get_formatter",
    "set_formatter",
    "set_arguments",
    "get_arguments",
    "del_arguments",
    "random",
    "unique",
    "optional",
    "locales",
    "weights",
    "factories",
}

# Column name → Faker provider, used when a string column declares no generator
COLUMN_PROVIDERS = {
    "email": "email",
    "first_name": "first_name",
    "last_name": "last_name",
    "name": "name",
    "full_name": "name",
    "username": "user_name",
    "company": "company",
    "company_name": "company",
    "phone": "phone_number",
    "phone_number": "phone_number",
    "address": "address",
    "street": "street_address",
    "street_address": "street_address",
    "city": "city",
    "state": "state",
    "country": "country",
    "zip": "zipcode",
    "zipcode": "zipcode",
    "postal_code": "postcode",
    "url": "url",
    "website": "url",
    "job_title": "job",
    "iban": "iban",
    "description": "sentence",
    "bio": "paragraph",
}


def provider_exists(name: str) -> bool:
    """
    Check whether ``name`` is a Faker provider method.

    Example:
        >>> provider_exists("email")
        True
        >>> provider_exists("seed_instance")
        False
    """
    if not name or name.startswith("_") or name in NON_PROVIDERS:
        return False
    try:
        return callable(getattr(_reference, name))
    except AttributeError:
        return False


class FakerFieldGenerator(FieldGenerator):
    """Generate realistic content using a Faker provider."""

    def __init__(self, table: str, column: ColumnDefinition):
        super().__init__(table, column)
        self.spec: FakerSpec = column.generator
        self._kwargs = dict(self.spec.kwargs)

    def generate(self, ctx: RowContext) -> Any:
        provider = getattr(ctx.faker, self.spec.provider)
        try:
            return provider(*self.spec.args, **self._kwargs)
        except (TypeError, ValueError, AttributeError) as e:
            raise GenerationError(
                self.table,
                self.column.name,
                f"faker provider '{self.spec.provider}' failed: {e}",
            ) from e
