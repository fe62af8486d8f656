"""Constants and fakes shared across test modules."""

from typing import List
from unittest.mock import MagicMock

from services.hash_generator import HashGenerator

SALEOR_API_URL = "https://shop.example/graphql/"


def sequence_generator(values: List[str]) -> MagicMock:
    """Generator returning the given candidates in order."""
    generator = MagicMock(spec=HashGenerator)
    generator.generate.side_effect = list(values)
    return generator
