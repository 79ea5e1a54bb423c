import sys
from pathlib import Path

import pytest

# Make the streamsift package importable without installing it.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from streamsift.config import ItemTypeConfig, StreamSchema  # noqa: E402


@pytest.fixture
def items_schema() -> StreamSchema:
    return StreamSchema(
        item_types=[
            ItemTypeConfig(
                field="items",
                id_field="id",
                required_fields=["name"],
                min_lengths={"name": 5},
                optional_fields=["score"],
            )
        ]
    )
