import pytest

from tsgraph.ir.metadata import Metadata


@pytest.fixture
def metadata():
    """The bundled operator schemas."""
    return Metadata.open()
