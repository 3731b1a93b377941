"""Example tests for provision."""

from pdum import provision


def test_version():
    """Test that the package has a version."""
    assert hasattr(provision, "__version__")
    assert isinstance(provision.__version__, str)
    assert len(provision.__version__) > 0


def test_import():
    """Test that the package can be imported."""
    assert provision is not None
