import pytest

from symcanon import Simplifier, SimplifierConfig, TagAllocator


@pytest.fixture
def simplifier():
    """A Simplifier with no caches, so every test starts clean."""
    return Simplifier.hermetic(SimplifierConfig(timeout_seconds=None))


@pytest.fixture
def tags():
    """A private tag allocator; tags start at 1000 to stand out in failures."""
    allocator = TagAllocator(start=1000)
    yield allocator
    allocator.reset()
