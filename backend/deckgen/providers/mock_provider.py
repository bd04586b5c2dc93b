from deckgen.providers.base import BaseContentProvider


class MockProvider(BaseContentProvider):
    """No model behind it: every section resolves through its data source."""

    name = "mock"
