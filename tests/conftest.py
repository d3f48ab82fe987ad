"""Shared fixtures for the dossier analytics tests."""

import pytest

from models.dossier_models import Client, Sale


@pytest.fixture
def make_sale():
    """Build a Sale from store-style keyword arguments."""
    counter = iter(range(1, 10_000))

    def _make(**fields) -> Sale:
        fields.setdefault("id", next(counter))
        return Sale.model_validate(fields)

    return _make


@pytest.fixture
def make_client():
    def _make(client_id, nom, **fields) -> Client:
        return Client(id=client_id, nom=nom, **fields)

    return _make
