"""Shared pytest fixtures for catalog-reconcile tests."""

from datetime import datetime, timezone

import pytest

from catalog_reconcile.catalog import (
    Model,
    ModelFeatures,
    ModelLimits,
    ModelMetadata,
    ModelModalities,
    ModelPricing,
    ModelTokenCost,
    ModelTokenPricing,
)

FIXED_NOW = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def clock():
    """Clock that always returns the same instant."""
    return lambda: FIXED_NOW


@pytest.fixture
def base_model():
    """A fully populated model used as the common ancestor."""
    return Model(
        id="gpt-4o",
        name="GPT-4o",
        description="Flagship multimodal model",
        authors=["openai"],
        metadata=ModelMetadata(tags=["chat"], open_weights=False),
        features=ModelFeatures(
            modalities=ModelModalities(input=["text"], output=["text"]),
            streaming=True,
        ),
        pricing=ModelPricing(
            tokens=ModelTokenPricing(
                input=ModelTokenCost(per_1m=2.5),
                output=ModelTokenCost(per_1m=10.0),
            )
        ),
        limits=ModelLimits(context_window=1000, output_tokens=500),
    )
