"""Catalog resource records consumed by the reconciliation engine."""

from .models import (
    Author,
    AuthorCatalog,
    FloatRange,
    IntRange,
    Model,
    ModelArchitecture,
    ModelFeatures,
    ModelGeneration,
    ModelLimits,
    ModelMetadata,
    ModelModalities,
    ModelOperationPricing,
    ModelPricing,
    ModelTokenCost,
    ModelTokenPricing,
    Provider,
    ProviderAPIKey,
    ProviderCatalog,
    ProviderChatCompletions,
    ProviderGovernancePolicy,
    ProviderPrivacyPolicy,
    ProviderRetentionPolicy,
    Resource,
)

__all__ = [
    "Author",
    "AuthorCatalog",
    "FloatRange",
    "IntRange",
    "Model",
    "ModelArchitecture",
    "ModelFeatures",
    "ModelGeneration",
    "ModelLimits",
    "ModelMetadata",
    "ModelModalities",
    "ModelOperationPricing",
    "ModelPricing",
    "ModelTokenCost",
    "ModelTokenPricing",
    "Provider",
    "ProviderAPIKey",
    "ProviderCatalog",
    "ProviderChatCompletions",
    "ProviderGovernancePolicy",
    "ProviderPrivacyPolicy",
    "ProviderRetentionPolicy",
    "Resource",
]
