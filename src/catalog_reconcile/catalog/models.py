"""Pydantic records for catalog resources.

Defines the three resource kinds the reconciliation engine works on:

- ``Model``: one AI model, with nested metadata, features, generation
  controls, pricing and limits.
- ``Provider``: a company or service that serves models.
- ``Author``: an organisation that publishes models.

All records are frozen (immutable).  Merging never edits a record in place;
it derives new ones with ``model_copy``.
"""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel

# ---------------------------------------------------------------------------
# Shared value types
# ---------------------------------------------------------------------------


class FloatRange(BaseModel):
    """Range of accepted float values for a generation parameter."""

    min: float = 0.0
    max: float = 0.0
    default: float = 0.0

    model_config = {"frozen": True}


class IntRange(BaseModel):
    """Range of accepted integer values for a generation parameter."""

    min: int = 0
    max: int = 0
    default: int = 0

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Model sub-structures
# ---------------------------------------------------------------------------


class ModelArchitecture(BaseModel):
    parameter_count: str | None = None
    type: str | None = None
    tokenizer: str | None = None
    quantization: str | None = None
    quantized: bool = False
    fine_tuned: bool = False
    base_model: str | None = None

    model_config = {"frozen": True}


class ModelMetadata(BaseModel):
    """Version and timing information for a model."""

    release_date: date | None = None
    open_weights: bool = False
    knowledge_cutoff: date | None = None
    tags: list[str] = []
    architecture: ModelArchitecture | None = None

    model_config = {"frozen": True}


class ModelModalities(BaseModel):
    input: list[str] = []
    output: list[str] = []

    model_config = {"frozen": True}


class ModelFeatures(BaseModel):
    """Capability flags describing what a model can do.

    Attributes:
        modalities: Supported input/output modalities.
        tool_calls: Model emits tool calls in responses.
        tools: Accepts tool definitions in requests.
        tool_choice: Supports tool choice strategies.
        streaming: Supports streamed responses.
        temperature, top_p, top_k, max_tokens, stop, seed, logprobs:
            Sampling and decoding parameters the API accepts.
    """

    modalities: ModelModalities = ModelModalities()

    tool_calls: bool = False
    tools: bool = False
    tool_choice: bool = False
    web_search: bool = False
    attachments: bool = False

    reasoning: bool = False
    reasoning_effort: bool = False

    temperature: bool = False
    top_p: bool = False
    top_k: bool = False
    max_tokens: bool = False
    stop: bool = False
    seed: bool = False
    logprobs: bool = False

    structured_outputs: bool = False
    streaming: bool = False

    model_config = {"frozen": True}


class ModelGeneration(BaseModel):
    """Generation controls the provider exposes for a model."""

    temperature: FloatRange | None = None
    top_p: FloatRange | None = None
    top_k: IntRange | None = None
    max_tokens: int | None = None
    frequency_penalty: FloatRange | None = None
    presence_penalty: FloatRange | None = None

    model_config = {"frozen": True}


class ModelTokenCost(BaseModel):
    per_token: float = 0.0
    per_1m: float = 0.0

    model_config = {"frozen": True}


class ModelTokenPricing(BaseModel):
    input: ModelTokenCost | None = None
    output: ModelTokenCost | None = None
    reasoning: ModelTokenCost | None = None
    cache_read: ModelTokenCost | None = None
    cache_write: ModelTokenCost | None = None

    model_config = {"frozen": True}


class ModelOperationPricing(BaseModel):
    request: float | None = None
    image_input: float | None = None
    audio_input: float | None = None
    image_gen: float | None = None
    web_search: float | None = None
    function_call: float | None = None

    model_config = {"frozen": True}


class ModelPricing(BaseModel):
    tokens: ModelTokenPricing | None = None
    operations: ModelOperationPricing | None = None
    currency: str = "USD"

    model_config = {"frozen": True}


class ModelLimits(BaseModel):
    context_window: int = 0
    output_tokens: int = 0

    model_config = {"frozen": True}


class Model(BaseModel):
    """A single model record as reported by one source."""

    id: str
    name: str = ""
    description: str = ""
    authors: list[str] = []

    metadata: ModelMetadata | None = None
    features: ModelFeatures | None = None
    generation: ModelGeneration | None = None
    pricing: ModelPricing | None = None
    limits: ModelLimits | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Provider sub-structures
# ---------------------------------------------------------------------------


class ProviderAPIKey(BaseModel):
    name: str = ""
    pattern: str = ""
    header: str = ""
    scheme: str = ""
    query_param: str = ""

    model_config = {"frozen": True}


class ProviderCatalog(BaseModel):
    docs_url: str | None = None
    api_url: str | None = None
    api_key_required: bool | None = None

    model_config = {"frozen": True}


class ProviderChatCompletions(BaseModel):
    url: str | None = None
    health_api_url: str | None = None

    model_config = {"frozen": True}


class ProviderPrivacyPolicy(BaseModel):
    privacy_policy_url: str | None = None
    terms_of_service_url: str | None = None
    retains_data: bool | None = None
    trains_on_data: bool | None = None

    model_config = {"frozen": True}


class ProviderRetentionPolicy(BaseModel):
    type: str = ""
    duration_days: int | None = None
    details: str | None = None

    model_config = {"frozen": True}


class ProviderGovernancePolicy(BaseModel):
    moderation_required: bool | None = None
    moderated: bool | None = None
    moderator: str | None = None

    model_config = {"frozen": True}


class Provider(BaseModel):
    """A provider record as reported by one source."""

    id: str
    name: str = ""
    headquarters: str | None = None
    icon_url: str | None = None
    status_page_url: str | None = None
    aliases: list[str] = []
    authors: list[str] = []

    api_key: ProviderAPIKey | None = None
    catalog: ProviderCatalog | None = None
    chat_completions: ProviderChatCompletions | None = None

    privacy_policy: ProviderPrivacyPolicy | None = None
    retention_policy: ProviderRetentionPolicy | None = None
    governance_policy: ProviderGovernancePolicy | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Author
# ---------------------------------------------------------------------------


class AuthorCatalog(BaseModel):
    """Which provider catalog hosts an author's models."""

    provider_id: str = ""
    patterns: list[str] = []
    description: str | None = None

    model_config = {"frozen": True}


class Author(BaseModel):
    """An author (model publisher) record as reported by one source."""

    id: str
    name: str = ""
    description: str | None = None
    website: str | None = None
    huggingface: str | None = None
    github: str | None = None
    twitter: str | None = None
    catalog: AuthorCatalog | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"frozen": True}


Resource = Model | Provider | Author
