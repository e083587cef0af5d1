"""Engine thresholds, overridable through ``LOANDOC_*`` environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "LOANDOC_"


class EngineConfig(BaseSettings):
    """Tuned thresholds for label matching, spatial search and comparison.

    Defaults are calibrated against digital PAQ documents (coordinates in PDF
    points). Keyword arguments win over ``LOANDOC_<FIELD_NAME>`` environment
    variables, which win over the defaults. Malformed values raise
    ``pydantic.ValidationError``.
    """

    # Label matching
    exact_match_score: float = Field(default=1.0, ge=0, le=1)
    prefix_match_score: float = Field(default=0.95, ge=0, le=1)
    contains_match_score: float = Field(default=0.8, ge=0, le=1)
    partial_match_weight: float = Field(default=0.7, ge=0, le=1)
    ocr_similar_word_credit: float = Field(default=0.8, ge=0, le=1)
    label_accept_threshold: float = Field(default=0.6, ge=0, le=1)

    # Spatial search
    default_line_spacing: float = Field(default=20.0, gt=0)
    min_line_gap: float = Field(default=5.0, ge=0)
    max_line_gap: float = Field(default=100.0, gt=0)
    search_padding_lines: float = Field(default=8.0, ge=0)
    window_left_margin: float = Field(default=50.0, ge=0)
    window_right_margin: float = Field(default=400.0, ge=0)
    same_line_factor: float = Field(default=0.6, ge=0)
    right_of_tolerance: float = Field(default=10.0, ge=0)
    below_tolerance: float = Field(default=5.0, ge=0)

    # Box merger
    merge_vertical_factor: float = Field(default=0.5, ge=0)
    merge_vertical_min: float = Field(default=5.0, ge=0)
    merge_gap_factor: float = Field(default=2.0, ge=0)
    merge_gap_min: float = Field(default=20.0, ge=0)

    # Value extraction
    min_currency_digits: int = Field(default=4, ge=1)

    # Comparison tolerances
    currency_tolerance: float = Field(default=0.05, ge=0)
    percentage_tolerance: float = Field(default=0.01, ge=0)
    reference_tolerance: float = Field(default=0.0, ge=0)
    account_tolerance: float = Field(default=1.0, ge=0)

    # Staff multi-table fallback
    staff_accept_confidence: float = Field(default=0.85, ge=0, le=1)
    max_reasonable_percentage: float = Field(default=200.0, ge=0)
    min_reference_length: int = Field(default=6, ge=0)
    max_reference_length: int = Field(default=15, ge=0)

    # OCR ingestion
    min_ocr_confidence: float = Field(default=0.3, ge=0, le=1)
    min_ocr_box_size: float = Field(default=5.0, ge=0)
    ocr_resolution: int = Field(default=216, gt=0)

    # Digital content predicate
    min_digital_items: int = Field(default=10, ge=0)
    min_digital_text_length: int = Field(default=3, ge=0)

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )
