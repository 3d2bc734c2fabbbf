"""Translation, enrichment and image planning for catalog records."""

from fftcg_sync.processing.field_enricher import build_field_updates
from fftcg_sync.processing.image_planner import ImageDecision, ImagePlanner, ImageProcessor, ImageTask
from fftcg_sync.processing.product_validation import extract_card_numbers, is_non_card_product
from fftcg_sync.processing.translator import translate_description, translate_elements

__all__ = [
    "ImageDecision",
    "ImagePlanner",
    "ImageProcessor",
    "ImageTask",
    "build_field_updates",
    "extract_card_numbers",
    "is_non_card_product",
    "translate_description",
    "translate_elements",
]
