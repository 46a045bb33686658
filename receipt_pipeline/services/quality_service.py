"""
    Image Quality Assessment module
"""

import logging

from receipt_pipeline.utils.helpers import ImageRef, get_image_info


logger = logging.getLogger(__name__)

# (upper byte bound, score); larger files score higher
SIZE_SCORES = (
    (50_000, 30),      # too small/compressed
    (200_000, 60),     # acceptable
    (1_000_000, 80),   # good
)
LARGE_FILE_SCORE = 90


def score_for_size(size: int) -> int:
    for upper_bound, score in SIZE_SCORES:
        if size < upper_bound:
            return score
    return LARGE_FILE_SCORE


class QualityAssessor:
    """Coarse 0..100 extraction-suitability score from file size.

    Informational only: attached to the record, never used to pick extractors.
    """

    def assess(self, image: ImageRef) -> int:
        info = get_image_info(image)
        if info is None:
            return 0

        score = score_for_size(info.size)
        logger.info(f"Image quality score {score} for {info.size} bytes")
        return score

    def assess_data(self, image_data: bytes) -> int:
        """Score bytes already in memory, e.g. a preprocessed image"""
        score = score_for_size(len(image_data))
        logger.info(f"Image quality score {score} for {len(image_data)} processed bytes")
        return score
