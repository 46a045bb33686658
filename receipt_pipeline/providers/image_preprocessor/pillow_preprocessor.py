"""
    PIL Image Preprocessor module

    Optional cleanup of receipt photos before text extraction. Every mode
    ends with a grayscale, sharpened JPEG; a photo Pillow cannot decode is
    passed through untouched so extraction can still try the original.
"""

import io
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from PIL import Image, ImageEnhance, ImageFilter, ImageOps


logger = logging.getLogger(__name__)

Step = Callable[[Image.Image], Image.Image]


class ProcessingMode(Enum):
    """Image processing quality modes"""
    FAST = "fast"
    BALANCED = "balanced"
    QUALITY = "quality"


@dataclass
class EnhancementConfig:
    """Tuning knobs shared by every mode"""
    mode: ProcessingMode = ProcessingMode.FAST
    target_width: int = 2400
    width_tolerance: float = 0.3
    min_scale: float = 0.5
    max_scale: float = 3.0
    contrast_factor: float = 1.5
    brightness_factor: float = 1.1
    sharpness_factor: float = 2.0
    jpeg_quality: int = 95
    enable_auto_orient: bool = True


class ImagePreprocessorPillow:
    """Receipt photo cleanup using only PIL"""

    def __init__(self, config: Optional[EnhancementConfig] = None):
        self.config = config or EnhancementConfig()
        self._mode_steps: Dict[ProcessingMode, List[Step]] = {
            ProcessingMode.FAST: [self._boost_contrast, self._brighten],
            ProcessingMode.BALANCED: [
                self._denoise, self._boost_contrast, self._brighten,
                self._enhance_edges, self._autocontrast,
            ],
            ProcessingMode.QUALITY: [
                self._denoise, self._unsharp, self._boost_contrast_strong, self._brighten,
                self._enhance_edges_more, self._autocontrast, self._equalize,
            ],
        }
        logger.info(f"ImagePreprocessorPillow initialized with mode: {self.config.mode.value}")

    def enhance_image(self, image_data: bytes) -> bytes:
        """
        Prepare receipt image bytes for OCR

        Returns:
            Grayscale JPEG bytes, or image_data unchanged when it cannot be decoded
        """
        if not image_data:
            logger.warning("Image preprocessing skipped: empty image data")
            return image_data

        try:
            img = Image.open(io.BytesIO(image_data))
            img.load()
            original_size = img.size

            if self.config.enable_auto_orient:
                img = ImageOps.exif_transpose(img)

            img = self._fit_width(img)
            if img.mode not in ('RGB', 'L'):
                img = img.convert('RGB')

            for step in self._mode_steps[self.config.mode]:
                img = step(img)

            img = ImageEnhance.Sharpness(img.convert('L')).enhance(self.config.sharpness_factor)

            output = io.BytesIO()
            img.save(output, format='JPEG', quality=self.config.jpeg_quality, optimize=True)

        except (OSError, ValueError) as e:
            logger.warning(f"Image preprocessing failed, using original: {e}")
            return image_data

        enhanced = output.getvalue()
        logger.info(f"Preprocessed {original_size[0]}x{original_size[1]} image "
                    f"({self.config.mode.value}): {len(image_data)} -> {len(enhanced)} bytes")
        return enhanced

    def _fit_width(self, img: Image.Image) -> Image.Image:
        """Scale toward target_width unless already within tolerance"""
        width, height = img.size
        target = self.config.target_width
        tolerance = self.config.width_tolerance

        if target * (1 - tolerance) <= width <= target * (1 + tolerance):
            return img

        scale = max(self.config.min_scale, min(target / width, self.config.max_scale))
        return img.resize((int(width * scale), int(height * scale)), Image.Resampling.LANCZOS)

    # ---------------- Steps ----------------

    def _denoise(self, img: Image.Image) -> Image.Image:
        return img.filter(ImageFilter.MedianFilter(size=3))

    def _unsharp(self, img: Image.Image) -> Image.Image:
        return img.filter(ImageFilter.UnsharpMask(radius=2, percent=150))

    def _boost_contrast(self, img: Image.Image) -> Image.Image:
        return ImageEnhance.Contrast(img).enhance(self.config.contrast_factor)

    def _boost_contrast_strong(self, img: Image.Image) -> Image.Image:
        return ImageEnhance.Contrast(img).enhance(self.config.contrast_factor * 1.2)

    def _brighten(self, img: Image.Image) -> Image.Image:
        return ImageEnhance.Brightness(img).enhance(self.config.brightness_factor)

    def _enhance_edges(self, img: Image.Image) -> Image.Image:
        return img.filter(ImageFilter.EDGE_ENHANCE)

    def _enhance_edges_more(self, img: Image.Image) -> Image.Image:
        return img.filter(ImageFilter.EDGE_ENHANCE_MORE)

    def _autocontrast(self, img: Image.Image) -> Image.Image:
        # Thermal paper fades at the edges; clip the extreme 2% of the histogram
        return ImageOps.autocontrast(img, cutoff=2)

    def _equalize(self, img: Image.Image) -> Image.Image:
        return ImageOps.equalize(img.convert('L'))
