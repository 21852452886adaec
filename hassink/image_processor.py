"""Conversion of raw screenshots into e-ink device compatible images."""

import io
import logging
import re

import numpy as np
from PIL import Image, UnidentifiedImageError

from .config import PageConfig
from .errors import PostProcessError

logger = logging.getLogger(__name__)

REMOVE_GAMMA_VALUE = 1.0 / 2.2
OUTPUT_QUALITY = 100

_LEVEL_PATTERN = re.compile(r"^\s*([0-9]+(?:\.[0-9]+)?)\s*(%?)\s*$")


class ImageProcessor:
    """Handles gamma, rotation, levels and bit depth for device images"""

    @staticmethod
    def parse_level(level: str) -> float:
        """Parse a level like '10%' or '25' into an intensity on the 0-255 scale"""
        match = _LEVEL_PATTERN.match(str(level))
        if not match:
            raise PostProcessError(f"Invalid level value: {level!r}")
        value = float(match.group(1))
        if match.group(2):
            value = value * 255.0 / 100.0
        return min(value, 255.0)

    @staticmethod
    def apply_gamma(img: Image.Image, gamma: float) -> Image.Image:
        """Apply a gamma correction (out = in ** (1 / gamma))"""
        if gamma == 1.0:
            return img
        lut = [round(255.0 * (i / 255.0) ** (1.0 / gamma)) for i in range(256)]
        return img.point(lut * len(img.getbands()))

    @staticmethod
    def apply_levels(img: Image.Image, black: float, white: float) -> Image.Image:
        """Stretch [black, white] to the full range, clipping outside it"""
        if black <= 0.0 and white >= 255.0:
            return img
        if white <= black:
            raise PostProcessError(f"White level ({white}) must be above black level ({black})")
        img_array = np.asarray(img, dtype=np.float32)
        img_array = (img_array - black) * (255.0 / (white - black))
        img_array = np.clip(np.rint(img_array), 0, 255).astype(np.uint8)
        return Image.fromarray(img_array)

    @staticmethod
    def reduce_bit_depth(img: Image.Image, depth: int, dither: bool) -> Image.Image:
        """Reduce each channel to 2**depth levels spread over the full range"""
        if depth >= 8:
            return img

        dither_method = Image.Dither.FLOYDSTEINBERG if dither else Image.Dither.NONE

        if img.mode == 'L':
            if depth == 1:
                return img.convert('1', dither=dither_method)

            levels = 2 ** depth
            palette = []
            for i in range(levels):
                value = round(i * 255 / (levels - 1))
                palette.extend((value, value, value))

            # Unpadded palette so every index fits in the packed bit depth
            palette_img = Image.new('P', (1, 1))
            palette_img.putpalette(palette)
            # Stays a palette image so the encoder can pack it at the reduced depth
            return img.convert('RGB').quantize(palette=palette_img, dither=dither_method)

        # Truecolor: posterize each channel to the requested number of levels
        levels = 2 ** depth
        img_array = np.asarray(img, dtype=np.float32)
        quantized = np.rint(img_array * (levels - 1) / 255.0) * (255.0 / (levels - 1))
        return Image.fromarray(np.clip(quantized, 0, 255).astype(np.uint8))

    @staticmethod
    def encode(img: Image.Image, image_format: str, depth: int = 8) -> bytes:
        """Encode the image; gray palette images are packed into `depth` bits per pixel for PNG"""
        output = io.BytesIO()
        if image_format == 'jpeg':
            if img.mode not in ('L', 'RGB'):
                img = img.convert('L' if img.mode in ('1', 'P') else 'RGB')
            img.save(output, format='JPEG', quality=OUTPUT_QUALITY)
        elif img.mode == 'P':
            # PNG palettes come in 1, 2, 4 or 8 bits; Pillow rounds up to the next one
            img.save(output, format='PNG', bits=depth)
        else:
            img.save(output, format='PNG')
        return output.getvalue()

    @classmethod
    def convert_for_device(cls, image_data: bytes, page_config: PageConfig) -> bytes:
        """Convert a raw screenshot according to the page's rendering profile.

        Steps run in a fixed order: gamma, rotation (white fill), color
        mode, levels, bit depth. The dither flag applies to the quantizing
        steps. Pages without a profile are returned untouched.

        Raises:
            PostProcessError: if the image cannot be decoded or converted
        """
        profile = page_config.rendering_config
        if profile is None:
            return image_data

        try:
            img = Image.open(io.BytesIO(image_data))
            img.load()
        except (UnidentifiedImageError, OSError) as e:
            raise PostProcessError(f"Cannot decode screenshot: {e}") from e

        try:
            img = img.convert('RGB')

            gamma = REMOVE_GAMMA_VALUE if profile.remove_gamma else 1.0
            img = cls.apply_gamma(img, gamma)

            if page_config.rotation % 360 != 0:
                # PIL rotates counter-clockwise
                img = img.rotate(-page_config.rotation, expand=True, fillcolor='white')

            img = img.convert('L' if profile.color_mode == 'GrayScale' else 'RGB')

            black = cls.parse_level(profile.black_level)
            white = cls.parse_level(profile.white_level)
            img = cls.apply_levels(img, black, white)

            img = cls.reduce_bit_depth(img, profile.grayscale_depth, profile.dither)
            logger.debug(f"Converted screenshot to {img.width}x{img.height} {img.mode} ({page_config.image_format})")

            return cls.encode(img, page_config.image_format, profile.grayscale_depth)
        except (ValueError, OSError) as e:
            raise PostProcessError(f"Failed to convert screenshot: {e}") from e
