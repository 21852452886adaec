"""
Configuration for hassInk

Settings come from an optional YAML file and from environment variables, the
latter taking precedence. Pages can be declared either as a list in the YAML
file or with numbered environment variables (HA_SCREENSHOT_URL,
HA_SCREENSHOT_URL_2, ...), where a suffixed variable that is not set falls
back to the unsuffixed one.
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from apscheduler.triggers.cron import CronTrigger

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Constants
CONFIG_FILE = "config.yaml"
DEFAULT_CRON_JOB = "* * * * *"
DEFAULT_PORT = 5000
DEFAULT_RENDERING_TIMEOUT = 10000  # ms
DEFAULT_BROWSER_LAUNCH_TIMEOUT = 30000  # ms
DEFAULT_LANGUAGE = "en"
DEFAULT_OUTPUT_PATH = "output/cover"
DEFAULT_SCREEN_HEIGHT = 800
DEFAULT_SCREEN_WIDTH = 600

IMAGE_FORMATS = ("png", "jpeg")
COLOR_MODES = ("GrayScale", "TrueColor")
COLOR_SCHEMES = ("light", "dark")

_INT_PATTERN = re.compile(r"^[+-]?[0-9]+$")


@dataclass(frozen=True)
class PageRenderingConfig:
    """Post-processing profile applied to a screenshot"""
    grayscale_depth: int = 8
    remove_gamma: bool = False
    black_level: str = "0%"
    white_level: str = "100%"
    dither: bool = False
    color_mode: str = "GrayScale"


@dataclass(frozen=True)
class PageConfig:
    """A single dashboard page to render"""
    screenshot_url: str
    include_cache_break_query: bool = False
    image_format: str = "png"
    output_path: str = DEFAULT_OUTPUT_PATH
    rendering_delay: int = 0  # ms
    rendering_screen_height: int = DEFAULT_SCREEN_HEIGHT
    rendering_screen_width: int = DEFAULT_SCREEN_WIDTH
    rotation: int = 0
    rendering_config: Optional[PageRenderingConfig] = PageRenderingConfig()
    prefers_color_scheme: str = "light"
    scaling: float = 1.0
    battery_webhook: Optional[str] = None

    @property
    def output_file(self) -> Path:
        return Path(f"{self.output_path}.{self.image_format}")

    @property
    def media_type(self) -> str:
        return f"image/{self.image_format}"

    def viewport_size(self) -> Dict[str, int]:
        """Viewport in the page's natural orientation; swapped for 90/270 rotations"""
        size = {'width': self.rendering_screen_width, 'height': self.rendering_screen_height}
        if self.rotation % 180 != 0:
            size = {'width': size['height'], 'height': size['width']}
        return size


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == 'true'


def _parse_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not _INT_PATTERN.match(text):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    return int(text)


def _parse_float(name: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None


class Config:
    """Configuration manager for hassInk"""

    def __init__(self, config_path: str = CONFIG_FILE, environ: Optional[Mapping[str, str]] = None):
        self.config_path = Path(config_path)
        self.environ = os.environ if environ is None else environ
        self.base_url = ""
        self.access_token = ""
        self.cron_job = DEFAULT_CRON_JOB
        self.eager_rerender = False
        self.port = DEFAULT_PORT
        self.rendering_timeout = DEFAULT_RENDERING_TIMEOUT
        self.browser_launch_timeout = DEFAULT_BROWSER_LAUNCH_TIMEOUT
        self.language = DEFAULT_LANGUAGE
        self.debug = False
        self.ignore_certificate_errors = False
        self.pages: Tuple[PageConfig, ...] = ()
        self.load_config()

    def load_config(self):
        """Load configuration from the YAML file and the environment, then validate it"""
        data = self._load_yaml()
        env = self.environ

        self.base_url = env.get('HA_BASE_URL', data.get('base_url', '')) or ''
        self.access_token = env.get('HA_ACCESS_TOKEN', data.get('access_token', '')) or ''
        self.cron_job = env.get('CRON_JOB', data.get('cron_job', DEFAULT_CRON_JOB))
        self.eager_rerender = _parse_bool(env.get('EAGER_RERENDER', data.get('eager_rerender', False)))
        self.port = _parse_int('PORT', env.get('PORT', data.get('port', DEFAULT_PORT)))
        self.rendering_timeout = _parse_int(
            'RENDERING_TIMEOUT', env.get('RENDERING_TIMEOUT', data.get('rendering_timeout', DEFAULT_RENDERING_TIMEOUT)))
        self.browser_launch_timeout = _parse_int(
            'BROWSER_LAUNCH_TIMEOUT',
            env.get('BROWSER_LAUNCH_TIMEOUT', data.get('browser_launch_timeout', DEFAULT_BROWSER_LAUNCH_TIMEOUT)))
        self.language = env.get('LANGUAGE', data.get('language', DEFAULT_LANGUAGE))
        self.debug = _parse_bool(env.get('DEBUG', data.get('debug', False)))
        self.ignore_certificate_errors = _parse_bool(
            env.get('UNSAFE_IGNORE_CERTIFICATE_ERRORS', data.get('ignore_certificate_errors', False)))

        if env.get('HA_SCREENSHOT_URL'):
            self.pages = tuple(self._pages_from_env())
        else:
            self.pages = tuple(self._page_from_mapping(i, page) for i, page in enumerate(data.get('pages') or []))

        self.validate()

        mode = 'eager' if self.eager_rerender else f"cron '{self.cron_job}'"
        logger.info(f"Loaded config: {len(self.pages)} pages, base_url={self.base_url}, mode={mode}, port={self.port}")

    def _load_yaml(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            return {}
        try:
            with open(self.config_path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to read {self.config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"{self.config_path} must contain a mapping at the top level")
        logger.info(f"Read configuration file {self.config_path}")
        return data

    def _page_env(self, key: str, suffix: str, fallback: Optional[str] = None) -> Optional[str]:
        value = self.environ.get(key + suffix)
        if value is not None:
            return value
        if fallback is not None:
            return fallback
        return self.environ.get(key)

    def _pages_from_env(self) -> List[PageConfig]:
        pages = []
        i = 0
        while True:
            i += 1
            suffix = '' if i == 1 else f"_{i}"
            screenshot_url = self.environ.get(f"HA_SCREENSHOT_URL{suffix}")
            if not screenshot_url:
                break

            def get(key, default=None, fallback=None):
                value = self._page_env(key, suffix, fallback)
                return default if value is None else value

            if _parse_bool(get('LEAVE_IMAGE_UNMODIFIED', False)):
                rendering_config = None
            else:
                rendering_config = PageRenderingConfig(
                    grayscale_depth=_parse_int(f"GRAYSCALE_DEPTH{suffix}", get('GRAYSCALE_DEPTH', 8)),
                    remove_gamma=_parse_bool(get('REMOVE_GAMMA', False)),
                    black_level=get('BLACK_LEVEL', '0%'),
                    white_level=get('WHITE_LEVEL', '100%'),
                    dither=_parse_bool(get('DITHER', False)),
                    color_mode=get('COLOR_MODE', 'GrayScale'),
                )

            pages.append(PageConfig(
                screenshot_url=screenshot_url,
                include_cache_break_query=_parse_bool(get('INCLUDE_CACHE_BREAK_QUERY', False)),
                image_format=get('IMAGE_FORMAT', 'png'),
                output_path=get('OUTPUT_PATH', fallback=f"{DEFAULT_OUTPUT_PATH}{suffix}"),
                rendering_delay=_parse_int(f"RENDERING_DELAY{suffix}", get('RENDERING_DELAY', 0)),
                rendering_screen_height=_parse_int(
                    f"RENDERING_SCREEN_HEIGHT{suffix}", get('RENDERING_SCREEN_HEIGHT', DEFAULT_SCREEN_HEIGHT)),
                rendering_screen_width=_parse_int(
                    f"RENDERING_SCREEN_WIDTH{suffix}", get('RENDERING_SCREEN_WIDTH', DEFAULT_SCREEN_WIDTH)),
                rotation=_parse_int(f"ROTATION{suffix}", get('ROTATION', 0)),
                rendering_config=rendering_config,
                prefers_color_scheme=get('PREFERS_COLOR_SCHEME', 'light'),
                scaling=_parse_float(f"SCALING{suffix}", get('SCALING', 1)),
                battery_webhook=get('HA_BATTERY_WEBHOOK') or None,
            ))
        return pages

    def _page_from_mapping(self, index: int, page: Any) -> PageConfig:
        """Build a page from a YAML 'pages' entry"""
        if not isinstance(page, dict) or not page.get('screenshot_url'):
            raise ConfigurationError(f"Page {index + 1} must be a mapping with a 'screenshot_url'")

        suffix = '' if index == 0 else f"_{index + 1}"
        if _parse_bool(page.get('leave_image_unmodified', False)):
            rendering_config = None
        else:
            profile = page.get('rendering_config') or {}
            rendering_config = PageRenderingConfig(
                grayscale_depth=_parse_int('grayscale_depth', profile.get('grayscale_depth', 8)),
                remove_gamma=_parse_bool(profile.get('remove_gamma', False)),
                black_level=str(profile.get('black_level', '0%')),
                white_level=str(profile.get('white_level', '100%')),
                dither=_parse_bool(profile.get('dither', False)),
                color_mode=profile.get('color_mode', 'GrayScale'),
            )

        return PageConfig(
            screenshot_url=page['screenshot_url'],
            include_cache_break_query=_parse_bool(page.get('include_cache_break_query', False)),
            image_format=page.get('image_format', 'png'),
            output_path=page.get('output_path', f"{DEFAULT_OUTPUT_PATH}{suffix}"),
            rendering_delay=_parse_int('rendering_delay', page.get('rendering_delay', 0)),
            rendering_screen_height=_parse_int(
                'rendering_screen_height', page.get('rendering_screen_height', DEFAULT_SCREEN_HEIGHT)),
            rendering_screen_width=_parse_int(
                'rendering_screen_width', page.get('rendering_screen_width', DEFAULT_SCREEN_WIDTH)),
            rotation=_parse_int('rotation', page.get('rotation', 0)),
            rendering_config=rendering_config,
            prefers_color_scheme=page.get('prefers_color_scheme', 'light'),
            scaling=_parse_float('scaling', page.get('scaling', 1)),
            battery_webhook=page.get('battery_webhook') or None,
        )

    def validate(self):
        """Reject configurations the service cannot run with"""
        if not self.base_url:
            raise ConfigurationError("Missing required setting: HA_BASE_URL")
        if not self.access_token:
            raise ConfigurationError("Missing required setting: HA_ACCESS_TOKEN")
        if not self.pages:
            raise ConfigurationError("No pages configured, please check your configuration")

        for i, page in enumerate(self.pages):
            number = i + 1
            if page.rotation % 90 != 0:
                raise ConfigurationError(f"Invalid rotation value for entry {number}: {page.rotation}")
            if page.image_format not in IMAGE_FORMATS:
                raise ConfigurationError(f"Invalid image format for entry {number}: {page.image_format}")
            if page.prefers_color_scheme not in COLOR_SCHEMES:
                raise ConfigurationError(
                    f"Invalid color scheme for entry {number}: {page.prefers_color_scheme}")
            if page.rendering_screen_width <= 0 or page.rendering_screen_height <= 0:
                raise ConfigurationError(f"Invalid screen size for entry {number}")
            if page.scaling <= 0:
                raise ConfigurationError(f"Invalid scaling for entry {number}: {page.scaling}")
            if page.rendering_delay < 0:
                raise ConfigurationError(f"Invalid rendering delay for entry {number}: {page.rendering_delay}")

            profile = page.rendering_config
            if profile is not None:
                if profile.color_mode not in COLOR_MODES:
                    raise ConfigurationError(f"Invalid color mode for entry {number}: {profile.color_mode}")
                if not 1 <= profile.grayscale_depth <= 8:
                    raise ConfigurationError(
                        f"Invalid grayscale depth for entry {number}: {profile.grayscale_depth}")

        if not self.eager_rerender:
            try:
                CronTrigger.from_crontab(self.cron_job)
            except ValueError as e:
                raise ConfigurationError(f"Invalid CRON_JOB '{self.cron_job}': {e}") from e
