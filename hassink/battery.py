"""Battery telemetry reported by devices, and its Home Assistant webhook."""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional, Set

import aiohttp

from .errors import WebhookError

logger = logging.getLogger(__name__)

CHARGING_TOKENS = ('Yes', '1')
NOT_CHARGING_TOKENS = ('No', '0')
WEBHOOK_TIMEOUT = 10  # seconds

_LEVEL_PATTERN = re.compile(r"^[0-9]{1,3}$")


@dataclass
class BatteryState:
    """Last known battery state of the device showing a page"""
    battery_level: Optional[int] = None
    is_charging: bool = False

    def to_json(self) -> Dict:
        return {'batteryLevel': self.battery_level, 'isCharging': self.is_charging}


def parse_battery_level(value: Optional[str]) -> Optional[int]:
    """Return the level if it is a plain integer in [0, 100], else None"""
    if value is None or not _LEVEL_PATTERN.match(value):
        return None
    level = int(value)
    return level if 0 <= level <= 100 else None


class BatteryTracker:
    """Keeps battery state per page index for the lifetime of the process"""

    def __init__(self):
        self.states: Dict[int, BatteryState] = {}

    def get(self, page_index: int) -> Optional[BatteryState]:
        return self.states.get(page_index)

    def record(self, page_index: int, battery_level: Optional[str], is_charging: Optional[str]) -> BatteryState:
        """Update the page's state from raw query parameter values.

        Unparseable or out of range levels and unknown charging tokens leave
        the stored state as it is. Only actual changes are logged.
        """
        state = self.states.setdefault(page_index, BatteryState())
        page_number = page_index + 1

        level = parse_battery_level(battery_level)
        if level is not None and level != state.battery_level:
            state.battery_level = level
            logger.info(f"New battery level: {level} for page {page_number}")

        if is_charging in CHARGING_TOKENS and not state.is_charging:
            state.is_charging = True
            logger.info(f"Battery started charging for page {page_number}")
        elif is_charging in NOT_CHARGING_TOKENS and state.is_charging:
            state.is_charging = False
            logger.info(f"Battery stopped charging for page {page_number}")

        return state


class WebhookNotifier:
    """Fire-and-forget reporting of battery state to Home Assistant webhooks"""

    def __init__(self, base_url: str, ignore_certificate_errors: bool = False):
        self.base_url = base_url.rstrip('/')
        self.ignore_certificate_errors = ignore_certificate_errors
        self._tasks: Set[asyncio.Task] = set()

    def webhook_url(self, webhook_id: str) -> str:
        return f"{self.base_url}/api/webhook/{webhook_id}"

    def notify(self, page_index: int, state: Optional[BatteryState],
               webhook_id: Optional[str]) -> Optional[asyncio.Task]:
        """Start posting the state in the background; returns the task, or None if nothing is sent"""
        if state is None or state.battery_level is None or not webhook_id:
            return None

        task = asyncio.create_task(self._post(page_index, self.webhook_url(webhook_id), state.to_json()))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _post(self, page_index: int, url: str, payload: Dict):
        try:
            # True verifies certificates (aiohttp>=3.9), False skips the checks
            ssl = not self.ignore_certificate_errors
            timeout = aiohttp.ClientTimeout(total=WEBHOOK_TIMEOUT)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload, ssl=ssl) as response:
                    if response.status != 200:
                        raise WebhookError(f"status {response.status}: {response.reason}")
            logger.debug(f"Reported battery state of page {page_index + 1} to {url}: {payload}")
        except WebhookError as e:
            logger.error(f"Update device {page_index} at {url} {e}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Update {page_index} at {url} error: {e}")
