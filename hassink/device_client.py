#!/usr/bin/env python3
"""
Device Client for hassInk Server

A command-line client that behaves like an e-ink device: it downloads a page
image, optionally reporting battery telemetry the way a Kindle screensaver
does, checks the response headers and decodes the image. It can also trigger
a reload of every page.
"""

import argparse
import io
import sys
from typing import Optional

import requests
from PIL import Image, UnidentifiedImageError


class Colors:
    """ANSI color codes for terminal output"""
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    RESET = '\033[0m'
    BOLD = '\033[1m'


# status -> (color, symbol)
STATUS_STYLES = {
    "OK": (Colors.GREEN, "✓"),
    "ERROR": (Colors.RED, "✗"),
    "INFO": (Colors.BLUE, "ℹ"),
}
RULE = '=' * 60


class HassInkDeviceClient:
    """Client for the hassInk HTTP interface"""

    def __init__(self, server_url: str, page: int = 1, battery_level: Optional[int] = None,
                 is_charging: Optional[bool] = None, timeout: float = 30):
        self.server_url = server_url.rstrip('/')
        self.page = page
        self.battery_level = battery_level
        self.is_charging = is_charging
        self.timeout = timeout
        self.session = requests.Session()

    @staticmethod
    def _print_status(message: str, status: str = "INFO"):
        color, symbol = STATUS_STYLES.get(status, STATUS_STYLES["INFO"])
        print(f"{color}{Colors.BOLD}[{symbol} {status}]{Colors.RESET} {message}")

    @staticmethod
    def _print_section(title: str):
        print(f"\n{Colors.CYAN}{Colors.BOLD}{RULE}\n{title}\n{RULE}{Colors.RESET}\n")

    def telemetry_params(self) -> dict:
        params = {}
        if self.battery_level is not None:
            params['batteryLevel'] = str(self.battery_level)
        if self.is_charging is not None:
            params['isCharging'] = 'Yes' if self.is_charging else 'No'
        return params

    def test_get_image(self) -> Optional[Image.Image]:
        """Test GET /<page> and decode the returned image"""
        self._print_section(f"TEST: Get Image for Page {self.page}")

        try:
            url = f"{self.server_url}/{self.page}"
            params = self.telemetry_params()

            self._print_status(f"Requesting image from {url}", "INFO")
            if params:
                self._print_status(f"Telemetry: {params}", "INFO")

            response = self.session.get(url, params=params, timeout=self.timeout)

            if response.status_code != 200:
                self._print_status(f"Failed with status {response.status_code}: {response.text}", "ERROR")
                return None

            content_type = response.headers.get('Content-Type', '')
            content_length = response.headers.get('Content-Length')
            last_modified = response.headers.get('Last-Modified')

            if not content_type.startswith('image/'):
                self._print_status(f"Unexpected content type: {content_type}", "ERROR")
                return None
            if content_length is not None and int(content_length) != len(response.content):
                self._print_status(
                    f"Content-Length {content_length} does not match body size {len(response.content)}", "ERROR")
                return None

            img = Image.open(io.BytesIO(response.content))
            img.load()

            self._print_status(f"Content-Type: {content_type}, {len(response.content)} bytes", "OK")
            self._print_status(f"Last-Modified: {last_modified or 'N/A'}", "INFO")
            self._print_status(f"Image size: {img.size}, mode: {img.mode}", "OK")
            return img

        except (requests.RequestException, UnidentifiedImageError, OSError, ValueError) as e:
            self._print_status(f"Exception: {e}", "ERROR")
            return None

    def test_reload(self) -> bool:
        """Test POST /reload"""
        self._print_section("TEST: Reload All Pages")

        try:
            url = f"{self.server_url}/reload"
            self._print_status(f"Posting reload to {url}", "INFO")

            response = self.session.post(url, timeout=self.timeout)

            if response.status_code == 200:
                self._print_status(f"Reload finished: {response.text}", "OK")
                return True
            else:
                self._print_status(f"Failed with status {response.status_code}: {response.text}", "ERROR")
                return False

        except requests.RequestException as e:
            self._print_status(f"Exception: {e}", "ERROR")
            return False

    def run(self, reload: bool = False) -> bool:
        """Run the device workflow, optionally reloading first"""
        print(f"\n{Colors.BOLD}{RULE}")
        print("hassInk Device Client")
        print(f"{RULE}{Colors.RESET}")
        print(f"Server: {self.server_url}")
        print(f"Page: {self.page}")
        print(f"{RULE}\n")

        results = {}
        if reload:
            results['reload'] = self.test_reload()
        results['get_image'] = self.test_get_image() is not None

        self._print_section("TEST SUMMARY")

        passed = sum(1 for v in results.values() if v)
        total = len(results)

        for test_name, passed_test in results.items():
            status = "OK" if passed_test else "ERROR"
            self._print_status(f"{test_name}: {'PASSED' if passed_test else 'FAILED'}", status)

        print()
        if passed == total:
            self._print_status(f"All {total} tests PASSED", "OK")
        else:
            self._print_status(f"{passed}/{total} tests passed, {total - passed} failed", "ERROR")

        return passed == total


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Device client for the hassInk server',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Fetch page 1 from a local server
  hassink-client

  # Fetch page 2 and report a battery level of 55% while charging
  hassink-client --page 2 --battery-level 55 --charging

  # Re-render every page before fetching
  hassink-client --reload --server http://192.168.1.100:5000
        """
    )

    parser.add_argument(
        '--server',
        default='http://localhost:5000',
        help='Server URL (default: http://localhost:5000)'
    )

    parser.add_argument(
        '--page',
        type=int,
        default=1,
        help='Page number to fetch (default: 1)'
    )

    parser.add_argument(
        '--battery-level',
        type=int,
        default=None,
        help='Battery level to report (0-100)'
    )

    charging = parser.add_mutually_exclusive_group()
    charging.add_argument(
        '--charging',
        dest='is_charging',
        action='store_true',
        default=None,
        help='Report the battery as charging'
    )
    charging.add_argument(
        '--not-charging',
        dest='is_charging',
        action='store_false',
        help='Report the battery as not charging'
    )

    parser.add_argument(
        '--reload',
        action='store_true',
        help='POST /reload before fetching the image'
    )

    args = parser.parse_args(argv)

    try:
        client = HassInkDeviceClient(
            server_url=args.server,
            page=args.page,
            battery_level=args.battery_level,
            is_charging=args.is_charging,
        )
        success = client.run(reload=args.reload)
        sys.exit(0 if success else 1)

    except KeyboardInterrupt:
        print(f"\n{Colors.YELLOW}Interrupted by user{Colors.RESET}")
        sys.exit(130)


if __name__ == '__main__':
    main()
