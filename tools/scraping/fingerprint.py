"""Browser identities presented to the origin.

Every identity carries the platform it claims so the client-hint headers sent
alongside the User-Agent agree with it; a Windows UA with a macOS
``sec-ch-ua-platform`` is itself a bot signal.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import Dict, Optional

ACCEPT_LANGUAGE = "he-IL,he;q=0.9,en-US;q=0.8,en;q=0.7"
ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8"


@dataclass(frozen=True)
class BrowserIdentity:
    user_agent: str
    platform: str

    @property
    def chrome_major(self) -> str:
        match = re.search(r"Chrome/(\d+)", self.user_agent)
        return match.group(1) if match else "131"


USER_AGENTS = [
    # Windows Chrome
    BrowserIdentity("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36", "Windows"),
    BrowserIdentity("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36", "Windows"),
    BrowserIdentity("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36", "Windows"),
    # macOS Chrome
    BrowserIdentity("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36", "macOS"),
    BrowserIdentity("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36", "macOS"),
    BrowserIdentity("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36", "macOS"),
    # Linux Chrome
    BrowserIdentity("Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36", "Linux"),
    BrowserIdentity("Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36", "Linux"),
    BrowserIdentity("Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36", "Linux"),
]

# Common desktop resolutions
VIEWPORTS = [
    {"width": 1920, "height": 1080},
    {"width": 1536, "height": 864},
    {"width": 1440, "height": 900},
    {"width": 1366, "height": 768},
    {"width": 1680, "height": 1050},
    {"width": 2560, "height": 1440},
]


def random_viewport(rng: Optional[random.Random] = None) -> Dict[str, int]:
    rng = rng or random
    return dict(rng.choice(VIEWPORTS))


def random_scale_factor(rng: Optional[random.Random] = None) -> int:
    rng = rng or random
    return 2 if rng.random() > 0.5 else 1


def random_identity(rng: Optional[random.Random] = None) -> BrowserIdentity:
    rng = rng or random
    return rng.choice(USER_AGENTS)


def client_hint_headers(identity: BrowserIdentity) -> Dict[str, str]:
    """Extra headers matching *identity*'s browser version and platform."""
    major = identity.chrome_major
    return {
        "Accept-Language": ACCEPT_LANGUAGE,
        "Accept": ACCEPT,
        "sec-ch-ua": f'"Chromium";v="{major}", "Google Chrome";v="{major}", "Not-A.Brand";v="99"',
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": f'"{identity.platform}"',
    }


NAVIGATOR_PLATFORMS = {"Windows": "Win32", "macOS": "MacIntel", "Linux": "Linux x86_64"}
NAVIGATOR_LANGUAGES = ["he-IL", "he", "en-US", "en"]


def stealth_script(identity: BrowserIdentity) -> str:
    """Init script hiding the automation markers headless Chromium exposes.

    Runs before any page script in every frame of the context. The navigator
    platform is taken from *identity* so it agrees with the User-Agent and
    client hints.
    """
    platform = NAVIGATOR_PLATFORMS.get(identity.platform, "Win32")
    languages = ", ".join(f"'{lang}'" for lang in NAVIGATOR_LANGUAGES)
    return f"""
    Object.defineProperty(navigator, 'webdriver', {{ get: () => undefined }});
    Object.defineProperty(navigator, 'platform', {{ get: () => '{platform}' }});
    Object.defineProperty(navigator, 'languages', {{ get: () => [{languages}] }});
    Object.defineProperty(navigator, 'plugins', {{
        get: () => [
            {{ name: 'PDF Viewer', filename: 'internal-pdf-viewer', description: 'Portable Document Format' }},
            {{ name: 'Chrome PDF Viewer', filename: 'internal-pdf-viewer', description: 'Portable Document Format' }},
            {{ name: 'Chromium PDF Viewer', filename: 'internal-pdf-viewer', description: 'Portable Document Format' }},
        ],
    }});
    window.chrome = window.chrome || {{ runtime: {{}} }};
    const originalQuery = window.navigator.permissions.query;
    window.navigator.permissions.query = (parameters) => (
        parameters.name === 'notifications'
            ? Promise.resolve({{ state: Notification.permission }})
            : originalQuery(parameters)
    );
    """
