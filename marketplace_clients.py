"""
Marketplace Clients
HTTP clients for the Wago, TukUI and WoWInterface addon catalogues
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests

from addon_registry import AddonType

logger = logging.getLogger(__name__)

# Error kinds reported in DetailsResult.error
NOT_FOUND = 'not_found'
NETWORK_ERROR = 'network_error'
INVALID_RESPONSE = 'invalid_response'
NO_API_KEY = 'no_api_key'

# Release channels, most stable first
CHANNELS = ('stable', 'beta', 'alpha')


def host_matches(hostname, host):
    """True when hostname is host itself or one of its subdomains."""
    hostname = (hostname or '').lower()
    return hostname == host or hostname.endswith('.' + host)


@dataclass
class MarketplaceAddon:
    addon_id: str
    display_name: str
    author: Optional[str] = None
    page_url: Optional[str] = None
    # channel -> {'version': str, 'download_url': str}
    releases: Dict[str, Dict[str, Optional[str]]] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)

    def version_for(self, channel):
        release = self.releases.get(channel)
        return release.get('version') if release else None


@dataclass
class DetailsResult:
    success: bool
    addon: Optional[MarketplaceAddon] = None
    error: Optional[str] = None


class ResponseCache:
    """Single cached value with the time it was stored."""

    def __init__(self, max_age=300, clock=time.time):
        """Initialize response cache.

        Args:
            max_age: float - Seconds a value stays fresh
            clock: callable - Returns the current time in seconds
        """
        self.max_age = max_age
        self.clock = clock
        self.value = None
        self.timestamp = 0.0

    def get(self):
        """Return the cached value, or None if empty or stale."""
        if self.value is None or self.clock() - self.timestamp >= self.max_age:
            return None
        return self.value

    def set(self, value):
        self.value = value
        self.timestamp = self.clock()

    def clear(self):
        self.value = None
        self.timestamp = 0.0


class MarketplaceClient:
    """Common behaviour of a provider client.

    Subclasses implement ``get_details`` and ``parse_addon_id``.
    """

    provider_type = AddonType.MANUAL
    provider_name = 'provider'
    download_host = None

    def __init__(self, session=None, timeout=10):
        self.session = session or requests.Session()
        self.timeout = timeout

    def _get_json(self, url, headers=None, params=None):
        """GET a JSON document.

        Returns:
            tuple - (status code or None on transport failure, decoded body or None)
        """
        try:
            response = self.session.get(url, headers=headers, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("%s request to %s failed: %s", self.provider_name, url, e)
            return None, None

        if response.status_code != 200:
            return response.status_code, None
        try:
            return response.status_code, response.json()
        except ValueError:
            logger.error("%s returned invalid JSON from %s", self.provider_name, url)
            return response.status_code, None

    def has_credentials(self):
        return True

    def download_headers(self):
        return {}

    def parse_addon_id(self, url_or_id):
        raise NotImplementedError

    def get_details(self, addon_id):
        raise NotImplementedError

    def best_available_channel(self, addon):
        """Get the most stable channel with a release (stable > beta > alpha)."""
        for channel in CHANNELS:
            if addon.releases.get(channel):
                return channel
        return None

    def resolve_download_url(self, addon, channel='stable'):
        """Get the download URL of a channel's release.

        URLs outside the provider's download host are rejected.

        Returns:
            str - Download URL, or None
        """
        release = addon.releases.get(channel)
        if not release or not release.get('download_url'):
            return None

        url = release['download_url']
        if self.download_host:
            if not host_matches(urlparse(url).hostname, self.download_host):
                logger.error("Rejecting %s download URL outside %s: %s", self.provider_name, self.download_host, url)
                return None
        return url


class WagoClient(MarketplaceClient):
    provider_type = AddonType.WAGO
    provider_name = 'Wago'
    download_host = 'wago.io'

    API_BASE = 'https://addons.wago.io'
    EXTERNAL_PATH = '/api/external'

    def __init__(self, api_key=None, session=None, timeout=10):
        super().__init__(session=session, timeout=timeout)
        self.api_key = api_key

    def has_credentials(self):
        return bool(self.api_key)

    def _headers(self):
        return {'Authorization': f'Bearer {self.api_key}', 'Accept': 'application/json'}

    def download_headers(self):
        if not self.api_key:
            return {}
        return {'Authorization': f'Bearer {self.api_key}', 'Accept': 'application/octet-stream'}

    def parse_addon_id(self, url_or_id):
        """Extract the addon id from https://addons.wago.io/addons/<id> or a bare id."""
        value = (url_or_id or '').strip()
        if 'wago.io' not in value:
            return value or None
        parsed = urlparse(value if '://' in value else f'https://{value}')
        if not host_matches(parsed.hostname, self.download_host):
            return None
        match = re.search(r'/addons/([A-Za-z0-9_-]+)', parsed.path)
        return match.group(1) if match else None

    def page_url(self, addon_id):
        return f'{self.API_BASE}/addons/{addon_id}'

    def get_details(self, addon_id, game_version=None):
        if not self.api_key:
            return DetailsResult(False, error=NO_API_KEY)

        url = f'{self.API_BASE}{self.EXTERNAL_PATH}/addons/{addon_id}'
        params = {'game_version': game_version} if game_version else None
        logger.info("Fetching Wago addon details: %s", url)
        status, data = self._get_json(url, headers=self._headers(), params=params)

        if status == 404:
            return DetailsResult(False, error=NOT_FOUND)
        if status != 200:
            return DetailsResult(False, error=NETWORK_ERROR)
        if not _is_valid_wago_addon(data):
            logger.error("Invalid Wago addon response format")
            return DetailsResult(False, error=INVALID_RESPONSE)

        releases = {}
        for channel in CHANNELS:
            release = (data.get('releases') or {}).get(channel)
            if release:
                releases[channel] = {
                    'version': release.get('label'),
                    # API field drift: download_link vs link
                    'download_url': release.get('download_link') or release.get('link'),
                }

        authors = data.get('authors') or []
        return DetailsResult(True, addon=MarketplaceAddon(
            addon_id=data['id'],
            display_name=data['display_name'],
            author=data.get('owner') or (authors[0] if authors else None),
            page_url=self.page_url(data['id']),
            releases=releases,
            raw=data,
        ))

    def search_addons(self, query, game_version='retail', stability=None):
        """Search the Wago catalogue.

        Returns:
            list - Raw addon summaries, empty on failure
        """
        if not self.api_key:
            logger.error("Wago API key required for search")
            return []

        params = {'query': query, 'game_version': game_version}
        if stability:
            params['stability'] = stability
        status, data = self._get_json(
            f'{self.API_BASE}{self.EXTERNAL_PATH}/addons/_search', headers=self._headers(), params=params
        )
        if status != 200 or not isinstance(data, dict) or not isinstance(data.get('data'), list):
            logger.error("Wago search failed (status %s)", status)
            return []
        return data['data']


def _is_valid_wago_addon(data):
    return (
        isinstance(data, dict)
        and isinstance(data.get('id'), str)
        and isinstance(data.get('display_name'), str)
        and isinstance(data.get('releases'), dict)
    )


class TukUIClient(MarketplaceClient):
    provider_type = AddonType.TUKUI
    provider_name = 'TukUI'

    API_URL = 'https://api.tukui.org/v1/addons'
    ADDON_URL = 'https://api.tukui.org/v1/addon'

    def __init__(self, session=None, timeout=10, cache=None):
        super().__init__(session=session, timeout=timeout)
        self.cache = cache or ResponseCache(max_age=300)

    def page_url(self, slug):
        return f'{self.ADDON_URL}/{slug}'

    def parse_addon_id(self, url_or_id):
        value = (url_or_id or '').strip()
        if '://' in value:
            parts = [part for part in urlparse(value).path.split('/') if part]
            return parts[-1] if parts else None
        return value or None

    def get_addons(self, force=False):
        """Get the TukUI catalogue, cached for the cache's max age.

        Returns:
            list - Raw addon dicts, or None if the request failed
        """
        if not force:
            cached = self.cache.get()
            if cached is not None:
                return cached

        logger.info("Fetching addons from %s", self.API_URL)
        status, data = self._get_json(self.API_URL)
        if status != 200 or not isinstance(data, list):
            logger.error("TukUI API request failed (status %s)", status)
            return None

        self.cache.set(data)
        return data

    def get_details(self, addon_id):
        addons = self.get_addons()
        if addons is None:
            return DetailsResult(False, error=NETWORK_ERROR)

        target = (addon_id or '').lower()
        for entry in addons:
            if not isinstance(entry, dict):
                continue
            if str(entry.get('slug', '')).lower() == target or str(entry.get('name', '')).lower() == target:
                return DetailsResult(True, addon=MarketplaceAddon(
                    addon_id=str(entry.get('slug') or entry.get('id')),
                    display_name=entry.get('name') or str(entry.get('slug')),
                    author=entry.get('author'),
                    page_url=self.page_url(entry.get('slug') or entry.get('id')),
                    releases={'stable': {'version': entry.get('version'), 'download_url': entry.get('url')}},
                    raw=entry,
                ))
        return DetailsResult(False, error=NOT_FOUND)


class WoWInterfaceClient(MarketplaceClient):
    provider_type = AddonType.WOWINTERFACE
    provider_name = 'WoWInterface'

    API_BASE = 'https://api.mmoui.com/v3/game/WOW/filedetails'

    def parse_addon_id(self, url_or_id):
        """Extract the numeric id from .../downloads/info<id>-<name>.html or a bare id."""
        value = (url_or_id or '').strip()
        if value.isdigit():
            return value
        match = re.search(r'info(\d+)', value)
        return match.group(1) if match else None

    def page_url(self, addon_id):
        return f'https://www.wowinterface.com/downloads/info{addon_id}'

    def get_details(self, addon_id):
        url = f'{self.API_BASE}/{addon_id}.json'
        logger.info("Fetching WoWInterface details for ID %s from %s", addon_id, url)
        status, data = self._get_json(url)

        if status == 404:
            return DetailsResult(False, error=NOT_FOUND)
        if status != 200:
            logger.error("WoWInterface API request failed (status %s)", status)
            return DetailsResult(False, error=NETWORK_ERROR)

        if isinstance(data, dict) and 'ERROR' in data:
            message = str(data['ERROR'])
            logger.error("WoWInterface API error: %s", message)
            if 'No AddOn found' in message:
                return DetailsResult(False, error=NOT_FOUND)
            return DetailsResult(False, error=INVALID_RESPONSE)

        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            logger.error("Invalid WoWInterface API response format")
            return DetailsResult(False, error=INVALID_RESPONSE)

        entry = data[0]
        file_name = entry.get('UIFileName') or ''
        return DetailsResult(True, addon=MarketplaceAddon(
            addon_id=str(entry.get('UID') or addon_id),
            display_name=entry.get('UIName') or re.sub(r'\.zip$', '', file_name, flags=re.IGNORECASE),
            author=entry.get('UIAuthorName'),
            page_url=self.page_url(entry.get('UID') or addon_id),
            releases={'stable': {'version': entry.get('UIVersion'), 'download_url': entry.get('UIDownload')}},
            raw=entry,
        ))
