"""
Downloader
Downloads addon archives over HTTP and extracts them safely
"""

import logging
import zipfile
from pathlib import Path

import requests

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36'
)


class ArchiveFetcher:
    def __init__(self, session=None, user_agent=DEFAULT_USER_AGENT, timeout=60):
        """Initialize archive fetcher.

        Args:
            session: Optional requests.Session - Shared HTTP session
            user_agent: str - User-Agent header sent with downloads
            timeout: int - Seconds to wait for the server
        """
        self.session = session or requests.Session()
        self.user_agent = user_agent
        self.timeout = timeout

    def download(self, url, dest_path, headers=None):
        """Stream a file to disk.

        Args:
            url: str - Download URL
            dest_path: str/Path - Target file
            headers: Optional dict - Extra request headers (auth)

        Returns:
            bool - True if the file was written
        """
        request_headers = {'User-Agent': self.user_agent}
        request_headers.update(headers or {})
        logger.info("Downloading: %s", url)

        try:
            response = self.session.get(url, headers=request_headers, stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Download threw error for %s: %s", url, e)
            return False

        try:
            if response.status_code != 200:
                logger.error("Download failed. Status: %s for %s", response.status_code, url)
                return False

            dest_path = Path(dest_path)
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            with open(dest_path, 'wb') as f:
                for chunk in response.iter_content(chunk_size=8192):
                    if chunk:
                        f.write(chunk)
        except requests.RequestException as e:
            logger.error("Download interrupted for %s: %s", url, e)
            return False
        finally:
            response.close()

        logger.info("Download complete: %s", dest_path)
        return True

    def extract(self, archive_path, dest_dir):
        """Extract a zip archive, skipping entries that escape dest_dir.

        Args:
            archive_path: str/Path - Zip file
            dest_dir: str/Path - Extraction directory

        Returns:
            bool - True if the archive was extracted
        """
        dest_dir = Path(dest_dir).resolve()
        dest_dir.mkdir(parents=True, exist_ok=True)

        try:
            with zipfile.ZipFile(archive_path, 'r') as zip_ref:
                for entry in zip_ref.infolist():
                    target = (dest_dir / entry.filename).resolve()
                    if target != dest_dir and dest_dir not in target.parents:
                        logger.error("Skipping unsafe entry: %s", entry.filename)
                        continue
                    zip_ref.extract(entry, dest_dir)
        except (zipfile.BadZipFile, OSError) as e:
            logger.error("Extracting %s failed: %s", archive_path, e)
            return False

        return True
