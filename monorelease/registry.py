"""Package registry client.

Queries a PyPI-compatible JSON API for the published versions of a
package. Used to find released versions of pre-release dependencies.
"""

from __future__ import annotations

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .errors import RegistryError
from .toml import DEFAULT_INDEX_URL


class PyPIRegistry:
    """Read-only client for the ``{index_url}/{name}/json`` endpoint."""

    def __init__(self, index_url: str = DEFAULT_INDEX_URL, timeout: float = 30) -> None:
        self.index_url = index_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})

        # Retry transient failures
        retry_strategy = Retry(
            total=3,
            status_forcelist=[429, 500, 502, 503, 504],
            backoff_factor=1,
            allowed_methods=["GET"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def get_versions(self, name: str) -> list[str]:
        """All versions of a package with at least one non-yanked file.

        Returns an empty list if the registry does not know the package.

        Raises:
            RegistryError: If the request fails or the response is malformed.
        """
        url = f"{self.index_url}/{name}/json"
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise RegistryError(f"Failed to query {url}: {e}") from e

        if response.status_code == 404:
            return []
        if response.status_code != 200:
            raise RegistryError(f"Registry error for {name}: HTTP {response.status_code}")

        try:
            releases = response.json()["releases"]
        except (ValueError, KeyError, TypeError) as e:
            raise RegistryError(f"Malformed registry response for {name}") from e

        return [
            version
            for version, files in releases.items()
            if not files or not all(f.get("yanked", False) for f in files)
        ]
