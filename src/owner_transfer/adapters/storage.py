"""
Storage adapters for the item tree whose ownership is transferred.

``LocalTreeStorage`` serves a tree described by a JSON manifest (local-dev and
tests); ``DriveStorage`` talks to the Google Drive v3 REST API.
"""
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional
from urllib.parse import quote

import requests

from owner_transfer.errors import OwnerChangeError, StorageError
from owner_transfer.schemas import ItemDescriptor, ItemKind
from owner_transfer.settings import Settings, get_settings
from owner_transfer.utils.decorators import retry

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

_KIND_ALIASES = {
    "container": ItemKind.CONTAINER,
    "folder": ItemKind.CONTAINER,
    "leaf": ItemKind.LEAF,
    "file": ItemKind.LEAF,
}


class BaseStorage(ABC):
    """Operations the traversal engine needs from the remote tree"""

    @abstractmethod
    def resolve(self, item_id: str) -> Optional[ItemDescriptor]:
        """Resolve an identifier

        Args:
            item_id: Identifier of the item

        Returns:
            The item descriptor, or None when the item does not exist

        Raises:
            StorageError: If the lookup itself failed
        """
        pass

    @abstractmethod
    def list_children(self, container_id: str) -> Iterable[str]:
        """List direct children of a container, sub-containers first

        Raises:
            StorageError: If the children cannot be enumerated
        """
        pass

    @abstractmethod
    def set_owner(self, item_id: str, new_owner: str) -> None:
        """Transfer ownership of an item

        Raises:
            OwnerChangeError: If the backend rejects the change
        """
        pass


class LocalTreeStorage(BaseStorage):
    """Tree held in memory and optionally backed by a JSON manifest.

    Manifest layout::

        {"items": {"F1": {"kind": "container", "owner": "a@x.com",
                          "children": ["A", "F2"], "locked": false}}}

    Children that are missing from ``items`` resolve as not found. Items
    flagged ``locked`` reject owner changes.
    """

    def __init__(self, manifest_path: Optional[str] = None,
                 items: Optional[Dict[str, Dict[str, Any]]] = None):
        self.manifest_path = Path(manifest_path) if manifest_path else None
        if items is not None:
            self.items = items
        elif self.manifest_path is not None:
            self.items = self._load_manifest()
        else:
            self.items = {}
        logger.info("LocalTreeStorage initialized with %s items", len(self.items))

    def _load_manifest(self) -> Dict[str, Dict[str, Any]]:
        try:
            with open(self.manifest_path, "r", encoding="utf-8") as f:
                manifest = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read tree manifest {self.manifest_path}: {e}") from e
        return manifest.get("items", {})

    def _save_manifest(self) -> None:
        if self.manifest_path is None:
            return
        tmp_path = self.manifest_path.with_suffix(self.manifest_path.suffix + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump({"items": self.items}, f, indent=2)
            os.replace(tmp_path, self.manifest_path)
        except OSError as e:
            raise StorageError(f"Cannot write tree manifest {self.manifest_path}: {e}") from e

    def _kind(self, item_id: str, entry: Dict[str, Any]) -> ItemKind:
        raw = entry.get("kind", "leaf")
        if raw not in _KIND_ALIASES:
            raise StorageError(f"Item {item_id} has unknown kind {raw!r}")
        return _KIND_ALIASES[raw]

    def resolve(self, item_id: str) -> Optional[ItemDescriptor]:
        entry = self.items.get(item_id)
        if entry is None:
            return None
        return ItemDescriptor(
            item_id=item_id,
            kind=self._kind(item_id, entry),
            owner=entry.get("owner"),
        )

    def list_children(self, container_id: str) -> Iterable[str]:
        entry = self.items.get(container_id)
        if entry is None:
            raise StorageError(f"Container {container_id} no longer exists")
        children = list(entry.get("children", []))

        def is_container(child_id: str) -> bool:
            child = self.items.get(child_id)
            return child is not None and self._kind(child_id, child) is ItemKind.CONTAINER

        folders = [child for child in children if is_container(child)]
        files = [child for child in children if not is_container(child)]
        return folders + files

    def set_owner(self, item_id: str, new_owner: str) -> None:
        entry = self.items.get(item_id)
        if entry is None:
            raise OwnerChangeError(item_id, "item not found")
        if entry.get("locked"):
            raise OwnerChangeError(item_id, "ownership change not permitted")
        entry["owner"] = new_owner
        self._save_manifest()


class TransientDriveError(StorageError):
    """Drive API failure worth retrying (throttling, server errors, network)"""
    pass


class DriveStorage(BaseStorage):
    """Google Drive v3 REST adapter.

    Authentication is supplied by the caller as a bearer token; obtaining and
    refreshing it (service account with domain-wide delegation) happens
    outside this class.
    """

    def __init__(self, access_token: str,
                 base_url: str = "https://www.googleapis.com/drive/v3",
                 session: Optional[requests.Session] = None,
                 timeout: float = 30.0,
                 use_domain_admin_access: bool = True,
                 page_size: int = 1000):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {access_token}"})
        self.timeout = timeout
        self.use_domain_admin_access = use_domain_admin_access
        self.page_size = page_size

        logger.info(f"DriveStorage initialized")
        logger.info(f"  Base URL: {self.base_url}")
        logger.info(f"  Domain admin access: {self.use_domain_admin_access}")

    @retry(max_attempts=3, delay=1.0, backoff=2.0,
           exceptions=(TransientDriveError,), logger_name=__name__)
    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout,
                requests.exceptions.ChunkedEncodingError) as e:
            raise TransientDriveError(f"{method} {path} failed: {e}") from e
        except requests.exceptions.RequestException as e:
            raise StorageError(f"{method} {path} failed: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientDriveError(
                f"{method} {path} returned {response.status_code}: {self._error_message(response)}"
            )
        return response

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            return response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            return response.text or response.reason or str(response.status_code)

    @staticmethod
    def _json(response: requests.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise StorageError(f"Unreadable Drive response ({response.status_code}): {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Unexpected Drive response type {type(data).__name__}")
        return data

    def resolve(self, item_id: str) -> Optional[ItemDescriptor]:
        response = self._request(
            "GET",
            f"/files/{quote(item_id, safe='')}",
            params={
                "fields": "id,mimeType,owners(emailAddress)",
                "supportsAllDrives": "true",
            },
        )
        if response.status_code == 404:
            return None
        if not response.ok:
            raise StorageError(
                f"Lookup of {item_id} returned {response.status_code}: {self._error_message(response)}"
            )

        data = self._json(response)
        owners = data.get("owners") or []
        return ItemDescriptor(
            item_id=item_id,
            kind=ItemKind.CONTAINER if data.get("mimeType") == FOLDER_MIME_TYPE else ItemKind.LEAF,
            owner=owners[0].get("emailAddress") if owners and isinstance(owners[0], dict) else None,
        )

    def list_children(self, container_id: str) -> Iterator[str]:
        parent = container_id.replace("\\", "\\\\").replace("'", "\\'")
        base_query = f"'{parent}' in parents and trashed = false"
        yield from self._list_ids(f"{base_query} and mimeType = '{FOLDER_MIME_TYPE}'")
        yield from self._list_ids(f"{base_query} and mimeType != '{FOLDER_MIME_TYPE}'")

    def _list_ids(self, query: str) -> Iterator[str]:
        page_token = None
        while True:
            params = {
                "q": query,
                "fields": "nextPageToken,files(id)",
                "pageSize": self.page_size,
                "supportsAllDrives": "true",
                "includeItemsFromAllDrives": "true",
            }
            if page_token:
                params["pageToken"] = page_token

            response = self._request("GET", "/files", params=params)
            if not response.ok:
                raise StorageError(
                    f"Listing returned {response.status_code}: {self._error_message(response)}"
                )
            data = self._json(response)
            for entry in data.get("files") or []:
                if isinstance(entry, dict) and entry.get("id"):
                    yield entry["id"]

            page_token = data.get("nextPageToken")
            if not page_token:
                return

    def set_owner(self, item_id: str, new_owner: str) -> None:
        params = {"transferOwnership": "true", "supportsAllDrives": "true"}
        if self.use_domain_admin_access:
            params["useDomainAdminAccess"] = "true"

        response = self._request(
            "POST",
            f"/files/{quote(item_id, safe='')}/permissions",
            params=params,
            json={"role": "owner", "type": "user", "emailAddress": new_owner},
        )
        if not response.ok:
            raise OwnerChangeError(item_id, self._error_message(response))
        logger.debug("Transferred %s to %s", item_id, new_owner)


class StorageFactory:
    """Factory to initialize the correct storage adapter based on deployment mode"""

    @staticmethod
    def get_storage(settings: Optional[Settings] = None) -> BaseStorage:
        settings = settings or get_settings()
        mode = settings.deployment_mode

        if mode == "local-dev":
            logger.info(f"Creating local tree storage from {settings.manifest_path}")
            return LocalTreeStorage(settings.manifest_path)

        if mode in ("aws-mock", "aws-prod"):
            if not settings.drive_access_token:
                raise StorageError("DRIVE_ACCESS_TOKEN is required for Drive storage")
            logger.info(f"Creating Drive storage for mode: {mode}")
            return DriveStorage(
                access_token=settings.drive_access_token,
                base_url=settings.drive_api_base_url,
                timeout=settings.drive_timeout_seconds,
                use_domain_admin_access=settings.drive_use_domain_admin_access,
            )

        raise ValueError(
            f"Invalid deployment_mode: {mode}. "
            f"Choose from ['local-dev', 'aws-mock', 'aws-prod']"
        )
