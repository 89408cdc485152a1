"""
MediaSpend - Plan Record Store.

The engine reads plans and line items from an external record store.
PlanRecordStore defines the operations the engine relies on; the
JsonPlanStore keeps records in a local JSON file for the command line.

Classes:
    PlanRecordStore: Abstract list/get/create/update record store.
    JsonPlanStore: File-backed record store.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from mediaspend.schema import MediaType

logger = logging.getLogger(__name__)


class PlanRecordStore(ABC):
    """Record store for plan versions and their line items."""

    @abstractmethod
    def list_versions(self, mba_number: Optional[str] = None) -> List[Dict[str, Any]]:
        """Returns every stored plan version, optionally for one MBA number."""

    @abstractmethod
    def get_version(self, mba_number: str, version_number: int) -> Dict[str, Any]:
        """
        Returns one plan version.

        Raises:
            KeyError: If the version does not exist.
        """

    @abstractmethod
    def create_version(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        """Stores a new plan version and returns it."""

    @abstractmethod
    def update_version(
        self,
        mba_number: str,
        version_number: int,
        changes: Mapping[str, Any]
    ) -> Dict[str, Any]:
        """
        Applies changes to a plan version and returns it.

        Raises:
            KeyError: If the version does not exist.
        """

    @abstractmethod
    def list_line_items(
        self,
        mba_number: str,
        version_number: int,
        media_type: MediaType
    ) -> List[Dict[str, Any]]:
        """Returns the line-item records of one media type of a version."""


class JsonPlanStore(PlanRecordStore):
    """
    Record store backed by a JSON file.

    The file holds {"versions": [...]} where each version may carry a
    'line_items' object keyed by media type. Every write rewrites the
    whole file.
    """

    def __init__(self, file_path: Union[str, Path]):
        """
        Opens a store file, starting empty when it does not exist.

        Args:
            file_path: Path of the JSON file.
        """
        self._file_path = Path(file_path)
        self._versions: List[Dict[str, Any]] = []
        if self._file_path.exists():
            data = json.loads(self._file_path.read_text(encoding="utf-8"))
            self._versions = list(data.get("versions", [])) if isinstance(data, dict) else list(data)
            logger.info("Loaded %d plan versions from %s", len(self._versions), self._file_path)

    def list_versions(self, mba_number: Optional[str] = None) -> List[Dict[str, Any]]:
        if mba_number is None:
            return list(self._versions)
        return [v for v in self._versions if self._mba_number(v) == mba_number]

    def get_version(self, mba_number: str, version_number: int) -> Dict[str, Any]:
        for version in self._versions:
            if (self._mba_number(version) == mba_number
                    and self._version_number(version) == version_number):
                return version
        raise KeyError(f"{mba_number} v{version_number}")

    def create_version(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        version = dict(record)
        mba_number = self._mba_number(version)
        if not mba_number:
            raise ValueError("A plan version needs an MBA number")
        existing = [self._version_number(v) for v in self.list_versions(mba_number)]
        version.setdefault("version_number", max(existing, default=0) + 1)
        self._versions.append(version)
        self._save()
        return version

    def update_version(
        self,
        mba_number: str,
        version_number: int,
        changes: Mapping[str, Any]
    ) -> Dict[str, Any]:
        version = self.get_version(mba_number, version_number)
        version.update(changes)
        self._save()
        return version

    def list_line_items(
        self,
        mba_number: str,
        version_number: int,
        media_type: MediaType
    ) -> List[Dict[str, Any]]:
        version = self.get_version(mba_number, version_number)
        line_items = version.get("line_items") or {}
        for key, records in line_items.items():
            if MediaType.from_key(key) is media_type:
                return list(records)
        return []

    def _save(self) -> None:
        """Writes all versions back to the file."""
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        self._file_path.write_text(
            json.dumps({"versions": self._versions}, indent=2, default=str),
            encoding="utf-8"
        )

    @staticmethod
    def _mba_number(record: Mapping[str, Any]) -> str:
        return str(record.get("mba_number") or record.get("mp_mba_number") or "")

    @staticmethod
    def _version_number(record: Mapping[str, Any]) -> int:
        raw = record.get("version_number") or record.get("mp_version") or 1
        try:
            return int(raw)
        except (TypeError, ValueError):
            return 1
