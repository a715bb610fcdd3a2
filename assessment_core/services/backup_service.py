# =============================================================================
# assessment_core/services/backup_service.py
# Full JSON backup of the hospital tree plus cached attachments
# =============================================================================
"""
Backup format:

    {
      "type": "full_backup",
      "exported_at": "2024-03-20T10:00:00+00:00",
      "hospitals": [ ...assembled tree... ],
      "files": [ {"id": "<public url>", "data": "data:<mime>;base64,..."} ]
    }

Restoring replaces the remote store content: current hospitals are
cascade-deleted, then every node of the backup is written parent-first.
"""

from __future__ import annotations
import copy
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from assessment_core.data.assembler import flatten
from assessment_core.data.schema import children_of, new_id, ROOT_KIND
from assessment_core.offline.attachment_cache import Attachment, AttachmentCache
from assessment_core.services.base_service import BaseService, ServiceResult
from assessment_core.services.mutation_gateway import MutationGateway
from assessment_core.services.unit_of_work import UnitOfWork

BACKUP_TYPE = "full_backup"

Node = Dict[str, Any]


def _ensure_ids(kind_name: str, node: Node) -> None:
    # Older backups carry rows without ids (monthly training, needs assessments)
    if not node.get("id"):
        node["id"] = new_id()
    for child in children_of(kind_name):
        for child_node in node.get(child.collection) or []:
            _ensure_ids(child.name, child_node)


class BackupService(BaseService):
    """
    Usage:
        backups = BackupService(gateway, attachments)
        payload = backups.export_backup(hospitals)
        backups.write_backup(payload, "backup.json")
        result = await backups.restore_backup(backups.read_backup("backup.json"), hospitals)
    """

    def __init__(self, gateway: MutationGateway, attachments: AttachmentCache):
        super().__init__()
        self.gateway = gateway
        self.attachments = attachments

    def export_backup(self, hospitals: List[Node]) -> Dict[str, Any]:
        files = [
            {"id": locator, "data": attachment.to_data_url()}
            for locator, attachment in self.attachments.all_cached().items()
        ]
        self.logger.info(f"Exporting {len(hospitals)} hospital(s) and {len(files)} file(s)")
        return {
            "type": BACKUP_TYPE,
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "hospitals": hospitals,
            "files": files,
        }

    def default_filename(self) -> str:
        return f"skill_assessment_backup_{datetime.now().strftime('%Y-%m-%d')}.json"

    def write_backup(self, payload: Dict[str, Any], path: Optional[Path | str] = None) -> Path:
        path = Path(path) if path else Path(self.default_filename())
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        self.logger.info(f"Backup written to {path}")
        return path

    def read_backup(self, path: Path | str) -> Dict[str, Any]:
        """
        Raises:
            ValueError: if the file is not a full backup
        """
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
        if not isinstance(payload, dict) or not isinstance(payload.get("hospitals"), list):
            raise ValueError(f"{path} is not a backup file")
        if payload.get("type", BACKUP_TYPE) != BACKUP_TYPE:
            raise ValueError(f"Unsupported backup type: {payload.get('type')}")
        return payload

    def restore_files(self, files: List[Dict[str, str]]) -> int:
        """Replace the local attachment cache with the backup's files."""
        self.attachments.clear()
        restored = 0
        for entry in files or []:
            try:
                self.attachments.put(entry["id"], Attachment.from_data_url(entry["data"]))
                restored += 1
            except (KeyError, ValueError) as e:
                self.logger.warning(f"Skipping unreadable backup file entry: {e}")
        return restored

    async def restore_backup(self, payload: Dict[str, Any], current: List[Node]) -> ServiceResult:
        """
        Replace everything with the backup's content.

        Args:
            payload: Parsed backup (see ``read_backup``)
            current: Hospitals currently in the tree; all are deleted

        Returns:
            ServiceResult; on partial failure ``metadata["unit"]`` can be retried
        """
        hospitals = copy.deepcopy(payload.get("hospitals") or [])
        for hospital in hospitals:
            _ensure_ids(ROOT_KIND, hospital)

        with self.log_operation("Restoring backup"):
            self._update_progress(5, "Restoring files")
            files_restored = self.restore_files(payload.get("files") or [])

            self._update_progress(20, "Deleting current data")
            unit = UnitOfWork("restore backup")
            for hospital in current:
                unit.delete(self.gateway, ROOT_KIND, hospital["id"])

            rows = flatten(hospitals)
            for kind_name, row, parent_id in rows:
                unit.upsert(self.gateway, kind_name, row, parent_id)

            self._update_progress(40, f"Writing {len(rows)} row(s)")
            result = await self.run_unit(unit, data=hospitals, metadata={"files": files_restored})
            self._update_progress(100, "Done" if result else "Incomplete")

        return result
