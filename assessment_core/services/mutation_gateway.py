# =============================================================================
# assessment_core/services/mutation_gateway.py
# Granular remote writes: one row per call, explicit cascade deletes
# =============================================================================
"""
MutationGateway - the only component that writes to the relational store.

Writes are not patched into the local tree. The change notification that
follows a successful write triggers a full refresh, which is what makes the
write visible.

Usage:
    gateway = MutationGateway(remote_store)
    ok = await gateway.upsert_department(department, hospital_id="h1")
    ok = await gateway.delete_department("d1")   # staff, assessments, ... too
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence

from assessment_core.data.assembler import strip_children
from assessment_core.data.casing import to_remote_shape
from assessment_core.data.schema import children_of, get_kind
from assessment_core.logging import get_logger

logger = get_logger(__name__)

Node = Dict[str, Any]


class MutationGateway:
    """Upserts and deletes single entities in their own table."""

    def __init__(self, remote):
        """
        Args:
            remote: RemoteStore (``upsert``, ``delete_ids``, ``select_ids``)
        """
        self.remote = remote

    def to_record(self, kind_name: str, entity: Node, parent_id: Optional[str] = None) -> Node:
        """
        Row for ``entity`` as it is stored remotely.

        Raises:
            ValueError: if the entity has no id, or a non-root kind has no parent
        """
        kind = get_kind(kind_name)
        if not entity.get("id"):
            raise ValueError(f"{kind.name} has no id")
        if not kind.is_root and not parent_id:
            raise ValueError(f"{kind.name} {entity['id']} needs a {kind.parent} id")

        row = strip_children(kind.name, entity)
        if kind.parent_field:
            row.pop(kind.parent_field, None)
        record = to_remote_shape(row)
        if kind.foreign_key:
            record[kind.foreign_key] = parent_id
        return record

    async def upsert(self, kind_name: str, entity: Node, parent_id: Optional[str] = None) -> bool:
        """
        Insert or replace one row by id.

        Returns:
            True if the store accepted the write
        """
        kind = get_kind(kind_name)
        record = self.to_record(kind_name, entity, parent_id)
        try:
            await self.remote.upsert(kind.table, record)
        except Exception as e:
            logger.error(f"Error upserting {kind.name} {record['id']}: {e}")
            return False
        logger.debug(f"Upserted {kind.name} {record['id']}")
        return True

    async def delete(self, kind_name: str, entity_id: str, cascade: bool = True) -> bool:
        """
        Delete one row, and with ``cascade`` every row below it first.

        Returns:
            True if every delete succeeded
        """
        kind = get_kind(kind_name)
        try:
            if cascade:
                await self._delete_descendants(kind.name, [entity_id])
            await self.remote.delete_ids(kind.table, [entity_id])
        except Exception as e:
            logger.error(f"Error deleting {kind.name} {entity_id}: {e}")
            return False
        logger.debug(f"Deleted {kind.name} {entity_id}")
        return True

    async def _delete_descendants(self, kind_name: str, parent_ids: Sequence[str]) -> None:
        # Deepest rows go first so no child outlives its parent
        for child in children_of(kind_name):
            child_ids: List[str] = await self.remote.select_ids(
                child.table, child.foreign_key, list(parent_ids)
            )
            if not child_ids:
                continue
            await self._delete_descendants(child.name, child_ids)
            await self.remote.delete_ids(child.table, child_ids)
            logger.debug(f"Cascade deleted {len(child_ids)} {child.name} row(s)")

    # =========================================================================
    # HOSPITAL TREE
    # =========================================================================

    async def upsert_hospital(self, hospital: Node) -> bool:
        return await self.upsert("hospital", hospital)

    async def delete_hospital(self, hospital_id: str) -> bool:
        return await self.delete("hospital", hospital_id)

    async def upsert_department(self, department: Node, hospital_id: str) -> bool:
        return await self.upsert("department", department, hospital_id)

    async def delete_department(self, department_id: str) -> bool:
        return await self.delete("department", department_id)

    async def upsert_staff(self, staff: Node, department_id: str) -> bool:
        return await self.upsert("staff", staff, department_id)

    async def delete_staff(self, staff_id: str) -> bool:
        return await self.delete("staff", staff_id)

    async def upsert_assessment(self, assessment: Node, staff_id: str) -> bool:
        return await self.upsert("assessment", assessment, staff_id)

    async def delete_assessment(self, assessment_id: str) -> bool:
        return await self.delete("assessment", assessment_id)

    async def upsert_work_log(self, work_log: Node, staff_id: str) -> bool:
        return await self.upsert("work_log", work_log, staff_id)

    async def delete_work_log(self, work_log_id: str) -> bool:
        return await self.delete("work_log", work_log_id)

    async def upsert_patient(self, patient: Node, department_id: str) -> bool:
        return await self.upsert("patient", patient, department_id)

    async def delete_patient(self, patient_id: str) -> bool:
        return await self.delete("patient", patient_id)

    # =========================================================================
    # HOSPITAL-LEVEL COLLECTIONS
    # =========================================================================

    async def upsert_checklist_template(self, template: Node, hospital_id: str) -> bool:
        return await self.upsert("checklist_template", template, hospital_id)

    async def delete_checklist_template(self, template_id: str) -> bool:
        return await self.delete("checklist_template", template_id)

    async def upsert_exam_template(self, template: Node, hospital_id: str) -> bool:
        return await self.upsert("exam_template", template, hospital_id)

    async def delete_exam_template(self, template_id: str) -> bool:
        return await self.delete("exam_template", template_id)

    async def upsert_training_material(self, training: Node, hospital_id: str) -> bool:
        return await self.upsert("training_material", training, hospital_id)

    async def delete_training_material(self, training_id: str) -> bool:
        return await self.delete("training_material", training_id)

    async def upsert_accreditation_material(self, material: Node, hospital_id: str) -> bool:
        return await self.upsert("accreditation_material", material, hospital_id)

    async def delete_accreditation_material(self, material_id: str) -> bool:
        return await self.delete("accreditation_material", material_id)

    async def upsert_news_banner(self, banner: Node, hospital_id: str) -> bool:
        return await self.upsert("news_banner", banner, hospital_id)

    async def delete_news_banner(self, banner_id: str) -> bool:
        return await self.delete("news_banner", banner_id)

    async def upsert_admin_message(self, message: Node, hospital_id: str) -> bool:
        return await self.upsert("admin_message", message, hospital_id)

    async def delete_admin_message(self, message_id: str) -> bool:
        return await self.delete("admin_message", message_id)

    async def upsert_needs_assessment(self, needs: Node, hospital_id: str) -> bool:
        return await self.upsert("needs_assessment", needs, hospital_id)

    async def delete_needs_assessment(self, needs_id: str) -> bool:
        return await self.delete("needs_assessment", needs_id)
