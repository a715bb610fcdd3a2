# =============================================================================
# assessment_core/services/hospital_service.py
# Business operations on the hospital tree, expressed as granular writes
# =============================================================================
"""
HospitalService turns user-level actions into Mutation Gateway writes.

Every method receives the node(s) it acts on as they appear in the last
assembled tree, builds the new row(s) and writes them. The tree itself is
never patched here; the change notification that follows a write triggers
a refresh that brings the new state back.

Methods return ``ServiceResult``; ``data`` holds the row that was written.
Multi-row operations return their ``UnitOfWork`` in ``metadata["unit"]`` and
keep failed units in ``pending_units`` so they can be retried later.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from assessment_core.data.schema import new_id
from assessment_core.errors import CredentialConfirmationError
from assessment_core.services.base_service import BaseService, ServiceResult
from assessment_core.services.mutation_gateway import MutationGateway
from assessment_core.services.unit_of_work import UnitOfWork

Node = Dict[str, Any]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _find_period(rows: Iterable[Node], month: str, year: Optional[int]) -> Optional[Node]:
    """First row with the given (month, year) business key."""
    for row in rows or ():
        if row.get("month") == month and row.get("year") == year:
            return row
    return None


class HospitalService(BaseService):
    """
    Usage:
        service = HospitalService(gateway, attachments)
        result = await service.add_department("h1", "ICU", "Dr. A", "123", "pw")
        if not result:
            await service.retry_pending()
    """

    def __init__(self, gateway: MutationGateway, attachments=None):
        super().__init__()
        self.gateway = gateway
        self.attachments = attachments

    # =========================================================================
    # HOSPITALS
    # =========================================================================

    async def create_hospital(
        self,
        name: str,
        province: str,
        city: str,
        supervisor_name: str,
        supervisor_national_id: str,
        supervisor_password: str,
    ) -> ServiceResult:
        hospital = {
            "id": new_id(),
            "name": name,
            "province": province,
            "city": city,
            "supervisorName": supervisor_name,
            "supervisorNationalId": supervisor_national_id,
            "supervisorPassword": supervisor_password,
        }
        ok = await self.gateway.upsert_hospital(hospital)
        return ServiceResult.written(ok, hospital, f"create hospital {name}")

    async def update_hospital(self, hospital: Node, **changes: Any) -> ServiceResult:
        updated = {**hospital, **changes, "id": hospital["id"]}
        ok = await self.gateway.upsert_hospital(updated)
        return ServiceResult.written(ok, updated, f"update hospital {hospital['id']}")

    async def delete_hospital(self, hospital_id: str) -> ServiceResult:
        ok = await self.gateway.delete_hospital(hospital_id)
        return ServiceResult.written(ok, {"id": hospital_id}, f"delete hospital {hospital_id}")

    async def reset_hospital(self, hospital: Node, national_id: str, password: str) -> ServiceResult:
        """
        Delete every department (and everything below) after the supervisor
        re-confirms their credentials.

        Raises:
            CredentialConfirmationError: if the credentials do not match
        """
        if (
            hospital.get("supervisorNationalId") != national_id
            or hospital.get("supervisorPassword") != password
        ):
            raise CredentialConfirmationError(
                "Supervisor credentials do not match", hospital_id=hospital.get("id")
            )

        unit = UnitOfWork(f"reset hospital {hospital['id']}", stop_on_failure=False)
        for department in hospital.get("departments") or []:
            unit.delete(self.gateway, "department", department["id"])
        self.logger.warning(
            f"Resetting hospital {hospital['id']}: {len(unit.steps)} department(s)"
        )
        return await self.run_unit(unit, data={"id": hospital["id"]})

    async def archive_year(self, hospital: Node, year: int) -> ServiceResult:
        """
        Stamp ``year`` on every assessment, work log and needs assessment
        that has no year yet. Only changed rows are written.
        """
        unit = UnitOfWork(f"archive {year} for {hospital['id']}", stop_on_failure=False)
        for department in hospital.get("departments") or []:
            for staff in department.get("staff") or []:
                for assessment in staff.get("assessments") or []:
                    if assessment.get("year") is None:
                        unit.upsert(self.gateway, "assessment", {**assessment, "year": year}, staff["id"])
                for work_log in staff.get("workLogs") or []:
                    if work_log.get("year") is None:
                        unit.upsert(self.gateway, "work_log", {**work_log, "year": year}, staff["id"])
        for needs in hospital.get("needsAssessments") or []:
            if needs.get("year") is None:
                unit.upsert(self.gateway, "needs_assessment", {**needs, "year": year}, hospital["id"])

        with self.log_operation(f"Archiving year {year}"):
            return await self.run_unit(unit, data={"archived": len(unit.steps)})

    # =========================================================================
    # DEPARTMENTS, STAFF, PATIENTS
    # =========================================================================

    async def add_department(
        self,
        hospital_id: str,
        name: str,
        manager_name: str,
        manager_national_id: str,
        manager_password: str,
        staff_count: int = 0,
        bed_count: int = 0,
        staff: Iterable[Mapping[str, Any]] = (),
    ) -> ServiceResult:
        """Create a department and, optionally, its initial staff list."""
        department = {
            "id": new_id(),
            "name": name,
            "managerName": manager_name,
            "managerNationalId": manager_national_id,
            "managerPassword": manager_password,
            "staffCount": staff_count,
            "bedCount": bed_count,
            "patientEducationMaterials": [],
        }
        unit = UnitOfWork(f"add department {name}")
        unit.upsert(self.gateway, "department", department, hospital_id)
        for member in staff:
            row = {"id": new_id(), **member}
            unit.upsert(self.gateway, "staff", row, department["id"])
        return await self.run_unit(unit, data=department)

    async def update_department(self, department: Node, hospital_id: str, **changes: Any) -> ServiceResult:
        updated = {**department, **changes, "id": department["id"]}
        ok = await self.gateway.upsert_department(updated, hospital_id)
        return ServiceResult.written(ok, updated, f"update department {department['id']}")

    async def delete_department(self, department_id: str) -> ServiceResult:
        ok = await self.gateway.delete_department(department_id)
        return ServiceResult.written(ok, {"id": department_id}, f"delete department {department_id}")

    async def add_staff(
        self,
        department_id: str,
        name: str,
        title: str,
        national_id: str,
        password: Optional[str] = None,
    ) -> ServiceResult:
        member = {
            "id": new_id(),
            "name": name,
            "title": title,
            "nationalId": national_id,
            "password": password,
        }
        ok = await self.gateway.upsert_staff(member, department_id)
        return ServiceResult.written(ok, member, f"add staff {name}")

    async def update_staff(self, staff: Node, department_id: str, **changes: Any) -> ServiceResult:
        updated = {**staff, **changes, "id": staff["id"]}
        ok = await self.gateway.upsert_staff(updated, department_id)
        return ServiceResult.written(ok, updated, f"update staff {staff['id']}")

    async def delete_staff(self, staff_id: str) -> ServiceResult:
        ok = await self.gateway.delete_staff(staff_id)
        return ServiceResult.written(ok, {"id": staff_id}, f"delete staff {staff_id}")

    async def add_patient(
        self,
        department_id: str,
        name: str,
        national_id: str,
        password: Optional[str] = None,
    ) -> ServiceResult:
        patient = {
            "id": new_id(),
            "name": name,
            "nationalId": national_id,
            "password": password,
            "chatHistory": [],
        }
        ok = await self.gateway.upsert_patient(patient, department_id)
        return ServiceResult.written(ok, patient, f"add patient {name}")

    async def delete_patient(self, patient_id: str) -> ServiceResult:
        ok = await self.gateway.delete_patient(patient_id)
        return ServiceResult.written(ok, {"id": patient_id}, f"delete patient {patient_id}")

    async def send_patient_message(
        self,
        department_id: str,
        patient: Node,
        content: Mapping[str, Any],
        sender: str,
    ) -> ServiceResult:
        """Append a chat message (``text`` and/or ``file``) to a patient's history."""
        message = {"id": new_id(), "sender": sender, "timestamp": _now_iso(), **content}
        updated = {**patient, "chatHistory": [*(patient.get("chatHistory") or []), message]}
        ok = await self.gateway.upsert_patient(updated, department_id)
        return ServiceResult.written(ok, message, f"send message to patient {patient['id']}")

    # =========================================================================
    # ASSESSMENTS AND WORK LOGS
    # =========================================================================

    async def save_assessment(
        self,
        staff: Node,
        month: str,
        year: int,
        skill_categories: List[Node],
        template: Optional[Mapping[str, Any]] = None,
    ) -> ServiceResult:
        """
        Insert or replace the assessment for (staff, month, year).

        An existing assessment keeps its id, messages and exam submissions.
        """
        existing = _find_period(staff.get("assessments"), month, year) or {}
        template = template or {}
        assessment = {
            "id": existing.get("id") or new_id(),
            "month": month,
            "year": year,
            "skillCategories": skill_categories,
            "supervisorMessage": existing.get("supervisorMessage", ""),
            "managerMessage": existing.get("managerMessage", ""),
            "templateId": template.get("id"),
            "minScore": template.get("minScore"),
            "maxScore": template.get("maxScore"),
            "examSubmissions": existing.get("examSubmissions") or [],
        }
        ok = await self.gateway.upsert_assessment(assessment, staff["id"])
        return ServiceResult.written(ok, assessment, f"save assessment {month}/{year} for {staff['id']}")

    async def update_assessment_messages(
        self,
        staff: Node,
        month: str,
        year: int,
        supervisor_message: str,
        manager_message: str,
    ) -> ServiceResult:
        existing = _find_period(staff.get("assessments"), month, year)
        if existing is None:
            return ServiceResult.fail(
                f"No assessment for {month}/{year}", error_code="NOT_FOUND"
            )
        updated = {
            **existing,
            "supervisorMessage": supervisor_message,
            "managerMessage": manager_message,
        }
        ok = await self.gateway.upsert_assessment(updated, staff["id"])
        return ServiceResult.written(ok, updated, f"update messages on {existing['id']}")

    async def submit_exam(self, staff: Node, month: str, year: int, submission: Node) -> ServiceResult:
        """Record an exam submission, replacing an earlier one for the same exam."""
        existing = _find_period(staff.get("assessments"), month, year)
        assessment = dict(existing) if existing else {
            "id": new_id(),
            "month": month,
            "year": year,
            "skillCategories": [],
        }
        submissions = [
            s for s in assessment.get("examSubmissions") or []
            if s.get("examTemplateId") != submission.get("examTemplateId")
        ]
        assessment["examSubmissions"] = [*submissions, submission]
        ok = await self.gateway.upsert_assessment(assessment, staff["id"])
        return ServiceResult.written(ok, assessment, f"submit exam for {staff['id']}")

    async def save_work_log(self, staff: Node, work_log: Node) -> ServiceResult:
        """Insert or replace the work log for its (month, year)."""
        existing = _find_period(staff.get("workLogs"), work_log.get("month"), work_log.get("year"))
        row = {**work_log}
        row["id"] = (existing or {}).get("id") or work_log.get("id") or new_id()
        ok = await self.gateway.upsert_work_log(row, staff["id"])
        return ServiceResult.written(ok, row, f"save work log for {staff['id']}")

    # =========================================================================
    # HOSPITAL-LEVEL COLLECTIONS
    # =========================================================================

    async def save_checklist_template(self, hospital_id: str, template: Node) -> ServiceResult:
        row = {**template, "id": template.get("id") or new_id()}
        ok = await self.gateway.upsert_checklist_template(row, hospital_id)
        return ServiceResult.written(ok, row, "save checklist template")

    async def save_exam_template(self, hospital_id: str, template: Node) -> ServiceResult:
        row = {**template, "id": template.get("id") or new_id()}
        ok = await self.gateway.upsert_exam_template(row, hospital_id)
        return ServiceResult.written(ok, row, "save exam template")

    async def add_training_material(self, hospital: Node, month: str, material: Node) -> ServiceResult:
        """Append a material to the month's training row, creating the row if needed."""
        training = next(
            (t for t in hospital.get("trainingMaterials") or [] if t.get("month") == month),
            None,
        )
        if training is None:
            row = {"id": new_id(), "month": month, "materials": [material]}
        else:
            row = {**training, "materials": [*(training.get("materials") or []), material]}
        ok = await self.gateway.upsert_training_material(row, hospital["id"])
        return ServiceResult.written(ok, row, f"add training material for {month}")

    async def delete_training_material(self, hospital: Node, month: str, material_id: str) -> ServiceResult:
        training = next(
            (t for t in hospital.get("trainingMaterials") or [] if t.get("month") == month),
            None,
        )
        if training is None:
            return ServiceResult.fail(f"No training materials for {month}", error_code="NOT_FOUND")
        row = {
            **training,
            "materials": [m for m in training.get("materials") or [] if m.get("id") != material_id],
        }
        ok = await self.gateway.upsert_training_material(row, hospital["id"])
        return ServiceResult.written(ok, row, f"delete training material {material_id}")

    async def send_admin_message(self, hospital_id: str, content: Mapping[str, Any], sender: str) -> ServiceResult:
        message = {"id": new_id(), "sender": sender, "timestamp": _now_iso(), **content}
        ok = await self.gateway.upsert_admin_message(message, hospital_id)
        return ServiceResult.written(ok, message, f"send admin message for {hospital_id}")

    async def save_needs_topics(self, hospital: Node, month: str, year: int, topics: List[Node]) -> ServiceResult:
        existing = _find_period(hospital.get("needsAssessments"), month, year)
        row = {
            "id": (existing or {}).get("id") or new_id(),
            "month": month,
            "year": year,
            "topics": topics,
        }
        ok = await self.gateway.upsert_needs_assessment(row, hospital["id"])
        return ServiceResult.written(ok, row, f"save needs topics {month}/{year}")

    async def submit_needs_responses(
        self,
        hospital: Node,
        staff: Node,
        month: str,
        year: int,
        responses: Mapping[str, str],
    ) -> ServiceResult:
        """
        Record one staff member's answers, keyed by topic id. A previous
        answer from the same staff member is replaced.
        """
        existing = _find_period(hospital.get("needsAssessments"), month, year)
        if existing is None:
            return ServiceResult.fail(
                f"No needs assessment for {month}/{year}", error_code="NOT_FOUND"
            )

        topics = []
        for topic in existing.get("topics") or []:
            topic = dict(topic)
            if topic.get("id") in responses:
                answer = {
                    "staffId": staff["id"],
                    "staffName": staff.get("name"),
                    "response": responses[topic["id"]],
                }
                others = [r for r in topic.get("responses") or [] if r.get("staffId") != staff["id"]]
                topic["responses"] = [*others, answer]
            topics.append(topic)

        row = {**existing, "topics": topics}
        ok = await self.gateway.upsert_needs_assessment(row, hospital["id"])
        return ServiceResult.written(ok, row, f"submit needs responses for {staff['id']}")

    async def add_news_banner(
        self,
        hospital_id: str,
        title: str,
        description: str,
        filename: str,
        data: bytes,
        content_type: str,
    ) -> ServiceResult:
        """Upload the banner image, then write the banner row pointing at it."""
        banner_id = new_id()
        uploaded = await self.safe_execute(
            f"Uploading banner image {filename}",
            self.attachments.upload, banner_id, filename, data, content_type,
        )
        if not uploaded:
            return uploaded
        image_path = uploaded.data

        banner = {"id": banner_id, "title": title, "description": description, "imageId": image_path}
        ok = await self.gateway.upsert_news_banner(banner, hospital_id)
        return ServiceResult.written(ok, banner, f"add news banner {title}")

    async def delete_news_banner(self, banner: Node) -> ServiceResult:
        if banner.get("imageId"):
            await self.attachments.delete(banner["imageId"])
        ok = await self.gateway.delete_news_banner(banner["id"])
        return ServiceResult.written(ok, {"id": banner["id"]}, f"delete news banner {banner['id']}")
