# =============================================================================
# assessment_core/data/schema.py
# Entity kinds, their Supabase tables and the fixed parent/child join graph
# =============================================================================
"""
Join graph (child ⇐ parent):

    hospital ⇐ department ⇐ staff ⇐ {assessment, work_log}
                          ⇐ patient
    hospital ⇐ {checklist_template, exam_template, training_material,
                accreditation_material, news_banner, admin_message,
                needs_assessment}

Every child table carries ``<parent>_id`` on the wire (``<parent>Id`` in the
tree). Arrays such as ``skillCategories`` or ``chatHistory`` are JSON columns
of their owning row and are not part of the graph.
"""

from __future__ import annotations
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from assessment_core.errors import SchemaError

ROOT_KIND = "hospital"


@dataclass(frozen=True)
class EntityKind:
    """One remote table and its place in the tree."""
    name: str
    table: str
    parent: Optional[str] = None
    collection: Optional[str] = None  # attribute on the parent node
    fields: Tuple[str, ...] = ()

    @property
    def foreign_key(self) -> Optional[str]:
        """Foreign-key column as stored remotely, e.g. ``hospital_id``."""
        return f"{self.parent}_id" if self.parent else None

    @property
    def parent_field(self) -> Optional[str]:
        """Foreign-key attribute on an in-memory node, e.g. ``hospitalId``."""
        return f"{self.parent}Id" if self.parent else None

    @property
    def is_root(self) -> bool:
        return self.parent is None


# Parent-first order; refresh, flatten and restore all rely on it.
KINDS: Dict[str, EntityKind] = {
    kind.name: kind
    for kind in (
        EntityKind(
            "hospital", "hospitals",
            fields=("name", "province", "city", "supervisorName",
                    "supervisorNationalId", "supervisorPassword"),
        ),
        EntityKind(
            "department", "departments", parent="hospital", collection="departments",
            fields=("name", "managerName", "managerNationalId", "managerPassword",
                    "staffCount", "bedCount", "patientEducationMaterials"),
        ),
        EntityKind(
            "staff", "staff", parent="department", collection="staff",
            fields=("name", "title", "nationalId", "password"),
        ),
        EntityKind(
            "assessment", "assessments", parent="staff", collection="assessments",
            fields=("month", "year", "skillCategories", "supervisorMessage",
                    "managerMessage", "templateId", "minScore", "maxScore",
                    "examSubmissions"),
        ),
        EntityKind(
            "work_log", "work_logs", parent="staff", collection="workLogs",
            fields=("month", "year", "entries", "totalHours", "notes"),
        ),
        EntityKind(
            "patient", "patients", parent="department", collection="patients",
            fields=("name", "nationalId", "password", "chatHistory"),
        ),
        EntityKind(
            "checklist_template", "checklist_templates", parent="hospital",
            collection="checklistTemplates",
            fields=("name", "categories", "minScore", "maxScore"),
        ),
        EntityKind(
            "exam_template", "exam_templates", parent="hospital",
            collection="examTemplates",
            fields=("name", "questions"),
        ),
        EntityKind(
            "training_material", "training_materials", parent="hospital",
            collection="trainingMaterials",
            fields=("month", "materials"),
        ),
        EntityKind(
            "accreditation_material", "accreditation_materials", parent="hospital",
            collection="accreditationMaterials",
            fields=("name", "type", "description", "filePath"),
        ),
        EntityKind(
            "news_banner", "news_banners", parent="hospital", collection="newsBanners",
            fields=("title", "description", "imageId"),
        ),
        EntityKind(
            "admin_message", "admin_messages", parent="hospital",
            collection="adminMessages",
            fields=("sender", "timestamp", "text", "file"),
        ),
        EntityKind(
            "needs_assessment", "needs_assessments", parent="hospital",
            collection="needsAssessments",
            fields=("month", "year", "topics"),
        ),
    )
}

TABLES: Tuple[str, ...] = tuple(kind.table for kind in KINDS.values())

# Keys that appear inside embedded JSON columns
EMBEDDED_FIELD_NAMES: Tuple[str, ...] = (
    "items", "description", "score", "examTemplateId", "examName", "answers",
    "questionId", "answer", "correctAnswer", "options", "totalCorrectableQuestions",
    "submissionDate", "materials", "type", "filePath", "topics", "title",
    "responses", "staffId", "staffName", "response", "sender", "timestamp",
    "text", "file", "createdAt", "updatedAt",
)


def get_kind(name: str) -> EntityKind:
    """Look up an entity kind by name."""
    try:
        return KINDS[name]
    except KeyError:
        raise SchemaError(f"Unknown entity kind: {name}", kind=name) from None


def children_of(name: str) -> List[EntityKind]:
    """Direct child kinds of ``name`` in declaration order."""
    return [kind for kind in KINDS.values() if kind.parent == name]


def child_collections(name: str) -> Tuple[str, ...]:
    """Attribute names holding rows owned by other tables."""
    return tuple(kind.collection for kind in children_of(name))


def all_field_names() -> Tuple[str, ...]:
    """Every in-memory field name used by the schema, sorted."""
    names = {"id"}
    for kind in KINDS.values():
        names.update(kind.fields)
        if kind.collection:
            names.add(kind.collection)
        if kind.parent_field:
            names.add(kind.parent_field)
    names.update(EMBEDDED_FIELD_NAMES)
    return tuple(sorted(names))


FIELD_NAMES: Tuple[str, ...] = all_field_names()


def new_id() -> str:
    """Client-side id for an entity that has not been written yet."""
    return uuid.uuid4().hex
