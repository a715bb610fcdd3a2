# =============================================================================
# tests/unit/test_assembler.py
# Unit Tests for tree assembly and flattening
# =============================================================================

import copy
import pytest

from assessment_core.data.assembler import (
    assemble,
    flatten,
    index_by_parent,
    rows_by_kind,
    strip_children,
)
from assessment_core.data.casing import to_local_shape


@pytest.fixture
def local_rows(sample_rows):
    """sample_rows keyed by kind name, in camelCase"""
    return {
        "hospital": to_local_shape(sample_rows["hospitals"]),
        "department": to_local_shape(sample_rows["departments"]),
        "staff": to_local_shape(sample_rows["staff"]),
        "assessment": to_local_shape(sample_rows["assessments"]),
        "work_log": to_local_shape(sample_rows["work_logs"]),
        "patient": to_local_shape(sample_rows["patients"]),
        "needs_assessment": to_local_shape(sample_rows["needs_assessments"]),
    }


@pytest.fixture
def two_hospital_rows():
    """Two hospitals with interleaved children"""
    return {
        "hospital": [{"id": "h1", "name": "Imam Reza"}, {"id": "h2", "name": "Ghaem"}],
        "department": [
            {"id": "d1", "hospitalId": "h1", "name": "ICU"},
            {"id": "d2", "hospitalId": "h2", "name": "ICU"},
            {"id": "d3", "hospitalId": "h1", "name": "ER"},
        ],
        "staff": [
            {"id": "s1", "departmentId": "d1"},
            {"id": "s2", "departmentId": "d2"},
            {"id": "s3", "departmentId": "d3"},
        ],
        "assessment": [
            {"id": "a1", "staffId": "s1"},
            {"id": "a2", "staffId": "s2"},
            {"id": "a3", "staffId": "s2"},
        ],
        "needs_assessment": [{"id": "n2", "hospitalId": "h2"}],
    }


class TestIndexByParent:
    """Test bucketing of child rows"""

    def test_keeps_input_order(self):
        rows = [{"id": "b", "staffId": "s1"}, {"id": "a", "staffId": "s1"}, {"id": "c", "staffId": "s2"}]
        index = index_by_parent(rows, "staffId")
        assert [r["id"] for r in index["s1"]] == ["b", "a"]
        assert [r["id"] for r in index["s2"]] == ["c"]

    def test_rows_without_parent_are_skipped(self):
        index = index_by_parent([{"id": "x"}], "staffId")
        assert dict(index) == {}


class TestAssemble:
    """Test joining flat rows into the hospital tree"""

    def test_join(self, local_rows):
        hospitals = assemble(local_rows["hospital"], local_rows)

        assert len(hospitals) == 1
        hospital = hospitals[0]
        assert [d["id"] for d in hospital["departments"]] == ["d1"]
        department = hospital["departments"][0]
        assert [s["id"] for s in department["staff"]] == ["s1", "s2"]
        assert [p["id"] for p in department["patients"]] == ["p1"]
        assert department["staff"][0]["assessments"][0]["id"] == "a1"
        assert department["staff"][1]["workLogs"][0]["id"] == "w1"
        assert hospital["needsAssessments"][0]["id"] == "n1"

    def test_children_land_under_their_own_parent_only(self, two_hospital_rows):
        hospitals = assemble(two_hospital_rows["hospital"], two_hospital_rows)

        by_id = {h["id"]: h for h in hospitals}
        assert [d["id"] for d in by_id["h1"]["departments"]] == ["d1", "d3"]
        assert [d["id"] for d in by_id["h2"]["departments"]] == ["d2"]

        placement = {
            staff["id"]: (hospital["id"], department["id"])
            for hospital in hospitals
            for department in hospital["departments"]
            for staff in department["staff"]
        }
        assert placement == {"s1": ("h1", "d1"), "s2": ("h2", "d2"), "s3": ("h1", "d3")}

        assessments = {
            a["id"]: staff["id"]
            for hospital in hospitals
            for department in hospital["departments"]
            for staff in department["staff"]
            for a in staff["assessments"]
        }
        assert assessments == {"a1": "s1", "a2": "s2", "a3": "s2"}
        assert [n["id"] for n in by_id["h2"]["needsAssessments"]] == ["n2"]
        assert by_id["h1"]["needsAssessments"] == []

    def test_every_collection_is_present(self, local_rows):
        hospital = assemble(local_rows["hospital"], local_rows)[0]
        for collection in ("checklistTemplates", "examTemplates", "trainingMaterials",
                           "accreditationMaterials", "newsBanners", "adminMessages"):
            assert hospital[collection] == []

    def test_foreign_key_is_kept(self, local_rows):
        department = assemble(local_rows["hospital"], local_rows)[0]["departments"][0]
        assert department["hospitalId"] == "h1"

    def test_orphans_are_excluded(self, local_rows):
        local_rows["staff"].append({"id": "s9", "departmentId": "missing", "name": "Ghost"})
        local_rows["assessment"].append({"id": "a9", "staffId": "s9", "month": "تیر"})

        hospitals = assemble(local_rows["hospital"], local_rows)

        staff_ids = [s["id"] for d in hospitals[0]["departments"] for s in d["staff"]]
        assert "s9" not in staff_ids
        assert "a9" not in str(hospitals)

    def test_inputs_are_not_mutated(self, local_rows):
        before = copy.deepcopy(local_rows)
        assemble(local_rows["hospital"], local_rows)
        assert local_rows == before

    def test_missing_kinds_are_empty(self):
        hospitals = assemble([{"id": "h1"}], {})
        assert hospitals[0]["departments"] == []


class TestFlatten:
    """Test the inverse walk"""

    def test_parent_first_order(self, local_rows):
        hospitals = assemble(local_rows["hospital"], local_rows)
        kinds = [kind for kind, _, _ in flatten(hospitals)]
        assert kinds.index("hospital") < kinds.index("department") < kinds.index("staff")
        assert kinds.index("staff") < kinds.index("assessment")

    def test_rows_are_stripped(self, local_rows):
        hospitals = assemble(local_rows["hospital"], local_rows)
        for kind, row, parent_id in flatten(hospitals):
            if kind == "department":
                assert "staff" not in row and "patients" not in row
                assert parent_id == "h1"

    def test_reassembles_to_same_tree(self, local_rows):
        hospitals = assemble(local_rows["hospital"], local_rows)
        rows = rows_by_kind(hospitals)
        assert assemble(rows["hospital"], rows) == hospitals


class TestStripChildren:
    """Test removal of table-owned collections"""

    def test_embedded_arrays_are_kept(self):
        staff = {"id": "s1", "assessments": [{"id": "a1"}], "workLogs": []}
        assessment = {"id": "a1", "skillCategories": [{"name": "x"}], "examSubmissions": []}

        assert strip_children("staff", staff) == {"id": "s1"}
        assert strip_children("assessment", assessment) == assessment
