"""Tests for reconcile/reporter.py: text and JSON output."""

from datetime import date, datetime, timedelta, timezone

from catalog_reconcile.catalog import Model, ModelLimits
from catalog_reconcile.reconcile import (
    Changeset,
    ChangeType,
    Conflict,
    FieldChange,
    FieldProvenance,
    ProvenanceConflict,
    ProvenanceInfo,
    ReconcileReport,
    ResourceType,
    RecordUpdate,
    SourceName,
    changeset_to_json,
    conflicts_to_json,
    format_changeset,
    format_conflict_diff,
    format_conflict_report,
    format_provenance_report,
    report_to_json,
)
from catalog_reconcile.reconcile.models import ReconcileStats
from catalog_reconcile.reconcile.reporter import format_value

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _info(source, value, minutes=0):
    return ProvenanceInfo(
        source=source,
        field="name",
        value=value,
        timestamp=T0 + timedelta(minutes=minutes),
    )


class TestFormatValue:
    def test_none(self):
        assert format_value(None) == "<none>"

    def test_string_quoted(self):
        assert format_value("GPT-4o") == "'GPT-4o'"

    def test_list(self):
        assert format_value(["text", "image"]) == '["text", "image"]'

    def test_date(self):
        assert format_value(date(2024, 5, 13)) == '"2024-05-13"'

    def test_boolean(self):
        assert format_value(False) == "false"


class TestConflictReport:
    """Tests for format_conflict_report()."""

    def test_empty(self):
        assert format_conflict_report([]) == "No conflicts."

    def test_header_counts(self):
        conflicts = [
            Conflict(path="name", base="A", ours="B", theirs="C"),
            Conflict(
                path="limits.context_window",
                base=1,
                ours=2,
                theirs=3,
                can_merge=True,
                suggested=3,
            ),
        ]

        text = format_conflict_report(conflicts)

        assert text.startswith("2 conflict(s): 1 auto-mergeable, 1 need a decision")
        assert "[manual] name" in text
        assert "[auto-merge] limits.context_window" in text
        assert "suggested: 3" in text

    def test_manual_has_no_suggestion_line(self):
        text = format_conflict_report([Conflict(path="name", ours="B", theirs="C")])

        assert "suggested" not in text
        assert "base:   <none>" in text


class TestConflictDiff:
    """Tests for format_conflict_diff()."""

    def test_string_diff(self):
        text = format_conflict_diff(
            Conflict(path="description", ours="Fast model", theirs="Faster model")
        )

        assert text.startswith("Conflict: description")
        assert "--- ours: description" in text
        assert "+++ theirs: description" in text
        assert "-Fast model" in text
        assert "+Faster model" in text

    def test_structured_diff(self):
        text = format_conflict_diff(
            Conflict(path="authors", ours=["openai"], theirs=["openai", "microsoft"])
        )

        assert '+  "microsoft"' in text

    def test_identical_text(self):
        text = format_conflict_diff(Conflict(path="name", ours="x", theirs="x"))

        assert "(no textual differences)" in text

    def test_suggestion_shown(self):
        text = format_conflict_diff(
            Conflict(path="limits.output_tokens", ours=1, theirs=2, can_merge=True, suggested=2)
        )

        assert text.endswith("Suggested merge: 2")


class TestConflictsToJson:
    def test_serialises_in_order(self):
        data = conflicts_to_json(
            [
                Conflict(path="metadata.release_date", ours=date(2024, 1, 1)),
                Conflict(path="name", ours="B"),
            ]
        )

        assert [d["path"] for d in data] == ["metadata.release_date", "name"]
        assert data[0]["ours"] == "2024-01-01"
        assert data[0]["type"] == "modified"
        assert data[1]["can_merge"] is False


class TestProvenanceReport:
    """Tests for format_provenance_report()."""

    def test_empty(self):
        assert format_provenance_report({}) == "No provenance recorded."

    def test_sorted_with_current(self):
        provenance = {
            "model.b.name": FieldProvenance(current=_info(SourceName.MODELS_DEV_HTTP, "B")),
            "model.a.name": FieldProvenance(current=_info(SourceName.LOCAL_CATALOG, "A")),
        }

        text = format_provenance_report(provenance)

        assert text.startswith("Provenance (2 field(s))")
        assert text.index("model.a.name") < text.index("model.b.name")
        assert "current: local_catalog = 'A' at 2025-01-01T00:00:00+00:00" in text

    def test_history_newest_first_and_truncated(self):
        history = [_info(SourceName.BASE, f"v{i}", i) for i in range(6)]
        provenance = {
            "model.a.name": FieldProvenance(
                current=_info(SourceName.THEIRS, "v6", 6), history=history
            )
        }

        text = format_provenance_report(provenance)

        assert "history (6):" in text
        assert text.index("'v5'") < text.index("'v4'")
        assert "'v1'" not in text
        assert "... (2 older)" in text

    def test_reason_shown(self):
        info = ProvenanceInfo(
            source=SourceName.OURS,
            field="name",
            value="x",
            timestamp=T0,
            reason="ours by default",
        )

        text = format_provenance_report({"model.a.name": FieldProvenance(current=info)})

        assert "reason:  ours by default" in text

    def test_conflicts_listed(self):
        conflict = ProvenanceConflict(
            sources=[SourceName.LOCAL_CATALOG, SourceName.PROVIDER_API],
            values=["GPT-4o", "gpt-4o"],
            selected=SourceName.LOCAL_CATALOG,
            reason="source priority",
        )
        entry = FieldProvenance(
            current=_info(SourceName.LOCAL_CATALOG, "GPT-4o"), conflicts=[conflict]
        )

        text = format_provenance_report({"model.a.name": entry})

        assert "conflicts (1):" in text
        assert "local_catalog='GPT-4o', provider_api='gpt-4o' -> local_catalog" in text
        assert "(source priority)" in text

    def test_no_conflict_section_without_conflicts(self):
        entry = FieldProvenance(current=_info(SourceName.LOCAL_CATALOG, "A"))

        assert "conflicts" not in format_provenance_report({"model.a.name": entry})


def _changeset():
    old, new = Model(id="b", name="Old"), Model(id="b", name="New")
    return Changeset(
        resource_type=ResourceType.MODEL,
        added=[Model(id="a")],
        updated=[
            RecordUpdate(
                id="b",
                existing=old,
                new=new,
                changes=[
                    FieldChange(
                        path="name", old="Old", new="New", source=SourceName.PROVIDER_API
                    ),
                    FieldChange(
                        path="limits.context_window",
                        old=None,
                        new=128000,
                        type=ChangeType.ADD,
                    ),
                ],
            )
        ],
        removed=[Model(id="c")],
    )


class TestChangesetOutput:
    """Tests for format_changeset() and changeset_to_json()."""

    def test_empty(self):
        assert format_changeset(Changeset(resource_type=ResourceType.MODEL)) == (
            "No changes detected"
        )

    def test_text(self):
        lines = format_changeset(_changeset()).splitlines()

        assert lines[0] == "Models: 1 added, 1 updated, 1 removed"
        assert lines[2:] == [
            "+ a",
            "~ b",
            "    ~ name: 'Old' -> 'New'  [provider_api]",
            "    + limits.context_window: <none> -> 128000",
            "- c",
        ]

    def test_json(self):
        data = changeset_to_json(_changeset())

        assert data["summary"] == {"added": 1, "updated": 1, "removed": 1, "total": 3}
        assert data["added"] == ["a"]
        assert data["removed"] == ["c"]
        assert data["updated"]["b"][0] == {
            "path": "name",
            "old": "Old",
            "new": "New",
            "type": "update",
            "source": "provider_api",
        }


class TestReportToJson:
    def test_structure(self):
        report = ReconcileReport(
            resource_type=ResourceType.MODEL,
            sources=[SourceName.LOCAL_CATALOG, SourceName.PROVIDER_API],
            primary=SourceName.PROVIDER_API,
            records=[Model(id="a", name="A")],
            provenance={
                "model.a.name": FieldProvenance(current=_info(SourceName.LOCAL_CATALOG, "A"))
            },
            stats=ReconcileStats(records_in=2, records_out=1, fields_tracked=1),
            started_at=T0.isoformat(),
            completed_at=T0.isoformat(),
        )

        data = report_to_json(report)

        assert data["resource_type"] == "model"
        assert data["sources"] == ["local_catalog", "provider_api"]
        assert data["primary"] == "provider_api"
        assert data["counts"]["records_out"] == 1
        assert data["records"] == [{"id": "a", "name": "A", "description": "", "authors": []}]
        assert data["provenance"]["model.a.name"]["current"]["source"] == "local_catalog"
        assert data["conflicted_fields"] == []
        assert data["changeset"] is None

    def test_changeset_included(self):
        report = ReconcileReport(
            resource_type=ResourceType.MODEL,
            records=[Model(id="a", limits=ModelLimits(context_window=1))],
            changeset=_changeset(),
            started_at=T0.isoformat(),
        )

        data = report_to_json(report)

        assert data["changeset"]["summary"]["total"] == 3
        assert data["counts"]["fields_conflicted"] == 0
