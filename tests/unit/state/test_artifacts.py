from __future__ import annotations

from packsync.core.state import ArtifactRecord, McpServerRef, diff_records
from packsync.core.state.artifacts import artifact_key, shell_key


def _record(**kwargs) -> ArtifactRecord:
    return ArtifactRecord(**kwargs)


def test_artifact_keys():
    assert artifact_key("files", ".claude/hooks/lint.sh") == "file:.claude/hooks/lint.sh"
    assert artifact_key("mcp_servers", McpServerRef("docs", "user")) == "mcp:docs"
    assert shell_key("web.setup") == "shell:web.setup"


def test_record_round_trip():
    record = _record(
        mcp_servers=[McpServerRef("docs", "project")],
        files=[".claude/agents/a.md"],
        packages=["jq"],
        checksums={"file:.claude/agents/a.md": "abc"},
    )

    assert ArtifactRecord.from_dict(record.to_dict()) == record


def test_from_dict_defaults_mcp_scope_and_skips_nameless():
    record = ArtifactRecord.from_dict({"mcpServers": [{"name": "docs"}, {"scope": "user"}, "junk"]})

    assert record.mcp_servers == [McpServerRef("docs", "local")]



def test_discard_drops_checksum():
    record = _record(files=["a"], checksums={"file:a": "1"})

    record.discard("files", "a")

    assert record.files == []
    assert record.checksums == {}


class TestDiff:
    def test_first_run_adds_everything(self):
        new = _record(files=["a"], packages=["jq"])

        diff = diff_records(None, new)

        assert diff.delta("files").added == ["a"]
        assert diff.delta("packages").added == ["jq"]
        assert diff.shell_runs == []

    def test_identical_records_are_noop(self):
        record = _record(files=["a"], checksums={"file:a": "1", "shell:x": "2"})

        diff = diff_records(record, record.copy())

        assert diff.shell_runs == []
        assert not any(d.added or d.removed or d.updated for d in diff.deltas.values())

    def test_removed_and_updated(self):
        old = _record(files=["a", "b"], checksums={"file:a": "1", "file:b": "1"})
        new = _record(files=["a", "c"], checksums={"file:a": "2", "file:c": "1"})

        diff = diff_records(old, new)
        delta = diff.delta("files")

        assert delta.added == ["c"]
        assert delta.removed == ["b"]
        assert delta.updated == ["a"]

    def test_shell_runs_only_when_new_or_changed(self):
        old = _record(checksums={"shell:a": "1", "shell:b": "1", "shell:gone": "1"})
        new = _record(checksums={"shell:a": "1", "shell:b": "2", "shell:c": "1"})

        assert sorted(diff_records(old, new).shell_runs) == ["shell:b", "shell:c"]
