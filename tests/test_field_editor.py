import pytest

from models import ClassParam
from services.field_editor import class_card_editor
from services.mutation_controller import COMMITTED, ROLLED_BACK, MutationResult
from utils.error_handlers import ValidationError


@pytest.fixture
def commits():
    return []


@pytest.fixture
def editor(commits):
    record = ClassParam(id="c1", code="CSC", name="116", section="001", instructor="Kim,Lee")

    def on_commit(class_param):
        commits.append(class_param)
        return MutationResult(status=COMMITTED)

    return class_card_editor(record, on_commit)


def test_change_splits_course_code(editor, commits):
    assert editor.change("code", "ma 141")
    assert editor.form.code == "MA"
    assert editor.form.name == "141"
    assert editor.displayed == {"code": "ma 141"}
    assert commits == []


def test_blur_commits_when_all_valid(editor, commits):
    editor.change("section", "002")
    result = editor.blur()

    assert result.status == COMMITTED
    assert commits[0].section == "002"
    assert editor.original.section == "002"
    assert editor.modified == set()


def test_blur_restores_when_invalid(editor, commits):
    editor.change("section", "02")
    editor.change("instructor", "Park,Min")
    assert not editor.is_valid

    assert editor.blur() is None
    assert commits == []
    assert editor.form.section == "001"
    assert editor.form.instructor == "Kim,Lee"
    assert editor.is_valid


def test_blur_without_changes_is_noop(editor, commits):
    assert editor.blur() is None
    assert commits == []


def test_failed_commit_resets_to_original():
    record = ClassParam(id="c1", code="CSC", name="116")
    editor = class_card_editor(record, lambda c: MutationResult(status=ROLLED_BACK, error="x"))
    editor.change("code", "MA141")
    result = editor.blur()

    assert result.status == ROLLED_BACK
    assert editor.form.code == "CSC"


def test_unknown_field_rejected(editor):
    with pytest.raises(ValueError):
        editor.change("color", "#fff")


def test_empty_optional_fields_are_valid(editor):
    assert editor.change("section", "")
    assert editor.change("instructor", "  ")
    assert editor.is_valid


def test_only_validated_fields_are_editable(editor, commits):
    for field in ("to_dict", "id", ["code"]):
        with pytest.raises(ValidationError):
            editor.change(field, "hijack")

    assert editor.modified == set()
    assert editor.form.id == "c1"
    assert editor.to_dict()["form"]["id"] == "c1"

    assert editor.change("code", "MA141")
    editor.blur()
    assert [c.id for c in commits] == ["c1"]


def test_non_string_value_is_invalid_not_an_error(editor):
    assert editor.change("section", 1) is False
    assert editor.validation["section"] is False
    assert editor.form.section == "001"
