import pytest

from tar_validator import metadata_validator, tar_parser
from tar_validator.models import Severity


def _codes(text):
    return [i.code for i in metadata_validator.validate(tar_parser.parse(text))]


def test_valid_metadata(make_tar):
    assert _codes(make_tar("# Test\n")) == []


def test_missing_frontmatter():
    issues = metadata_validator.validate(tar_parser.parse("# No frontmatter\n"))

    assert len(issues) == 1
    assert issues[0].code == "META001"
    assert issues[0].severity == Severity.ERROR
    assert issues[0].line == 1
    assert "type: Test Case" in issues[0].suggestion


def test_missing_type_and_owner():
    assert _codes("---\nmode: Standalone\n---\n") == ["META002", "META004"]


def test_invalid_type(make_tar):
    issues = metadata_validator.validate(tar_parser.parse(make_tar("", file_type="Test Thing", mode="")))

    assert [i.code for i in issues] == ["META003"]
    assert "'Test Thing'" in issues[0].message


def test_short_owner(make_tar):
    assert _codes(make_tar("", owner="X")) == ["META005"]


def test_non_string_owner():
    assert _codes("---\ntype: Test Data\nowner: 42\n---\n") == ["META005"]


@pytest.mark.parametrize("file_type", ["Test Case", "Test Suite", "Test Collection"])
def test_mode_required(make_tar, file_type):
    assert _codes(make_tar("", file_type=file_type, mode="")) == ["META006"]


def test_invalid_mode(make_tar):
    assert _codes(make_tar("", mode="Sometimes")) == ["META007"]


@pytest.mark.parametrize("file_type", ["Test Data", "Test Util"])
def test_mode_not_needed(make_tar, file_type):
    issues = metadata_validator.validate(tar_parser.parse(make_tar("", file_type=file_type)))

    assert [i.code for i in issues] == ["META008"]
    assert issues[0].severity == Severity.INFO


@pytest.mark.parametrize("file_type", ["Test Data", "Test Util"])
def test_no_mode_for_setup_files(make_tar, file_type):
    assert _codes(make_tar("", file_type=file_type, mode="")) == []


def test_helpers(make_tar):
    test_case = tar_parser.parse(make_tar(""))
    test_util = tar_parser.parse(make_tar("", file_type="Test Util", mode=""))

    assert metadata_validator.requires_aaa_structure(test_case)
    assert metadata_validator.can_have_asserts(test_case)
    assert not metadata_validator.requires_aaa_structure(test_util)
    assert not metadata_validator.can_have_asserts(test_util)


def test_rules():
    rules = metadata_validator.get_rules().to_dict()
    assert rules["name"] == "metadata"
    assert "Test Collection" in rules["options"]["valid_file_types"]
