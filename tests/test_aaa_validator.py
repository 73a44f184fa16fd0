from tar_validator import aaa_validator, tar_parser
from tar_validator.models import Severity


def _issues(text):
    return aaa_validator.validate(tar_parser.parse(text))


def test_complete_structure(load_fixture):
    assert _issues(load_fixture("CreateCustomerTest.mkd")) == []


def test_missing_sections(make_tar):
    issues = _issues(make_tar("## Notes\nNothing here.\n"))

    assert [(i.code, i.severity) for i in issues] == [
        ("AAA001", Severity.ERROR),
        ("AAA002", Severity.ERROR),
        ("AAA003", Severity.INFO),
    ]


def test_only_applies_to_test_cases(make_tar):
    for file_type in ("Test Data", "Test Util"):
        assert _issues(make_tar("## Notes\n", file_type=file_type, mode="")) == []
    for file_type in ("Test Suite", "Test Collection"):
        assert _issues(make_tar("## Notes\n", file_type=file_type)) == []


def test_section_order(make_tar):
    body = (
        "## Assert\n"
        "```\n"
        "Assert {$orderValue.Id} == 1\n"
        "```\n"
        "## Act\n"
        "```\n"
        "Get A.svc/B Into orderValue\n"
        "```\n"
    )
    issues = _issues(make_tar(body))

    assert [i.code for i in issues] == ["AAA003", "AAA004"]
    assert issues[1].severity == Severity.WARNING
    assert issues[1].line == 10
    assert '"Act"' in issues[1].message


def test_sections_without_commands(make_tar):
    issues = _issues(make_tar("## Arrange\nSetup.\n## Act\nJust words.\n## Assert\nMore words.\n"))

    assert [i.code for i in issues] == ["AAA005", "AAA006"]
    assert issues[0].line == 8
    assert issues[1].line == 10


def test_heading_words_do_not_count_as_commands(make_tar):
    issues = _issues(make_tar("## Arrange\n## Act: Call the API\nNothing yet.\n## Assert\nLater.\n"))
    assert [i.code for i in issues] == ["AAA005", "AAA006"]
