import pytest

from tar_validator import naming_validator, tar_parser
from tar_validator.models import Severity


def _block(*lines):
    return "```\n" + "\n".join(lines) + "\n```\n"


def test_fixture_has_no_naming_issues(load_fixture):
    assert naming_validator.validate(tar_parser.parse(load_fixture("CreateCustomerTest.mkd"))) == []


def test_invalid_names(make_tar):
    doc = tar_parser.parse(make_tar(_block(
        "Eval 1 Into order_total",
        "Eval 2 Into x",
        "Eval 3 Into data",
        "Eval 4 Into OrderCount",
        "Print {$order_total} {$x} {$data} {$OrderCount}",
    )))
    issues = naming_validator.validate(doc)

    assert [(i.code, i.line) for i in issues] == [
        ("NAME001", 7), ("NAME001", 8), ("NAME001", 9), ("NAME001", 10),
    ]
    assert all(i.severity == Severity.ERROR for i in issues)
    assert issues[0].suggestion == 'Use camelCase: "orderTotal"'
    assert "at least 2" in issues[1].suggestion
    assert "reserved word" in issues[2].suggestion
    assert issues[3].suggestion == 'Use camelCase: "orderCount"'


def test_use_before_definition_and_unused(make_tar):
    doc = tar_parser.parse(make_tar(_block(
        "Print {$laterValue}",
        "Eval 1 Into laterValue",
        "Eval 2 Into unusedValue",
        "Print {$input.Company} {$Today()} {$GlobalConfig.url}",
    )))
    issues = naming_validator.validate(doc)

    assert [(i.code, i.severity, i.line) for i in issues] == [
        ("NAME002", Severity.WARNING, 7),
        ("NAME003", Severity.INFO, 9),
    ]
    assert '"laterValue"' in issues[0].message


def test_capitalized_usage_is_not_reported_as_undefined(make_tar):
    doc = tar_parser.parse(make_tar(_block("Print {$CustomerNo} {$orderNo}")))
    issues = naming_validator.validate(doc)

    assert [(i.code, i.line) for i in issues] == [("NAME001", 7), ("NAME002", 7)]
    assert '"CustomerNo"' in issues[0].message
    assert '"orderNo"' in issues[1].message


def test_built_in_defined_by_document_is_checked(make_tar):
    doc = tar_parser.parse(make_tar(_block("Get A.svc/B Into result")))

    verdicts = naming_validator.check_variable_names(doc)
    assert [(v["name"], v["valid"]) for v in verdicts] == [("result", False)]
    assert [i.code for i in naming_validator.validate(doc)] == ["NAME001", "NAME003"]


def test_built_ins_are_not_reported(make_tar):
    doc = tar_parser.parse(make_tar(_block("Print {#input.Company} {$response.Id} {$HEADER.x}")))

    assert naming_validator.check_variable_names(doc) == []
    assert naming_validator.validate(doc) == []


@pytest.mark.parametrize("name, expected", [
    ("order_total", "orderTotal"),
    ("order-total", "orderTotal"),
    ("OrderTotal", "orderTotal"),
    ("ORDER_TOTAL", "orderTotal"),
])
def test_to_camel_case(name, expected):
    assert naming_validator.to_camel_case(name) == expected


def test_check_name():
    assert naming_validator.check_name("customerId") == (True, None)
    valid, suggestion = naming_validator.check_name("a" * 51)
    assert not valid
    assert "at most 50" in suggestion
