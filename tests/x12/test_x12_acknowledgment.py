import pytest

from cdm import TranslationIssue
from edi_defs import AckStatus, GroupAckCode, IssueCode
from erp_models import InterpretationOutcome
from x12_transaction_sets import build_997_segments, group_ack_code

pytestmark = pytest.mark.unit


def _outcome(transaction_id: str, status: AckStatus, errors=None) -> InterpretationOutcome:
    return InterpretationOutcome(
        transaction_id=transaction_id,
        transaction_set="850",
        status=status,
        errors=errors or [],
    )


@pytest.fixture
def bad_date_issue() -> TranslationIssue:
    return TranslationIssue(
        code=IssueCode.ELEMENT_ERROR,
        message="Element BEG05 (Date) value '2024011' failed check: invalid date",
        segment_id="BEG",
        segment_position=2,
        element_position=5,
        syntax_error_code="8",
    )


def test_997_reports_each_transaction_set(bad_date_issue: TranslationIssue):
    missing = TranslationIssue(code=IssueCode.MISSING_REQUIRED_FIELD, message="Required field 'orderNumber' is missing")
    mismatch = TranslationIssue(code=IssueCode.CONTROL_TOTAL_MISMATCH, message="Control total mismatch")
    outcomes = [
        _outcome("0001", AckStatus.ACCEPTED),
        _outcome("0002", AckStatus.REJECTED, [bad_date_issue, missing]),
        _outcome("0003", AckStatus.ACCEPTED_WITH_ERRORS, [mismatch]),
    ]

    assert build_997_segments(outcomes, "PO", "17") == [
        ["AK1", "PO", "17"],
        ["AK2", "850", "0001"],
        ["AK5", "A"],
        ["AK2", "850", "0002"],
        ["AK3", "BEG", "2", "", "8"],
        ["AK4", "5", "", "8"],
        ["AK5", "R", "5"],
        ["AK2", "850", "0003"],
        ["AK5", "E", "5"],
        ["AK9", "P", "3", "3", "2"],
    ]

def test_997_reports_unrecognized_segment():
    issue = TranslationIssue(
        code=IssueCode.SEGMENT_ERROR,
        message="Segment 'ZZZ' is not defined for transaction set 850",
        segment_id="ZZZ",
        segment_position=4,
        syntax_error_code="6",
    )
    body = build_997_segments([_outcome("0001", AckStatus.ACCEPTED_WITH_ERRORS, [issue])], "PO", "1")
    assert ["AK3", "ZZZ", "4", "", "6"] in body
    assert ["AK5", "E", "5"] in body

def test_997_carries_transaction_level_syntax_codes():
    unsupported = TranslationIssue(
        code=IssueCode.UNSUPPORTED_TRANSACTION_SET,
        message="Unsupported transaction set: '855'",
        segment_id="ST",
        segment_position=1,
        syntax_error_code="1",
    )
    count = TranslationIssue(code=IssueCode.ENVELOPE_ERROR, message="SE01 mismatch", syntax_error_code="4")
    body = build_997_segments(
        [_outcome("0002", AckStatus.REJECTED, [unsupported]), _outcome("0003", AckStatus.ACCEPTED_WITH_ERRORS, [count])],
        "PO",
        "1",
    )
    assert body[2] == ["AK5", "R", "1"]
    assert body[4] == ["AK5", "E", "4"]
    assert body[-1] == ["AK9", "P", "2", "2", "1"]

@pytest.mark.parametrize("statuses, expected", [
    ([AckStatus.ACCEPTED, AckStatus.ACCEPTED], GroupAckCode.ACCEPTED),
    ([AckStatus.ACCEPTED, AckStatus.ACCEPTED_WITH_ERRORS], GroupAckCode.ACCEPTED_WITH_ERRORS),
    ([AckStatus.ACCEPTED, AckStatus.REJECTED], GroupAckCode.PARTIALLY_ACCEPTED),
    ([AckStatus.REJECTED, AckStatus.REJECTED], GroupAckCode.REJECTED),
    ([], GroupAckCode.ACCEPTED),
])
def test_group_ack_code(statuses, expected: GroupAckCode):
    outcomes = [_outcome(str(i), status) for i, status in enumerate(statuses)]
    assert group_ack_code(outcomes) == expected
