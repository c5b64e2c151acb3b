import pytest

from packagebug.domain.models import Issue, parse_work_item
from packagebug.errors import MalformedMessageError


def test_parse_work_item_reads_four_fields_in_order():
    item = parse_work_item("42,github.com,pyk,byten")

    assert item.id == "42"
    assert item.key == ("github.com", "pyk", "byten")
    assert item.path == "github.com/pyk/byten"


@pytest.mark.parametrize("body", ["onlytwo,fields", "", "1,github.com,pyk,byten,extra"])
def test_parse_work_item_rejects_wrong_field_count(body):
    with pytest.raises(MalformedMessageError) as exc_info:
        parse_work_item(body)
    assert exc_info.value.body == body


def test_parse_work_item_rejects_empty_key_fields():
    with pytest.raises(MalformedMessageError):
        parse_work_item("42,github.com,,byten")


def test_issue_from_api_keeps_creator_and_urls():
    issue = Issue.from_api(
        {
            "id": 1001,
            "number": 7,
            "title": "panic on empty input",
            "url": "https://api.github.com/repos/pyk/byten/issues/7",
            "html_url": "https://github.com/pyk/byten/issues/7",
            "labels_url": "https://api.github.com/repos/pyk/byten/issues/7/labels{/name}",
            "user": {"login": "pyk", "id": 9, "html_url": "https://github.com/pyk"},
        }
    )

    assert issue.github_id == "1001"
    assert issue.number == 7
    assert issue.html_url == "https://github.com/pyk/byten/issues/7"
    assert issue.creator is not None
    assert issue.creator.username == "pyk"
    assert issue.creator.github_id == "9"
