import pytest

from conftest import FakeWattpad, run
from wattpad import StoryNotFound, WattpadError, extract_story_id, parse_legacy_parts


@pytest.mark.parametrize("url,expected", [
    ("https://www.wattpad.com/story/123456-some-title", "123456"),
    ("https://www.wattpad.com/story/123456", "123456"),
    ("https://www.wattpad.com/987654-chapter-one", "987654"),
    ("wattpad.com/story/42?utm=x", "42"),
    ("not a url", None),
    ("", None),
])
def test_extract_story_id(url, expected):
    assert extract_story_id(url) == expected


def test_parse_legacy_parts():
    raw = (
        "Array ( [parts] => Array ( [0] => Array ( 'id' => 11 'title' => 'Intro' ) "
        "[1] => Array ( 'id' => 12 ) ) )"
    )
    parts = parse_legacy_parts(raw)
    assert [(p.index, p.id, p.title) for p in parts] == [(1, "11", "Intro"), (2, "12", "Chapter 2")]
    assert parse_legacy_parts("") == []


async def _story(fake, url):
    async with fake.client() as client:
        return await client.fetch_story(url)


def test_fetch_story_v3(story_json):
    fake = FakeWattpad(story=story_json)
    info = run(_story(fake, "https://www.wattpad.com/story/123456-my-story"))
    assert info.title == "My Story"
    assert info.author == "writer"
    assert info.completed is True
    assert [c.id for c in info.chapters] == ["1", "2", "3"]
    assert info.chapters[2].length is None
    assert fake.calls["page"] == 0

    data = info.to_json()
    assert data["numParts"] == 3
    assert data["views"] == 1500
    assert data["votes"] == 42
    assert data["chapters"][0] == {"index": 1, "id": "1", "title": "One", "length": 100}


def test_fetch_story_scrapes_page_when_incomplete(story_json):
    story_json = dict(story_json, title="", cover="")
    page = (
        '<html><head>'
        '<meta property="og:title" content="Scraped Title">'
        '<meta property="og:image" content="https://img/cover.jpg">'
        '</head><body></body></html>'
    )
    fake = FakeWattpad(story=story_json, story_page=page)
    info = run(_story(fake, "https://www.wattpad.com/story/123456"))
    assert fake.calls["page"] == 1
    assert info.title == "Scraped Title"
    assert info.cover == "https://img/cover.jpg"
    assert len(info.chapters) == 3


def test_fetch_story_legacy_body():
    raw = "Array ( 'id' => 5 'title' => 'Only Part' )"
    fake = FakeWattpad(story=raw)
    info = run(_story(fake, "https://www.wattpad.com/story/5"))
    assert [(c.id, c.title) for c in info.chapters] == [("5", "Only Part")]
    assert info.num_parts == 1


def test_fetch_story_bad_url():
    with pytest.raises(StoryNotFound):
        run(_story(FakeWattpad(), "https://example.com/nothing"))


def test_fetch_story_upstream_failure():
    fake = FakeWattpad(story_status=500)
    with pytest.raises(WattpadError) as exc:
        run(_story(fake, "https://www.wattpad.com/story/123"))
    assert not isinstance(exc.value, StoryNotFound)
    assert "HTTP 500" in str(exc.value)
