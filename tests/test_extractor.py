import html
import json

from src.archive import extractor

from helpers import ORIGIN, card, descriptor, landing_page


def test_card_fields():
    records = extractor.extract_records(card("abc"), subject="alice", origin=ORIGIN)
    assert len(records) == 1
    r = records[0]
    assert r.id == "abc"
    assert r.page_url == f"{ORIGIN}/watch/abc"
    assert r.thumbnail_url == "https://cdn.example/abc.jpg"
    assert r.duration == "12:34"
    assert r.relative_date == "3 days ago"
    assert r.view_count == "120"
    assert r.title == "alice archive video"
    assert r.embed_url == ""


def test_missing_duration_keeps_record():
    r = extractor.extract_records(card("abc", duration=None), origin=ORIGIN)[0]
    assert r.duration is None
    assert r.page_url == f"{ORIGIN}/watch/abc"
    assert r.thumbnail_url
    assert r.relative_date == "3 days ago"


def test_missing_anchor_skips_only_that_card():
    markup = card("one") + card("two", href="") + card("three")
    ids = [r.id for r in extractor.extract_records(markup, origin=ORIGIN)]
    assert ids == ["one", "three"]


def test_missing_media_gives_empty_thumbnail():
    markup = '<section class="video_item"><a href="/watch/x">x</a></section>'
    r = extractor.extract_records(markup, origin=ORIGIN)[0]
    assert r.thumbnail_url == ""


def test_optional_info_fields():
    r = extractor.extract_records(card("x", info="uploaded recently"), origin=ORIGIN)[0]
    assert r.relative_date is None
    assert r.view_count is None


def test_absolute_url_normalization():
    assert extractor.absolute_url("/watch/abc", ORIGIN) == f"{ORIGIN}/watch/abc"
    assert extractor.absolute_url("https://other.example/x", ORIGIN) == "https://other.example/x"
    assert extractor.absolute_url("//cdn.example/x", ORIGIN) == "https://cdn.example/x"


def test_absolute_href_passes_through():
    r = extractor.extract_records(card("x", href="https://other.example/watch/x"), origin=ORIGIN)[0]
    assert r.page_url == "https://other.example/watch/x"


def test_thumbnail_attribute_priority():
    markup = (
        '<div class="video-card"><a href="/watch/a"></a>'
        '<img src="https://cdn.example/src.jpg" data-src="https://cdn.example/lazy.jpg"></div>'
        '<div class="video-card"><a href="/watch/b"></a>'
        '<img data-src="https://cdn.example/lazy.jpg"></div>'
    )
    thumbs = [r.thumbnail_url for r in extractor.extract_records(markup, origin=ORIGIN)]
    assert thumbs == ["https://cdn.example/src.jpg", "https://cdn.example/lazy.jpg"]


def test_both_markup_variants_in_document_order():
    markup = (
        card("first")
        + '<div class="video-card"><a href="/watch/second" title="Second"></a></div>'
        + card("third")
    )
    records = extractor.extract_records(markup, origin=ORIGIN)
    assert [r.id for r in records] == ["first", "second", "third"]
    assert records[1].title == "Second"


def test_extract_total_priority():
    assert extractor.extract_total("<p>Showing 1 to 20 of 1,025 results</p>") == 1025
    assert extractor.extract_total('<div data-x=\'{"total": 40}\'></div>') == 40
    assert extractor.extract_total('<div data-x=\'{"count": 7}\'></div>') == 7
    assert extractor.extract_total('<p>of 3</p><div data-x=\'{"total": 40}\'></div>') == 3
    assert extractor.extract_total("<p>nothing here</p>") is None


def test_csrf_and_listing_component():
    soup = extractor.soupify(landing_page("alice", [card("a")], csrf="tok"))
    assert extractor.extract_csrf_token(soup) == "tok"
    comp = extractor.find_listing_component(soup)
    assert comp["name"] == "profile.model-videos"
    assert comp["fingerprint"]["id"] == "wid123"
    assert comp["serverMemo"]["checksum"] == "c0ffee"


def test_listing_component_ignores_other_components():
    other = descriptor("alice", name="layout.navbar")
    soup = extractor.soupify(landing_page("alice", [], component=other))
    assert extractor.find_listing_component(soup) is None


def test_listing_component_falls_back_to_wire_id():
    comp = descriptor("alice", wire_id="")
    soup = extractor.soupify(landing_page("alice", [], component=comp))
    assert extractor.find_listing_component(soup)["fingerprint"]["id"] == "wid123"


def test_double_escaped_descriptor():
    attr = html.escape(html.escape(json.dumps(descriptor("bob")), quote=True), quote=True)
    soup = extractor.soupify(f'<section wire:initial-data="{attr}"></section>')
    assert extractor.find_listing_component(soup)["serverMemo"]["data"]["username"] == "bob"


def test_descriptor_values_with_entity_text_survive():
    comp = descriptor("bob")
    comp["serverMemo"]["data"]["bio"] = 'says &quot;hi&quot; &#169;'
    soup = extractor.soupify(landing_page("bob", [], component=comp))
    memo = extractor.find_listing_component(soup)["serverMemo"]
    assert memo["data"]["bio"] == 'says &quot;hi&quot; &#169;'
    assert memo == comp["serverMemo"]


def test_listing_component_with_non_string_name_is_skipped():
    odd = descriptor("alice")
    odd["fingerprint"]["name"] = 42
    good = descriptor("alice")
    markup = (
        f'<div wire:initial-data="{html.escape(json.dumps(odd), quote=True)}"></div>'
        f'<section wire:initial-data="{html.escape(json.dumps(good), quote=True)}"></section>'
    )
    comp = extractor.find_listing_component(extractor.soupify(markup))
    assert comp["name"] == "profile.model-videos"
    assert extractor.find_listing_component(extractor.soupify(markup[:markup.index("<section")])) is None
