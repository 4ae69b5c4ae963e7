"""Unit tests for framefill.engine.frames — context codec and frame locators."""

from __future__ import annotations

import pytest

from framefill.dom import FramePage, load_page
from framefill.engine.frames import (
    ByIframeClass,
    ByIframeId,
    ByIframeIndex,
    ByIframeName,
    ByIframeSrcPattern,
    ByIframeTitle,
    Clue,
    FrameContextError,
    GenericIframe,
    RawIframeSelector,
    SrcPattern,
    TopFrame,
    decode,
    encode,
    extract_clues,
    frame_context,
    identify_frame,
    locator_from_context,
    parse_locator,
    raw_locator,
)
from framefill.models import TOP_FRAME


# ---------------------------------------------------------------------------
# 1. Codec
# ---------------------------------------------------------------------------

class TestCodec:
    """encode()/decode() wrap and unwrap raw iframe locators."""

    def test_encode_wraps_in_canonical_form(self):
        assert encode('iframe[name="billing"]') == (
            "document.querySelector('iframe[name=\"billing\"]').contentWindow.document"
        )

    def test_top_marker_passes_through(self):
        assert encode(TOP_FRAME) == TOP_FRAME
        assert encode(None) == TOP_FRAME
        assert encode("") == TOP_FRAME
        assert decode(TOP_FRAME) is None
        assert decode(None) is None

    def test_single_quote_is_escaped(self):
        ctx = encode("iframe[title=\"it's\"]")
        assert "it\\'s" in ctx
        assert decode(ctx) == "iframe[title=\"it's\"]"

    @pytest.mark.parametrize(
        "raw",
        [
            "iframe#main",
            'iframe[title="C:\\temp"]',
            "iframe[title='a\\'b']",
            'iframe[src*="x\\\\y"]',
            "div > iframe:nth-of-type(2)",
        ],
    )
    def test_round_trip(self, raw: str):
        assert decode(encode(raw)) == raw

    def test_double_quoted_form_decodes(self):
        assert decode('document.querySelector("iframe#pay").contentWindow.document') == "iframe#pay"
        assert decode('document.querySelector("iframe[title=\'it\'s\']").contentWindow.document') == (
            "iframe[title='it's']"
        )
        assert decode('document.querySelector("a\\"b").contentWindow.document') == 'a"b'

    def test_mixed_quotes_raise(self):
        with pytest.raises(FrameContextError):
            decode("document.querySelector('iframe#pay\").contentWindow.document")

    def test_non_canonical_string_raises(self):
        with pytest.raises(FrameContextError):
            decode("iframe#main")

    def test_empty_locator_inside_wrapper_raises(self):
        with pytest.raises(FrameContextError):
            decode("document.querySelector('').contentWindow.document")

    def test_raw_locator_is_lenient(self):
        assert raw_locator("iframe#main") == "iframe#main"
        assert raw_locator(encode("iframe#main")) == "iframe#main"
        assert raw_locator(TOP_FRAME) is None


# ---------------------------------------------------------------------------
# 2. Locator variants
# ---------------------------------------------------------------------------

class TestLocatorVariants:
    """Each variant serializes to a CSS selector and back."""

    def test_selectors(self):
        assert TopFrame().to_selector() == ""
        assert ByIframeId("main").to_selector() == "iframe#main"
        assert ByIframeName("billing").to_selector() == 'iframe[name="billing"]'
        assert ByIframeTitle("Shipping").to_selector() == 'iframe[title="Shipping"]'
        assert ByIframeClass("embed").to_selector() == "iframe.embed"
        assert ByIframeIndex(2).to_selector() == "iframe:nth-of-type(2)"
        assert GenericIframe().to_selector() == "iframe"

    def test_src_pattern_selector(self):
        locator = ByIframeSrcPattern((SrcPattern("*=", "pay.example.net"), SrcPattern("*=", "card.html")))
        assert locator.to_selector() == 'iframe[src*="pay.example.net"][src*="card.html"]'
        assert locator.kind == "*="
        assert locator.value == "pay.example.net"

    def test_top_frame_context_is_marker(self):
        assert TopFrame().to_context() == TOP_FRAME

    @pytest.mark.parametrize(
        "locator",
        [
            ByIframeId("main"),
            ByIframeId("1st-frame"),
            ByIframeId("my frame"),
            ByIframeName('say "hi"'),
            ByIframeTitle("Payment details"),
            ByIframeClass("embed"),
            ByIframeIndex(3),
            ByIframeSrcPattern((SrcPattern("^=", "https://pay"),)),
            GenericIframe(),
        ],
    )
    def test_parse_locator_recovers_variant(self, locator):
        assert parse_locator(locator.to_selector()) == locator

    def test_locator_from_context(self):
        assert locator_from_context(ByIframeName("billing").to_context()) == ByIframeName("billing")
        assert locator_from_context(TOP_FRAME) == TopFrame()

    def test_unknown_shape_is_raw(self):
        locator = parse_locator("div.wrapper > iframe")
        assert locator == RawIframeSelector("div.wrapper > iframe")
        assert locator.to_selector() == "div.wrapper > iframe"


# ---------------------------------------------------------------------------
# 3. Clue extraction
# ---------------------------------------------------------------------------

class TestExtractClues:
    """extract_clues() pulls claims out of hand-written selectors."""

    def test_bare_id(self):
        assert extract_clues("#payment") == (Clue("bare_id", "payment"),)

    def test_name_inside_compound(self):
        assert Clue("name", "billing") in extract_clues("div > iframe[name='billing']")

    def test_src_ops(self):
        clues = extract_clues('iframe[src^="https://pay"][src$=".html"]')
        assert Clue("src", "https://pay", "^=") in clues
        assert Clue("src", ".html", "$=") in clues

    def test_nothing_to_extract(self):
        assert extract_clues("div > iframe") == ()


# ---------------------------------------------------------------------------
# 4. identify_frame()
# ---------------------------------------------------------------------------

class TestIdentifyFrame:
    """identify_frame() names a document's own embedding iframe."""

    def test_top_document(self, checkout_page: FramePage):
        assert identify_frame(checkout_page.top) == TopFrame()
        assert frame_context(checkout_page.top) == TOP_FRAME

    def test_by_name(self, checkout_page: FramePage):
        billing = checkout_page.frame(1)
        assert identify_frame(billing) == ByIframeName("billing")
        assert frame_context(billing) == encode('iframe[name="billing"]')

    def test_by_title(self, checkout_page: FramePage):
        assert identify_frame(checkout_page.frame(2)) == ByIframeTitle("Shipping")

    def test_cross_origin_uses_own_hostname(self, checkout_page: FramePage):
        pay = checkout_page.frame(3)
        assert identify_frame(pay) == ByIframeSrcPattern((SrcPattern("*=", "pay.example.net"),))

    def test_id_wins_over_name(self):
        page = load_page('<iframe id="main" name="m" srcdoc="<p>x</p>"></iframe>', "https://a.test/")
        assert identify_frame(page.frame(1)) == ByIframeId("main")

    def test_first_class(self):
        page = load_page('<iframe class="embed wide" srcdoc="<p>x</p>"></iframe>', "https://a.test/")
        assert identify_frame(page.frame(1)) == ByIframeClass("embed")

    def test_same_origin_src_uses_host_and_last_segment(self):
        page = load_page(
            '<iframe src="/embed/form.html"></iframe>',
            "https://a.test/page",
            {"https://a.test/embed/form.html": "<p>form</p>"},
        )
        assert identify_frame(page.frame(1)) == ByIframeSrcPattern(
            (SrcPattern("*=", "a.test"), SrcPattern("*=", "form.html"))
        )

    def test_index_among_siblings(self):
        html = '<div><iframe srcdoc="<p>a</p>"></iframe><iframe srcdoc="<p>b</p>"></iframe></div>'
        page = load_page(html, "https://a.test/")
        assert identify_frame(page.frame(1)) == ByIframeIndex(1)
        assert identify_frame(page.frame(2)) == ByIframeIndex(2)

    def test_identified_locator_selects_its_iframe(self, checkout_page: FramePage):
        for frame in checkout_page.frames()[1:3]:
            selector = identify_frame(frame).to_selector()
            assert checkout_page.top.query(selector) is frame.frame_element
