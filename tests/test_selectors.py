"""Unit tests for framefill.engine.selectors — SelectorSynthesizer."""

from __future__ import annotations

from framefill.dom import FrameDocument, FramePage
from framefill.engine.frames import encode
from framefill.engine.selectors import (
    SelectorSynthesizer,
    split_scoped,
    synthesize,
    synthesize_scoped,
    validate_uniqueness,
)
from framefill.models import TOP_FRAME


def _doc(body: str) -> FrameDocument:
    return FrameDocument.from_html(f"<html><body>{body}</body></html>", "https://a.test/")


# ---------------------------------------------------------------------------
# 1. Id and name
# ---------------------------------------------------------------------------

class TestIdAndName:
    """Unique ids and names are used as-is."""

    def test_ids_in_top_document(self, checkout_page: FramePage):
        top = checkout_page.top
        assert synthesize(top.query("#email"), top) == "#email"
        assert synthesize(top.query("#phone"), top) == "#phone"
        assert synthesize_scoped(top.query("#email"), top) == "#email"

    def test_unique_name(self):
        doc = _doc('<input name="zip"><input name="city">')
        assert synthesize(doc.query("input"), doc) == '[name="zip"]'

    def test_duplicate_id_is_skipped(self):
        doc = _doc('<input id="dup" name="first"><input id="dup" name="second">')
        assert synthesize(doc.query_all("input")[1], doc) == '[name="second"]'

    def test_id_with_special_characters_is_escaped(self):
        doc = _doc('<input id="user.email">')
        selector = synthesize(doc.query("input"), doc)
        assert selector == "#user\\.email"
        assert doc.query(selector) is doc.query("input")


# ---------------------------------------------------------------------------
# 2. Type and classes
# ---------------------------------------------------------------------------

class TestTypeAndClasses:
    """Class tokens are appended until the match count is small enough."""

    def test_type_alone_when_unique(self):
        doc = _doc('<input type="text"><input type="checkbox">')
        assert synthesize(doc.query("input"), doc) == 'input[type="text"]'

    def test_classes_appended_until_unique(self):
        inputs = "".join('<input type="text" class="a">' for _ in range(4))
        doc = _doc(inputs + '<input type="text" class="a special">')
        target = doc.query(".special")
        assert synthesize(target, doc) == 'input[type="text"].a.special'

    def test_threshold_is_configurable(self):
        assert SelectorSynthesizer().threshold == 3
        assert SelectorSynthesizer(5).threshold == 5


# ---------------------------------------------------------------------------
# 3. Parent and index fallbacks
# ---------------------------------------------------------------------------

class TestFallbacks:
    """Parent context and sibling index disambiguate repeated elements."""

    def test_parent_token_disambiguates(self):
        doc = _doc('<div id="a"><input type="text"></div><div id="b"><input type="text"></div>')
        target = doc.query("#b input")
        assert synthesize(target, doc) == '#b > input[type="text"]'

    def test_index_among_typed_siblings(self):
        doc = _doc('<div class="row"><input type="text"><input type="text"></div>')
        target = doc.query_all("input")[1]
        selector = synthesize(target, doc)
        assert selector == '.row > input[type="text"]:nth-child(2 of input[type="text"])'
        assert doc.count(selector) == 1
        assert doc.query(selector) is target

    def test_index_among_untyped_siblings(self):
        doc = _doc("<div><select></select><select></select></div>")
        target = doc.query_all("select")[1]
        selector = synthesize(target, doc)
        assert selector == "div > select:nth-of-type(2)"
        assert doc.query(selector) is target

    def test_empty_type_counts_as_untyped(self):
        doc = _doc('<div class="row"><input type=""><input><input type="text"></div>')
        empty, bare, _ = doc.query_all("input")
        untyped = 'input:is(:not([type]), [type=""])'
        assert synthesize(empty, doc) == f".row > input:nth-child(1 of {untyped})"
        assert synthesize(bare, doc) == f".row > input:nth-child(2 of {untyped})"
        assert doc.query(synthesize(empty, doc)) is empty
        assert doc.query(synthesize(bare, doc)) is bare

    def test_never_raises_without_unique_selector(self):
        doc = _doc("<p>a</p><p>a</p>")
        selector = synthesize(doc.query_all("p")[0], doc)
        assert isinstance(selector, str) and selector


# ---------------------------------------------------------------------------
# 4. Frame scoping
# ---------------------------------------------------------------------------

class TestScoping:
    """Selectors in child frames carry the frame locator."""

    def test_scoped_selector_in_named_frame(self, checkout_page: FramePage):
        billing = checkout_page.frame(1)
        card = billing.query(".cc")
        scoped = synthesize_scoped(card, billing)
        assert scoped == 'iframe[name="billing"] >>> input[type="text"].cc'

    def test_split_scoped(self):
        ctx, selector = split_scoped('iframe[name="billing"] >>> input[type="text"].cc')
        assert ctx == encode('iframe[name="billing"]')
        assert selector == 'input[type="text"].cc'

    def test_split_unscoped_is_top(self):
        assert split_scoped("#email") == (TOP_FRAME, "#email")


# ---------------------------------------------------------------------------
# 5. validate_uniqueness()
# ---------------------------------------------------------------------------

class TestValidateUniqueness:
    def test_counts(self, checkout_page: FramePage):
        top = checkout_page.top
        assert validate_uniqueness("#email", top) == 1
        assert validate_uniqueness("input", top) == 2
        assert validate_uniqueness("#missing", top) == 0

    def test_invalid_selector_counts_zero(self, checkout_page: FramePage):
        assert validate_uniqueness("[[", checkout_page.top) == 0
