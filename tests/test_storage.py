"""Unit tests for framefill.storage — SessionStore and override merging."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from framefill.engine.descriptors import ElementDescriptor
from framefill.engine.frames import encode
from framefill.models import TOP_FRAME
from framefill.storage import (
    SessionStore,
    SessionStoreError,
    apply_overrides,
    find_override,
    override_key,
)

BILLING_CTX = encode('iframe[name="billing"]')


def _email() -> ElementDescriptor:
    return ElementDescriptor("Email", "#email", TOP_FRAME, "input[email]")


def _card() -> ElementDescriptor:
    return ElementDescriptor("Card number", 'input[type="text"].cc', BILLING_CTX, "input[text]")


@pytest.fixture
def store(tmp_path: Path) -> SessionStore:
    return SessionStore(tmp_path / ".framefill" / "sessions.json")


# ---------------------------------------------------------------------------
# 1. Pages and extraction groups
# ---------------------------------------------------------------------------

class TestPages:
    """save_extraction() upserts groups within a page record."""

    def test_empty_store(self, store: SessionStore):
        assert store.pages() == {}
        assert store.overrides() == {}

    def test_save_creates_page(self, store: SessionStore):
        record = store.save_extraction("p1", "Checkout", "https://shop.example.com/", "form#checkout", 1, [_email()])
        assert record["pageName"] == "Checkout"
        assert record["created"] == record["lastUpdated"]
        assert store.path.exists()
        assert store.descriptors("p1") == [_email()]

    def test_same_group_is_replaced(self, store: SessionStore):
        store.save_extraction("p1", "Checkout", "u", "s", 1, [_email()], timestamp="t1")
        store.save_extraction("p1", "Checkout", "u", "s", 1, [_card()], timestamp="t2")
        record = store.page("p1")
        assert len(record["extractions"]) == 1
        assert record["created"] == "t1"
        assert record["lastUpdated"] == "t2"
        assert store.descriptors("p1") == [_card()]

    def test_new_group_is_appended(self, store: SessionStore):
        store.save_extraction("p1", "Checkout", "u", "s", 1, [_email()])
        store.save_extraction("p1", "Checkout", "u", "s", 2, [_card()])
        assert [g["groupId"] for g in store.page("p1")["extractions"]] == [1, 2]
        assert store.descriptors() == [_email(), _card()]

    def test_delete_and_clear(self, store: SessionStore):
        store.save_extraction("p1", "A", "u", "s", 1, [_email()])
        assert store.delete_page("p1") is True
        assert store.delete_page("p1") is False
        store.save_extraction("p2", "B", "u", "s", 1, [_email()])
        store.clear()
        assert store.pages() == {}

    def test_corrupt_file_raises(self, store: SessionStore):
        store.path.parent.mkdir(parents=True)
        store.path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SessionStoreError, match="not valid JSON"):
            store.load()

    def test_file_is_indented_json(self, store: SessionStore):
        store.save_extraction("p1", "A", "u", "s", 1, [_email()])
        data = json.loads(store.path.read_text(encoding="utf-8"))
        assert data["extractedData"]["p1"]["extractions"][0]["elements"][0]["contextDocument"] == TOP_FRAME
        assert store.path.read_text(encoding="utf-8").startswith("{\n  ")


# ---------------------------------------------------------------------------
# 2. Overrides
# ---------------------------------------------------------------------------

class TestOverrides:
    """Pending edits are keyed by frame context and selector."""

    def test_override_key(self):
        assert override_key(None, "#email") == "document >>> #email"
        assert override_key(BILLING_CTX, ".cc") == f"{BILLING_CTX} >>> .cc"

    def test_set_override_merges_fields(self, store: SessionStore):
        store.set_override(TOP_FRAME, "#email", label="E-mail")
        entry = store.set_override(TOP_FRAME, "#email", sample="a@b.c", group=None)
        assert entry == {"label": "E-mail", "sample": "a@b.c"}

    def test_set_override_context_document_field(self, store: SessionStore):
        store.set_override(TOP_FRAME, "#email", label="E-mail", context_document=None)
        entry = store.set_override(TOP_FRAME, "#email", context_document=BILLING_CTX)
        assert entry == {"label": "E-mail", "contextDocument": BILLING_CTX}
        assert store.overrides() == {override_key(TOP_FRAME, "#email"): entry}
        updated = apply_overrides(_email(), store.overrides())
        assert updated.frame_context == BILLING_CTX
        assert updated.label == "E-mail"

    def test_unknown_field_raises(self, store: SessionStore):
        with pytest.raises(SessionStoreError, match="Unknown override field"):
            store.set_override(TOP_FRAME, "#email", colour="red")

    def test_delete_override(self, store: SessionStore):
        store.set_override(TOP_FRAME, "#email", label="E-mail")
        assert store.delete_override(TOP_FRAME, "#email") is True
        assert store.delete_override(TOP_FRAME, "#email") is False

    def test_apply_overrides_keeps_unedited_fields(self):
        overrides = {override_key(BILLING_CTX, _card().selector): {"sample": "4111", "newSelector": ".card"}}
        updated = apply_overrides(_card(), overrides)
        assert updated.sample == "4111"
        assert updated.selector == ".card"
        assert updated.label == "Card number"
        assert updated.frame_context == BILLING_CTX

    def test_bare_selector_key_is_honoured(self):
        assert find_override(_email(), {"#email": {"label": "Mail"}}) == {"label": "Mail"}

    def test_override_for_other_frame_does_not_apply(self):
        overrides = {override_key(BILLING_CTX, "#email"): {"label": "Wrong"}}
        assert apply_overrides(_email(), overrides) == _email()

    def test_apply_changes_rewrites_saved_descriptors(self, store: SessionStore):
        store.save_extraction("p1", "A", "u", "s", 1, [_email(), _card()])
        store.save_extraction("p2", "B", "u", "s", 1, [_email()])
        store.set_override(TOP_FRAME, "#email", label="E-mail", sample="a@b.c")

        summary = store.apply_changes("p1")

        assert summary.fields_updated == 2
        assert summary.elements_changed == 1
        assert summary.pages_impacted == ["p1"]
        email, card = store.descriptors("p1")
        assert email.label == "E-mail"
        assert email.sample == "a@b.c"
        assert card == _card()
        assert store.descriptors("p2") == [_email()]

    def test_apply_changes_is_idempotent(self, store: SessionStore):
        store.save_extraction("p1", "A", "u", "s", 1, [_email()])
        store.set_override(TOP_FRAME, "#email", label="E-mail")
        store.apply_changes()
        assert store.apply_changes().fields_updated == 0
