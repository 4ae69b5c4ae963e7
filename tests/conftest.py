"""Shared fixtures for FrameFill unit tests."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from framefill.dom import FramePage, load_page

TOP_URL = "https://shop.example.com/checkout"
PAY_URL = "https://pay.example.net/widget/card.html"

BILLING_HTML = (
    "<html><body><form>"
    "<label>Card number <input type='text' class='cc'></label>"
    "<select name='country'><option value='us'>United States</option><option value='ca'>Canada</option></select>"
    "</form></body></html>"
)

SHIPPING_HTML = "<html><body><input type='text' placeholder='Street'></body></html>"

CHECKOUT_HTML = f"""\
<html>
<head><title>Checkout</title></head>
<body>
<form id="checkout">
  <label for="email">Email</label>
  <input id="email" type="email" name="email" required>
  <label for="phone">Phone</label>
  <input id="phone" type="tel" placeholder="Phone number">
  <iframe name="billing" srcdoc="{BILLING_HTML}"></iframe>
  <iframe title="Shipping" srcdoc="{SHIPPING_HTML}"></iframe>
  <iframe src="{PAY_URL}"></iframe>
</form>
</body>
</html>
"""

PAY_HTML = """\
<html><body><label for="cvv">CVV</label><input id="cvv" type="text" maxlength="4"></body></html>
"""

COUPON_HTML = "<html><body><input type='text' placeholder='Coupon'></body></html>"

TWIN_FRAMES_HTML = f"""\
<html><body>
<iframe name="left" srcdoc="{COUPON_HTML}"></iframe>
<iframe name="right" srcdoc="{COUPON_HTML}"></iframe>
</body></html>
"""


# ---------------------------------------------------------------------------
# Fixture: multi-frame checkout page
# ---------------------------------------------------------------------------

@pytest.fixture
def checkout_page() -> FramePage:
    """Top document plus billing, shipping (srcdoc) and a cross-origin pay frame.

    Frame ids: 0 top, 1 billing, 2 shipping, 3 pay.
    """
    return load_page(CHECKOUT_HTML, TOP_URL, {PAY_URL: PAY_HTML})


@pytest.fixture
def checkout_page_unloaded() -> FramePage:
    """Same page, but the pay frame's document was never fetched."""
    return load_page(CHECKOUT_HTML, TOP_URL)


@pytest.fixture
def twin_frames_page() -> FramePage:
    """Two iframes with identical content."""
    return load_page(TWIN_FRAMES_HTML, "https://shop.example.com/cart")


# ---------------------------------------------------------------------------
# Fixture: temporary project directory with .framefill/ structure
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Create a temporary .framefill/ project directory with a config."""
    framefill_dir = tmp_path / ".framefill"
    framefill_dir.mkdir(parents=True)

    config_data = {
        "store_path": "sessions.json",
        "relaxed_match_threshold": 3,
        "label_mode": "original",
        "extract_timeout": 10,
        "frame_timeout": 5,
    }
    (framefill_dir / "config.yaml").write_text(
        yaml.dump(config_data, default_flow_style=False), encoding="utf-8"
    )

    return framefill_dir


# ---------------------------------------------------------------------------
# Fixture: sample config YAML string
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_config_yaml() -> str:
    """Return a valid FrameFill config.yaml as a string."""
    return """\
store_path: data/sessions.json
relaxed_match_threshold: 5
label_mode: enhanced
extract_timeout: 20
frame_timeout: 2.5
cdp_url: http://localhost:9222
"""
