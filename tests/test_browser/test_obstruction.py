"""Tests for heuristic obstruction detection."""

from campwatch.browser.obstruction import (
    HARD_BLOCK_MAX_TEXT,
    ObstructionType,
    detect_obstruction,
)


def test_captcha_wall_is_a_hard_block():
    result = detect_obstruction('<div class="g-captcha"></div>', "Verify you are human")
    assert result.obstruction_type == ObstructionType.HARD_BLOCK
    assert result.selector == '[class*="captcha"]'


def test_captcha_on_a_full_page_is_not_a_block():
    text = "Zoo Camp " * (HARD_BLOCK_MAX_TEXT // 9 + 1)
    result = detect_obstruction('<div class="g-captcha"></div>', text)
    assert result.obstruction_type == ObstructionType.NONE


def test_hard_block_outranks_consent():
    html = '<div id="cookie-notice"><button class="accept">OK</button></div><iframe src="https://www.google.com/recaptcha/api"></iframe>'
    assert detect_obstruction(html).obstruction_type == ObstructionType.HARD_BLOCK


def test_consent_banner():
    html = '<div id="cookie-notice"><button class="accept">OK</button></div>'
    result = detect_obstruction(html, "Zoo Camp")
    assert result.obstruction_type == ObstructionType.CONSENT_GATE


def test_collapsed_content():
    html = "<details><summary>Pricing</summary><p>$350/week</p></details>"
    assert detect_obstruction(html).obstruction_type == ObstructionType.CONTENT_REVEAL


def test_clean_page():
    result = detect_obstruction("<main><p>Zoo Camp</p></main>", "Zoo Camp")
    assert result.obstruction_type == ObstructionType.NONE
    assert result.confidence == 1.0
