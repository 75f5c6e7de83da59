from __future__ import annotations

from validation import DEFAULT_RULES, validate
from validation.text_extract import extract_text

from conftest import NOTICE_LINES, make_pdf, notice_pdf, web_page_pdf


def _rules_fired(result) -> set:
    return {c.rule for c in result.rule_contributions}


def test_genuine_notice_is_accepted_with_breakdown() -> None:
    data = notice_pdf(17_000)
    result = validate(data, "NOTICE_1753375123337.pdf")

    assert result.is_valid
    assert result.rejection_reason is None
    assert result.score >= 110
    assert "size:narrow" in _rules_fired(result)
    assert "filename:exact" in _rules_fired(result)
    assert "internal revenue service" in result.critical_matches
    assert result.extraction_method == "text_objects"
    assert result.score == sum(c.weight for c in result.rule_contributions)


def test_three_critical_phrases_in_narrow_band_score_exactly() -> None:
    data = make_pdf(("Internal Revenue Service", "Employer Identification Number", "CP 575"), size=17_000)
    result = validate(data)

    assert result.score == 3 * 30 + 20
    assert result.is_valid


def test_missing_signature_scores_zero_without_contributions() -> None:
    data = b"<html><body>Internal Revenue Service CP 575</body></html>" * 200
    result = validate(data, "CP575_1755102640378.pdf")

    assert not result.is_valid
    assert result.score == 0
    assert result.rule_contributions == ()
    assert result.rejection_reason == "missing PDF signature"


def test_empty_bytes_rejected() -> None:
    result = validate(b"")
    assert not result.is_valid
    assert result.score == 0


def test_captured_web_page_is_rejected() -> None:
    result = validate(web_page_pdf(), "download.pdf")

    assert not result.is_valid
    assert result.critical_matches == ()
    assert len(result.negative_matches) >= 2
    assert "captured web page" in result.rejection_reason
    assert "filename:generic" in _rules_fired(result)


def test_negatives_without_critical_never_reach_threshold() -> None:
    lines = ("IRS EIN taxpayer Form SS-4 Cincinnati Ogden", "<html> <div> sign in")
    result = validate(make_pdf(lines, size=17_000), "EIN_notice.pdf")

    assert not result.is_valid
    # size 20 + supporting cap 24 + tokens 10, minus two or more negatives
    assert result.score <= 54 - 30


def test_supporting_phrases_are_capped() -> None:
    lines = ("IRS EIN taxpayer Form SS-4 Cincinnati Ogden tax period notice date responsible party",)
    result = validate(make_pdf(lines, size=17_000))

    supporting = [c for c in result.rule_contributions if c.rule.startswith("supporting:")]
    assert sum(c.weight for c in supporting) == DEFAULT_RULES.supporting_cap


def test_oversized_capture_is_penalised() -> None:
    data = make_pdf(("Internal Revenue Service", "Employer Identification Number", "CP 575"), size=1_100_000)
    result = validate(data)

    assert "size:oversized" in _rules_fired(result)
    assert result.score == 90 - 40
    assert not result.is_valid


def test_correlation_key_exact_and_normalized() -> None:
    exact = validate(notice_pdf(), correlation_key="12-3456789")
    squashed = validate(make_pdf(NOTICE_LINES + ("Reference 123456789",), size=17_000), correlation_key="12 345 6789")
    missing = validate(notice_pdf(), correlation_key="98-7654321")

    assert "correlation:exact" in _rules_fired(exact)
    assert "correlation:normalized" in _rules_fired(squashed)
    assert not any(r.startswith("correlation") for r in _rules_fired(missing))


def test_threshold_comes_from_rules() -> None:
    data = make_pdf(("Internal Revenue Service", "CP 575"), size=17_000)
    default = validate(data)
    strict = validate(data, rules=DEFAULT_RULES.with_threshold(100))

    assert default.score == 80
    assert default.is_valid
    assert not strict.is_valid
    assert strict.threshold == 100
    assert "below threshold" in strict.rejection_reason


def test_phrases_match_on_word_boundaries() -> None:
    # "irs" inside "first" and "ein" inside "being" must not count
    result = validate(make_pdf(("first being", "Internal Revenue Service"), size=17_000))
    assert not any(c.rule in ("supporting:irs", "supporting:ein") for c in result.rule_contributions)


def test_filename_tokens_and_generic_names() -> None:
    tokens = validate(notice_pdf(), "irs_ein_cp575.pdf")
    generic = validate(notice_pdf(), "document (1).pdf")

    token_total = sum(c.weight for c in tokens.rule_contributions if c.rule.startswith("filename:token"))
    assert token_total == DEFAULT_RULES.filename_token_cap
    assert "filename:generic" in _rules_fired(generic)


def test_to_dict_is_json_ready() -> None:
    payload = validate(notice_pdf(), "NOTICE_1753375123337.pdf").to_dict()
    assert payload["is_valid"] is True
    assert isinstance(payload["rule_contributions"], list)
    assert {"rule", "weight"} <= set(payload["rule_contributions"][0])


def test_page_chrome_cannot_sink_a_genuine_notice() -> None:
    lines = ("Internal Revenue Service", "Employer Identification Number", "CP 575",
             "Sign in", "Log out", "navigation", "javascript")
    result = validate(make_pdf(lines, size=17_000))

    assert len(result.negative_matches) == 4
    penalties = [c.weight for c in result.rule_contributions if c.rule.startswith("negative:")]
    assert sum(penalties) == DEFAULT_RULES.negative_cap
    assert result.score == 90 + 20 + DEFAULT_RULES.negative_cap
    assert result.is_valid


def test_same_input_same_verdict() -> None:
    data = notice_pdf()
    first = validate(data, "CP575_1755102640378.pdf", "12-3456789")
    second = validate(data, "CP575_1755102640378.pdf", "12-3456789")

    assert (first.score, first.is_valid) == (second.score, second.is_valid)
    assert first.rule_contributions == second.rule_contributions


# ---------------------------------------------------------------------------
# text extraction
# ---------------------------------------------------------------------------

def test_extract_text_from_flate_stream() -> None:
    text, method = extract_text(make_pdf(("Employer Identification Number",), compress=True))
    assert method == "text_objects"
    assert "employer identification number" in text


def test_extract_text_tj_array_and_escapes() -> None:
    content = (
        b"BT /F1 12 Tf 14 TL 72 720 Td\n"
        b"[(Internal) -1000 (Revenue) -1000 (Service)] TJ T*\n"
        b"(Form SS\\0554) Tj\nET"
    )
    text, method = extract_text(make_pdf(content=content, compress=True))

    assert method == "text_objects"
    assert "internal revenue service" in text
    assert "form ss-4" in text


def test_extract_text_hex_strings() -> None:
    hex_text = "CP 575".encode().hex().encode()
    content = b"BT /F1 12 Tf 72 720 Td <" + hex_text + b"> Tj ET"
    text, _ = extract_text(make_pdf(content=content))
    assert "cp 575" in text


def test_extract_text_falls_back_to_printable_scan() -> None:
    data = b"%PDF-1.4\n\x00\x01Internal Revenue Service\x02\x03ab\x04"
    text, method = extract_text(data)

    assert method == "printable_scan"
    assert "internal revenue service" in text
    assert " ab" not in text


def test_page_without_text_falls_back_to_printable_scan() -> None:
    data = make_pdf(content=b"q 1 0 0 1 0 0 cm Q")
    text, method = extract_text(data)

    assert method == "printable_scan"
    assert "catalog" in text
