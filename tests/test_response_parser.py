import pytest

from services.openai.response_parser import extract_image_url, extract_text, parse_help_decision


def test_images_field_wins_over_content():
    message = {
        "content": "see https://cdn.example.com/other.png",
        "images": [{"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}}],
    }

    assert extract_image_url(message) == "data:image/png;base64,AAAA"


def test_content_parts_image_url_and_output_image():
    assert extract_image_url({"content": [{"type": "text", "text": "hi"}, {"type": "image_url", "image_url": {"url": "https://x/y.png"}}]}) == "https://x/y.png"
    assert extract_image_url({"content": [{"type": "output_image", "url": "data:image/webp;base64,QQ=="}]}) == "data:image/webp;base64,QQ=="


def test_data_url_embedded_in_text():
    message = {"content": "Here you go: data:image/jpeg;base64,/9j/4AAQ== enjoy"}

    assert extract_image_url(message) == "data:image/jpeg;base64,/9j/4AAQ=="


def test_http_image_url_embedded_in_text():
    message = {"content": "Result at https://images.example.com/out/solution.PNG."}

    assert extract_image_url(message) == "https://images.example.com/out/solution.PNG"


def test_text_only_message_has_no_image():
    message = {"content": "No drawing needed, the work is correct."}

    assert extract_image_url(message) is None
    assert extract_text(message) == "No drawing needed, the work is correct."


def test_extract_text_joins_text_parts():
    message = {"content": [{"type": "text", "text": "a"}, {"type": "image_url", "image_url": {"url": "u"}}, {"type": "text", "text": "b"}]}

    assert extract_text(message) == "a\nb"


def test_parse_help_decision_normalizes_fields():
    decision = parse_help_decision('{"needsHelp": true, "confidence": "0.8", "reason": "wrong sign"}')

    assert decision == {"needs_help": True, "confidence": 0.8, "reason": "wrong sign"}


def test_parse_help_decision_rejects_bad_json():
    with pytest.raises(ValueError):
        parse_help_decision("{needsHelp: yes")
    with pytest.raises(ValueError):
        parse_help_decision("[1, 2]")
