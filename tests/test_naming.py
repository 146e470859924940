import pytest

from posterstamp.naming import build_output_filename, build_output_name, sanitize_token


def test_output_filename_replaces_whitespace_runs() -> None:
    assert build_output_filename("Summer Party 2024") == "Summer_Party_2024_poster.png"
    assert build_output_filename("  Gala \t Night ") == "Gala_Night_poster.png"
    assert build_output_filename("") == "template_poster.png"


def test_output_filename_strips_path_characters() -> None:
    name = build_output_filename('Team: A/B "final"')
    assert "/" not in name and ":" not in name and '"' not in name
    assert name.endswith("_poster.png")


def test_build_output_name_with_tokens() -> None:
    name = build_output_name("{name}_{user}.{ext}", "Summer Party", "Ann Lee", extension="png")
    assert name == "Summer_Party_Ann_Lee.png"


def test_build_output_name_adds_missing_extension() -> None:
    assert build_output_name("{name}_poster", "Gala", None) == "Gala_poster.png"


def test_build_output_name_unknown_key() -> None:
    with pytest.raises(ValueError):
        build_output_name("{stem}.{ext}", "Gala", "Ann")


def test_sanitize_token_fallback() -> None:
    assert sanitize_token("   ", fallback="user") == "user"
    assert sanitize_token("a/b c") == "a_b_c"
