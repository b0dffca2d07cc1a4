from __future__ import annotations

from structured_output.scanner import ScanState, final_state, mask_strings, scan, unmask_strings


def test_states_follow_quotes_and_escapes():
    states = [state for _, _, state in scan('"a\\"b" x')]

    assert states == [
        ScanState.NORMAL,  # opening quote
        ScanState.IN_STRING,
        ScanState.IN_STRING,  # backslash
        ScanState.ESCAPED,  # escaped quote
        ScanState.IN_STRING,
        ScanState.IN_STRING,  # closing quote
        ScanState.NORMAL,
        ScanState.NORMAL,
    ]


def test_final_state_detects_open_strings():
    assert final_state('{"a": "b"}') is ScanState.NORMAL
    assert final_state('{"a": "b') is ScanState.IN_STRING
    assert final_state('{"a": "b\\') is ScanState.ESCAPED


def test_mask_and_unmask_round_trip():
    text = '{"url": "http://x.test/a, b", "esc": "q\\"uote", "tail": "open'

    masked, literals = mask_strings(text)

    assert "http" not in masked
    assert masked.endswith('"open')
    assert literals[:2] == ['"url"', '"http://x.test/a, b"']
    assert unmask_strings(masked, literals) == text
