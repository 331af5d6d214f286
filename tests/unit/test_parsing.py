from tools.doc_summary.parsing import derive_highlights, parse_bullets


def test_bullet_markers_are_stripped():
    block = "- first\n* second\n• third\n1. fourth\n2) fifth"
    assert parse_bullets(block) == ["first", "second", "third", "fourth", "fifth"]


def test_blank_lines_are_dropped():
    assert parse_bullets("\n\n- a\n\n   \n- b\n") == ["a", "b"]
    assert parse_bullets("") == []
    assert parse_bullets(None) == []


def test_unprefixed_lines_are_kept():
    assert parse_bullets("Plain line") == ["Plain line"]


def test_highlights_take_first_three_sentences():
    summary = "One is here. Two is there! Three, maybe? Four never shows."
    assert derive_highlights(summary) == ["One is here.", "Two is there!", "Three, maybe?"]


def test_highlights_with_fewer_sentences():
    assert derive_highlights("Only one sentence. trailing fragment") == ["Only one sentence."]
    assert derive_highlights("no terminator at all") == []
    assert derive_highlights("") == []


def test_highlights_keep_duplicates_and_collapse_whitespace():
    assert derive_highlights("Same.\n\nSame.", count=5) == ["Same.", "Same."]


def test_highlight_count_zero():
    assert derive_highlights("A. B.", count=0) == []


def test_mixed_markers_with_trailing_newline():
    assert parse_bullets("1. Alpha\n- Beta\n• Gamma\n") == ["Alpha", "Beta", "Gamma"]


def test_single_letter_sentences():
    assert derive_highlights("A. B! C? D.") == ["A.", "B!", "C?"]
