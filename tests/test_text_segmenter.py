import pytest

from cryptofm.services.tts.text_segmenter import TextSegmenter, clean_script_text


def test_clean_removes_stage_directions_and_markup() -> None:
    raw = "[intro music] Bitcoin <break time='1s'/>rallied. [pause] Ether too."

    assert clean_script_text(raw) == "Bitcoin rallied.  Ether too."


def test_clean_keeps_phoneme_content() -> None:
    raw = 'Say <phoneme alphabet="ipa" ph="ˈsoʊlənə">Solana</phoneme> slowly.'

    assert clean_script_text(raw) == "Say Solana slowly."


def test_clean_directions_only_is_empty() -> None:
    assert clean_script_text("  [music]\n[applause]  ") == ""


def test_short_text_is_single_chunk() -> None:
    segmenter = TextSegmenter(max_chars=100)

    assert segmenter.split("Markets are calm today.") == ["Markets are calm today."]
    assert segmenter.split("") == []


def test_long_text_breaks_at_sentence_end() -> None:
    # 4200 chars of sentence, then ". ", then more text up to 6000 chars.
    first = "a" * 4199 + "."
    rest = " " + "b" * 1799
    text = first + rest
    assert len(text) == 6000

    chunks = TextSegmenter(max_chars=4500).split(text)

    assert chunks == [first, rest]
    assert "".join(chunks) == text


def test_falls_back_to_comma_then_hard_cut() -> None:
    segmenter = TextSegmenter(max_chars=20)

    comma_chunks = segmenter.split("alpha beta gamma, delta epsilon zeta")
    assert comma_chunks[0] == "alpha beta gamma,"

    hard_chunks = segmenter.split("x" * 45)
    assert hard_chunks == ["x" * 20, "x" * 20, "x" * 5]


def test_decimal_prices_are_not_split_points() -> None:
    segmenter = TextSegmenter(max_chars=30)
    text = "Bitcoin trades at $64,250.75 now and climbing fast"

    chunks = segmenter.split(text)

    assert all("64,250.75" in chunk for chunk in chunks if "64" in chunk)
    assert "".join(chunks) == text


@pytest.mark.parametrize("max_chars", [50, 120, 4500])
def test_chunks_respect_limit_and_preserve_text(max_chars: int) -> None:
    sentence = "Ether gained three percent, while Solana slipped. "
    text = sentence * (max_chars * 3 // len(sentence) + 1)

    chunks = TextSegmenter(max_chars=max_chars).split(text)

    assert len(chunks) >= 3
    assert all(len(chunk) <= max_chars for chunk in chunks)
    assert "".join(chunks) == text


def test_rejects_non_positive_limit() -> None:
    with pytest.raises(ValueError):
        TextSegmenter(max_chars=0)
