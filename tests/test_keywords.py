from town_concierge.keywords import extract_keywords, normalize_text, tokenize


def test_empty_input_yields_no_keywords():
    assert extract_keywords("") == []
    assert extract_keywords("   ") == []


def test_normalize_keeps_accents_and_drops_punctuation():
    assert normalize_text("¿Tienen   PIÑA, o jugo?!") == "tienen piña o jugo"


def test_stop_words_short_tokens_and_numbers_are_dropped():
    assert tokenize("quiero 12 pizzas y 1 gaseosa") == ["pizzas", "gaseosa"]


def test_two_word_phrase_leads_the_list():
    assert extract_keywords("¿Tienen empanadas de pino?") == ["empanadas pino", "empanadas", "pino"]


def test_three_word_phrases_and_length_ordering():
    keywords = extract_keywords("torta tres leches grande")

    assert keywords[0] == "tres leches grande"
    assert set(keywords) == {
        "torta tres", "torta tres leches", "tres leches", "tres leches grande", "leches grande",
        "torta", "tres", "leches", "grande",
    }
    lengths = [len(k) for k in keywords]
    assert lengths == sorted(lengths, reverse=True)


def test_phrases_skip_tokens_shorter_than_three_characters():
    assert extract_keywords("té helado") == ["helado", "té"]


def test_keywords_are_deduplicated():
    assert extract_keywords("pizza pizza") == ["pizza pizza", "pizza"]


def test_extraction_is_pure():
    text = "Arepa de choclo con queso"
    assert extract_keywords(text) == extract_keywords(text)
