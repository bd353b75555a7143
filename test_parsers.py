from conftest import NOMINAL_ANSWERS
from models import Exposition, Image, Source
from parsers import (
    KEYWORD_MAX_LENGTH,
    PLACEHOLDER_IMAGES,
    clean_text,
    parse_exposition,
    parse_images,
    parse_keywords,
    parse_sources,
    parse_text,
)


def test_clean_text_drops_asides_and_collapses_whitespace():
    assert clean_text("Le texte (aparté)   suite\n\nfin ") == "Le texte suite fin"
    assert clean_text(None) == ""
    assert clean_text("") == ""


def test_parse_text_strips_markdown_and_quotes():
    assert parse_text(NOMINAL_ANSWERS["title"]) == "La révolution industrielle : l'ère des machines"
    assert parse_text('"Un titre"') == "Un titre"
    assert parse_text("## Titre") == "Titre"


def test_parse_text_summary():
    assert parse_text(NOMINAL_ANSWERS["summary"]) == (
        "La révolution industrielle transforme l'économie. Elle mécanise la production. "
        "Elle bouleverse la société."
    )


def test_exposition_with_every_section():
    exposition = parse_exposition(NOMINAL_ANSWERS["exposition"])
    assert exposition.introduction == "La révolution industrielle change le monde."
    assert exposition.paragraphs == [
        "Le progrès technique interroge la place de l'homme.",
        "Les conditions ouvrières se dégradent.",
        "La transition écologique en hérite.",
    ]
    assert exposition.conclusion == "Une rupture majeure."


def test_exposition_missing_paragraph_is_omitted():
    content = "Introduction\nIntro.\nParagraphe 1\nP1.\nParagraphe 3\nP3.\nConclusion\nFin."
    exposition = parse_exposition(content)
    assert exposition.introduction == "Intro."
    assert exposition.paragraphs == ["P1.", "P3."]
    assert exposition.conclusion == "Fin."


def test_exposition_missing_conclusion_is_empty():
    exposition = parse_exposition("Introduction : Début.\nParagraphe 1\nSeul paragraphe.")
    assert exposition.introduction == "Début."
    assert exposition.paragraphs == ["Seul paragraphe."]
    assert exposition.conclusion == ""


def test_exposition_markdown_headings():
    content = (
        "## Introduction\nTexte d'ouverture.\n"
        "### Paragraphe 1 : Approche philosophique\nPremier.\n"
        "### **Paragraphe 2 - Analyse**\nDeuxième.\n"
        "**Conclusion**\nFin."
    )
    exposition = parse_exposition(content)
    assert exposition.introduction == "Texte d'ouverture."
    assert exposition.paragraphs == ["Premier.", "Deuxième."]
    assert exposition.conclusion == "Fin."


def test_exposition_english_markers():
    content = (
        "Introduction: Opening.\n"
        "Paragraph 1 - Philosophical Approach\nFirst.\n"
        "Paragraph 2 - Critical Analysis\nSecond.\n"
        "Conclusion: Closing."
    )
    exposition = parse_exposition(content)
    assert exposition == Exposition(introduction="Opening.", paragraphs=["First.", "Second."], conclusion="Closing.")


def test_exposition_ignores_marker_words_inside_a_line():
    exposition = parse_exposition("Introduction\nTexte, en conclusion de quoi.\nConclusion\nFin.")
    assert exposition.introduction == "Texte, en conclusion de quoi."
    assert exposition.conclusion == "Fin."


def test_exposition_keeps_long_text_on_the_heading_line():
    text = "La pensée des Lumières voit dans la machine une promesse d'émancipation pour l'humanité entière."
    exposition = parse_exposition(f"Paragraphe 1 : {text}")
    assert exposition.paragraphs == [text]


def test_exposition_on_a_single_line():
    content = (
        "Introduction : La révolution change tout. Paragraphe 1 : Le progrès. "
        "Paragraphe 2 : Les ouvriers. Paragraphe 3 : L'écologie. Conclusion : Rupture."
    )
    assert parse_exposition(content) == Exposition(
        introduction="La révolution change tout.",
        paragraphs=["Le progrès.", "Les ouvriers.", "L'écologie."],
        conclusion="Rupture.",
    )


def test_exposition_inline_markers_after_a_heading_line():
    content = "Introduction\nUn début. **Paragraphe 1** - Premier. Paragraphe 2 : Second.\nConclusion - Fin."
    exposition = parse_exposition(content)
    assert exposition.introduction == "Un début."
    assert exposition.paragraphs == ["Premier.", "Second."]
    assert exposition.conclusion == "Fin."


def test_exposition_short_paragraphs_on_their_marker_lines():
    content = (
        "Introduction : La révolution change tout.\n"
        "Paragraphe 1 : Le progrès interroge l'homme.\n"
        "Paragraphe 2 : Les ouvriers souffrent.\n"
        "Paragraphe 3 : L'écologie en hérite.\n"
        "Conclusion : Une rupture majeure."
    )
    exposition = parse_exposition(content)
    assert exposition.introduction == "La révolution change tout."
    assert exposition.paragraphs == [
        "Le progrès interroge l'homme.",
        "Les ouvriers souffrent.",
        "L'écologie en hérite.",
    ]
    assert exposition.conclusion == "Une rupture majeure."


def test_exposition_never_more_than_three_paragraphs():
    content = "Paragraphe 1\nA.\nParagraphe 2\nB.\nParagraphe 3\nC.\nParagraphe 4\nD."
    assert len(parse_exposition(content).paragraphs) == 3


def test_exposition_without_markers_is_empty():
    exposition = parse_exposition("Une réponse libre sans aucune structure.")
    assert exposition.is_empty()
    assert parse_exposition(None) == Exposition()


def test_sources_well_formed_block_in_order():
    sources = parse_sources(NOMINAL_ANSWERS["sources"])
    assert sources == [
        Source("https://fr.wikipedia.org/wiki/Révolution_industrielle", "Révolution industrielle"),
        Source("https://www.britannica.com/event/Industrial-Revolution", "Industrial Revolution"),
        Source("https://www.larousse.fr/encyclopedie/divers/révolution_industrielle/61017", "Larousse"),
    ]


def test_sources_drop_lines_that_do_not_match():
    content = (
        "Voici trois sources :\n"
        "https://a.org/x - A\n"
        "pas une source\n"
        "https://b.org/page-title\n"
        "- <https://c.org> - **C**"
    )
    assert parse_sources(content) == [Source("https://a.org/x", "A"), Source("https://c.org", "C")]


def test_sources_empty_input():
    assert parse_sources("") == []
    assert parse_sources(None) == []


def test_images_well_formed_block():
    images = parse_images(NOMINAL_ANSWERS["images"])
    assert [image.description for image in images] == ["Machine à vapeur", "Usine textile", "Locomotive"]
    assert images[0] == Image("https://upload.wikimedia.org/a.jpg", "Machine à vapeur")


def test_images_fall_back_to_placeholder():
    assert parse_images("Je ne peux pas fournir d'images.") == list(PLACEHOLDER_IMAGES)
    assert parse_images(None) == list(PLACEHOLDER_IMAGES)


def test_keywords_split_trim_and_filter():
    assert parse_keywords(NOMINAL_ANSWERS["keywords"]) == ["industrie", "vapeur", "urbanisation"]
    assert parse_keywords("Mots-clés : usine, , 1. Urbanisation.") == ["usine", "Urbanisation"]
    assert parse_keywords("- vapeur\n- charbon") == ["vapeur", "charbon"]
    assert parse_keywords("Keywords: steam; coal; factory") == ["steam", "coal", "factory"]
    assert parse_keywords("") == []


def test_keywords_are_length_capped():
    keywords = parse_keywords("anticonstitutionnellement, court")
    assert keywords == ["anticonstitutio", "court"]
    assert all(len(k) <= KEYWORD_MAX_LENGTH for k in keywords)


def test_parsing_is_idempotent():
    for parser, field in [
        (parse_text, "summary"),
        (parse_exposition, "exposition"),
        (parse_sources, "sources"),
        (parse_images, "images"),
        (parse_keywords, "keywords"),
    ]:
        assert parser(NOMINAL_ANSWERS[field]) == parser(NOMINAL_ANSWERS[field])


def test_parsers_never_raise_on_garbage():
    garbage = ["", "   ", "((((", "Introduction", "Paragraphe 1", "- - -", "https://", ":::", "\n\n\n"]
    for content in garbage:
        parse_text(content)
        parse_exposition(content)
        parse_sources(content)
        parse_images(content)
        parse_keywords(content)
