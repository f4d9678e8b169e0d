"""Interview question sets per profile category."""

from __future__ import annotations

QUESTION_SETS: dict[str, tuple[str, ...]] = {
    "sport": (
        "Welche Sportart machst du am liebsten?",
        "Wie oft trainierst du normalerweise?",
        "Was ist dein größtes Ziel beim Sport?",
        "Was ist deine größte Herausforderung beim Training?",
    ),
    "kochen": (
        "Welche Art von Küche magst du am liebsten?",
        "Kochst du täglich oder eher am Wochenende?",
        "Was sind deine Lieblings-Gerichte?",
        "Was möchtest du beim Kochen noch lernen?",
    ),
    "arbeit": (
        "In welchem Bereich arbeitest du?",
        "Was sind deine beruflichen Ziele?",
        "Was motiviert dich bei der Arbeit am meisten?",
        "Welche beruflichen Herausforderungen beschäftigen dich?",
    ),
    "lernen": (
        "Was möchtest du lernen oder studieren?",
        "Wie lernst du am effektivsten?",
        "Was sind deine Lernziele?",
        "Was macht dir beim Lernen Schwierigkeiten?",
    ),
}


def contextual_questions(category: str) -> list[str]:
    """Return the interview questions for *category*.

    Known categories (case-insensitive) get their curated set; anything else
    gets generic questions mentioning the category by name.
    """
    key = category.strip().lower()
    if key in QUESTION_SETS:
        return list(QUESTION_SETS[key])

    label = category.strip() or "diesem Thema"
    return [
        f"Was machst du gerne im Bereich {label}?",
        f"Wie oft beschäftigst du dich mit {label}?",
        f"Was sind deine Ziele in Bezug auf {label}?",
        f"Was ist deine größte Herausforderung bei {label}?",
    ]


def next_question(category: str, asked: int) -> str:
    """The question to ask after *asked* answers, cycling through the set."""
    questions = contextual_questions(category)
    return questions[max(asked, 0) % len(questions)]
