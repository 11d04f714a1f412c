"""Prompt templates for the sentence filter and the analyzer.

プロンプトは出力形式（JSON のみ）と具体例を含めて固定し、
入力値だけを差し込む。例は dict で保持し json.dumps で埋め込む。
"""

from __future__ import annotations

import json
from typing import Any, Optional

NOT_PROVIDED = "Not provided"


def _dump(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, indent=2)


def _or_not_provided(value: Optional[str]) -> str:
    return value if value else NOT_PROVIDED


# --- Sentence filter ---

_FILTER_EXAMPLES: list[tuple[str, dict[str, Any]]] = [
    (
        "Hello world",
        {
            "isValid": False,
            "reason": "This is a greeting phrase, not a complete sentence with subject and predicate",
            "cleanedSentence": None,
            "confidence": 0.9,
        },
    ),
    (
        "I am learning English.",
        {
            "isValid": True,
            "reason": "Complete sentence with subject 'I', verb 'am learning', and object 'English'",
            "cleanedSentence": "I am learning English.",
            "confidence": 0.95,
        },
    ),
    (
        "The quick brown fox jumps over the lazy dog",
        {
            "isValid": True,
            "reason": "Complete sentence with clear subject, verb, and object structure",
            "cleanedSentence": "The quick brown fox jumps over the lazy dog.",
            "confidence": 0.98,
        },
    ),
]


def filter_prompt(english_phrase: str, user_translation: Optional[str], context: Optional[str]) -> str:
    examples = "\n\n".join(
        f'Input: "{text}"\nOutput: {_dump(output)}' for text, output in _FILTER_EXAMPLES
    )
    return (
        "You are a sentence validation expert. Decide whether the given English phrase is a valid, "
        "complete sentence suitable for language learning analysis.\n\n"
        "VALIDATION RULES:\n"
        "1. Must be a complete sentence (has subject and predicate)\n"
        "2. Must be in English\n"
        "3. Must be a single sentence (not multiple sentences)\n"
        "4. Must not be a fragment, phrase, or incomplete thought\n"
        "5. Must not contain inappropriate content\n"
        "6. Must be suitable for a language learning context\n\n"
        "INPUT:\n"
        f'English Phrase: "{english_phrase}"\n'
        f'User Translation: "{_or_not_provided(user_translation)}"\n'
        f'Context: "{_or_not_provided(context)}"\n\n'
        "REQUIREMENTS:\n"
        "- Give a clear reason for the decision, also when the sentence is valid\n"
        "- If valid, return a cleaned sentence (fix minor typos, normalize punctuation)\n"
        "- If invalid, cleanedSentence must be null\n"
        "- confidence is a number between 0.0 and 1.0\n\n"
        "OUTPUT FORMAT (JSON only):\n"
        + _dump(
            {
                "isValid": "boolean",
                "reason": "string",
                "cleanedSentence": "string or null",
                "confidence": "number 0.0-1.0",
            }
        )
        + "\n\nEXAMPLES:\n\n"
        + examples
        + "\n\nRespond with JSON only:"
    )


# --- Analyzer ---

_ANALYZER_SCHEMA: dict[str, Any] = {
    "correctness": "correct | incorrect | partially_correct",
    "meaning": "string",
    "alternatives": ["string"],
    "errors": "string, empty when there are no errors",
    "grammarAnalysis": {
        "score": "number 0-100",
        "starRating": "integer 1-5",
        "issues": [
            {
                "type": "tense | subject_verb_agreement | article | preposition | word_order | other",
                "description": "string",
                "severity": "low | medium | high",
                "suggestion": "string",
                "position": {"start": "integer", "end": "integer"},
            }
        ],
        "strengths": ["string"],
        "recommendations": ["string"],
        "tenseAnalysis": {
            "detectedTense": "string",
            "isCorrect": "boolean",
            "explanation": "string",
            "alternatives": ["string"],
            "usage": "string",
        },
        "structureAnalysis": {
            "pattern": "string",
            "isNatural": "boolean",
            "explanation": "string",
            "improvements": ["string"],
            "comparison": "string",
        },
        "complexity": "simple | medium | complex",
    },
    "vocabularyAnalysis": {
        "score": "number 0-100",
        "starRating": "integer 1-5",
        "level": "beginner | intermediate | advanced",
        "appropriateWords": ["string"],
        "inappropriateWords": ["string"],
        "suggestions": [{"original": "string", "suggested": "string", "reason": "string", "context": "string"}],
        "wordBreakdown": [
            {
                "word": "string",
                "position": {"start": "integer", "end": "integer"},
                "partOfSpeech": "string",
                "difficulty": "easy | medium | hard",
                "phonics": {"pronunciation": "IPA string", "syllables": ["string"], "stress": ["integer"]},
                "meaning": "string",
                "commonUsage": "string",
                "alternatives": ["string"],
            }
        ],
        "overallDifficulty": "easy | medium | hard",
    },
    "contextAnalysis": {
        "score": "number 0-100",
        "starRating": "integer 1-5",
        "appropriateness": "formal | informal | neutral",
        "culturalNotes": ["string"],
        "usageNotes": ["string"],
        "situationalFit": "string",
    },
    "confidence": "number 0.0-1.0",
    "suggestions": ["string"],
    "overallStarRating": "integer 1-5",
}

WEATHER_EXAMPLE: dict[str, Any] = {
    "correctness": "correct",
    "meaning": "This sentence describes the current weather condition as pleasant and attractive.",
    "alternatives": [
        "It's a beautiful day today.",
        "Today's weather is lovely.",
        "What beautiful weather we're having today!",
    ],
    "errors": "",
    "grammarAnalysis": {
        "score": 98,
        "starRating": 5,
        "issues": [],
        "strengths": ["Correct subject-verb agreement", "Natural adjective placement"],
        "recommendations": ["Try exclamatory forms to sound more expressive"],
        "tenseAnalysis": {
            "detectedTense": "present simple",
            "isCorrect": True,
            "explanation": "The present simple describes the current state of the weather.",
            "alternatives": ["The weather has been beautiful today."],
            "usage": "Describing a present state",
        },
        "structureAnalysis": {
            "pattern": "Subject + be + adjective + time adverb",
            "isNatural": True,
            "explanation": "A standard descriptive pattern used in everyday speech.",
            "improvements": [],
            "comparison": "Same word order as most descriptive sentences in English.",
        },
        "complexity": "simple",
    },
    "vocabularyAnalysis": {
        "score": 92,
        "starRating": 5,
        "level": "beginner",
        "appropriateWords": ["weather", "beautiful", "today"],
        "inappropriateWords": [],
        "suggestions": [
            {
                "original": "beautiful",
                "suggested": "lovely",
                "reason": "More conversational in British English",
                "context": "Casual conversation",
            }
        ],
        "wordBreakdown": [
            {
                "word": "weather",
                "position": {"start": 4, "end": 11},
                "partOfSpeech": "noun",
                "difficulty": "easy",
                "phonics": {"pronunciation": "/ˈweð.ər/", "syllables": ["weath", "er"], "stress": [1]},
                "meaning": "The state of the atmosphere at a particular time",
                "commonUsage": "What's the weather like?",
                "alternatives": ["climate"],
            }
        ],
        "overallDifficulty": "easy",
    },
    "contextAnalysis": {
        "score": 95,
        "starRating": 5,
        "appropriateness": "neutral",
        "culturalNotes": ["Talking about the weather is a common conversation opener."],
        "usageNotes": ["Suitable in both spoken and written English."],
        "situationalFit": "Fits small talk in almost any situation.",
    },
    "confidence": 0.95,
    "suggestions": ["Use 'lovely' for a friendlier tone."],
    "overallStarRating": 5,
}

_ANALYZER_SHORT_EXAMPLES: list[tuple[str, dict[str, Any]]] = [
    (
        "I am go to school.",
        {
            "correctness": "incorrect",
            "meaning": "The speaker intends to express going to school, but the grammar is incorrect.",
            "alternatives": ["I am going to school.", "I go to school.", "I will go to school."],
            "errors": "Incorrect verb form: 'am go' should be 'am going' (present continuous) or 'go' (simple present).",
            "overallStarRating": 2,
        },
    ),
    (
        "I have been lived here for five years.",
        {
            "correctness": "incorrect",
            "meaning": "The speaker wants to express that they have resided in this location for five years.",
            "alternatives": ["I have lived here for five years.", "I have been living here for five years."],
            "errors": "'have been lived' mixes the present perfect passive with the active voice.",
            "overallStarRating": 2,
        },
    ),
]


def analyzer_prompt(sentence: str, user_translation: Optional[str], context: Optional[str]) -> str:
    short_examples = "\n\n".join(
        f'Input: "{text}"\nOutput (abridged; the real answer must contain every field): {_dump(output)}'
        for text, output in _ANALYZER_SHORT_EXAMPLES
    )
    return (
        "You are an expert English language teacher. Provide a comprehensive analysis of the English "
        "sentence for a language learner.\n\n"
        "ANALYSIS REQUIREMENTS:\n"
        "1. Evaluate grammar correctness (syntax, tense, word order, agreement)\n"
        "2. Assess natural usage, fluency and register\n"
        "3. Consider context appropriateness\n"
        "4. Break down vocabulary word by word with IPA pronunciation, syllables and stress\n"
        "5. Suggest improvements and alternatives\n"
        "6. Identify specific errors, or return an empty string when there are none\n\n"
        "INPUT:\n"
        f'Sentence: "{sentence}"\n'
        f'User Translation: "{_or_not_provided(user_translation)}"\n'
        f'Context: "{_or_not_provided(context)}"\n\n'
        "CORRECTNESS LEVELS:\n"
        '- "correct": grammar and usage are natural English\n'
        '- "partially_correct": minor issues that do not affect understanding\n'
        '- "incorrect": significant errors that affect meaning or clarity\n\n'
        "RULES:\n"
        "- Every score is a number from 0 to 100\n"
        "- Every starRating and overallStarRating is an integer from 1 to 5\n"
        "- alternatives and suggestions are always arrays (use [] when empty), never null\n"
        "- position offsets are 0-based character offsets into the sentence, end exclusive\n"
        "- If a user translation is provided, take it into account when explaining the meaning\n\n"
        "OUTPUT FORMAT (JSON only):\n"
        + _dump(_ANALYZER_SCHEMA)
        + "\n\nEXAMPLES:\n\n"
        + 'Input: "The weather is beautiful today."\nOutput: '
        + _dump(WEATHER_EXAMPLE)
        + "\n\n"
        + short_examples
        + "\n\nRespond with JSON only:"
    )


def quick_check_prompt(sentence: str) -> str:
    return (
        "You are an English teacher. Judge the correctness of the sentence below.\n"
        f'Sentence: "{sentence}"\n'
        'Answer with JSON only: {"correctness": "correct" | "incorrect" | "partially_correct"}'
    )
