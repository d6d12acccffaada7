from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .extraction import extract_json_object
from .gemini_client import GeminiClient
from .schemas import ExamSection, Question, VocabularyItem


logger = logging.getLogger(__name__)

# Long passages are sent whole so questions near the end still have their evidence
CONTEXT_LIMIT = 25000
# Explanations longer than this are real analyses, not a short key rationale
CACHED_EXPLANATION_MIN_LENGTH = 50


def _is_writing(question: Question, section: ExamSection) -> bool:
    return question.type == "writing" or "writing" in section.title.lower()


def _is_summary_task(question: Question, section: ExamSection) -> bool:
    text = question.text.lower()
    return "summary" in text or "summarize" in text or "summary" in section.title.lower()


def _summary_prompts(question: Question, context: str) -> tuple[str, str]:
    system = (
        "You are an expert English writing tutor creating a standard 'Model Answer' for a summary writing task.\n"
        "CRITICAL STYLE RULES (Direct Paraphrasing / Precis):\n"
        "1. NO Meta-Commentary: Do NOT use phrases like \"The author argues\", \"The article suggests\".\n"
        "2. Direct Stance: Write as if you are condensing the facts directly.\n"
        "3. Flow: Use transition words (However, Therefore, As a result, For example).\n"
        "4. Tone: Objective, formal, and factual.\n"
        "5. Length: Approximately 150 words.\n"
        "Constraint: Do NOT use Pinyin."
    )
    prompt = (
        "Task: Write a Model Summary (Precis) for the following article.\n"
        f"Question/Topic: \"{question.text}\"\n"
        f"Article Content: \"{context}\"\n\n"
        "Please provide the response in the following Markdown format:\n\n"
        "### 1. 参考范文 (Model Summary)\n"
        "(A direct, high-quality summary in English that reads like a standard exam answer key.)\n\n"
        "### 2. 摘要逻辑 (Summary Logic)\n"
        "(Briefly explain in Chinese which main points were selected and why.)\n\n"
        "### 3. 重点表达 (Key Expressions)\n"
        "(3-5 useful phrases or transition words used in the summary with Chinese translations.)"
    )
    return system, prompt


def _essay_prompts(question: Question) -> tuple[str, str]:
    system = (
        "You are an expert IELTS/Doctorate English writing tutor.\n"
        "Your goal is to help the student write excellent essays.\n"
        "Provide the output in structured Markdown with clear headings.\n"
        "Constraint 1: The Model Answer MUST BE IN ENGLISH.\n"
        "Constraint 2: Do NOT use Pinyin."
    )
    prompt = (
        "Task: Provide a comprehensive guide for the following writing topic.\n"
        f"Topic/Question: \"{question.text}\"\n\n"
        "Please provide the response in the following Markdown format:\n\n"
        "### 1. 参考范文 (Model Essay)\n"
        "(A Band 8.0+ level response, strictly in ENGLISH.)\n\n"
        "### 2. 写作思路 (Writing Strategy)\n"
        "(Structure, arguments and tone of the model answer. Bullet points. Language: Chinese.)\n\n"
        "### 3. 亮点词汇与句型 (Key Vocabulary & Expressions)\n"
        "(5-8 advanced words/phrases for this topic with Chinese translations. No Pinyin.)"
    )
    return system, prompt


def _objective_prompts(question: Question, context: str) -> tuple[str, str]:
    system = (
        "You are a strict and professional English exam tutor for Chinese PhD candidates.\n"
        "Constraint 1: Explain primarily in Chinese, but use English freely for quotes, terms, or examples from the text.\n"
        "Constraint 2: Focus ONLY on this specific question. Do NOT summarize the whole passage unnecessarily.\n"
        "Constraint 3: Locate the specific evidence in the text.\n"
        "Constraint 4: Keep it concise.\n"
        "Constraint 5: Do NOT use Pinyin."
    )
    prompt = (
        f"Question: \"{question.text}\"\n"
        f"Type: {question.type}\n"
        f"Correct Answer: \"{question.correct_answer or 'N/A'}\"\n"
        f"User Answer: \"{question.user_answer or 'No Answer'}\"\n"
        f"Context Snippet (Full Passage available): \"{context}\"\n\n"
        "Please provide a structured response in the following format:\n\n"
        "**1. 深度解析 (Analysis)**\n"
        "(Locate the sentence in the context that supports the correct answer. Explain why it is right and "
        "briefly why distractors are wrong. Language: Chinese, referencing English text where needed.)\n\n"
        "**2. 做题技巧 (Test-Taking Tips)**\n"
        "(One specific strategy for this question type. Language: Chinese.)"
    )
    return system, prompt


def has_cached_explanation(question: Question) -> bool:
    return bool(question.explanation) and len(question.explanation) > CACHED_EXPLANATION_MIN_LENGTH


async def explain_question(client: GeminiClient, question: Question, section: ExamSection) -> str:
    """Markdown explanation for one question; writing tasks get a model answer instead."""
    context = (section.content or "")[:CONTEXT_LIMIT] or "N/A"
    if _is_writing(question, section):
        if _is_summary_task(question, section):
            system, prompt = _summary_prompts(question, context)
        else:
            system, prompt = _essay_prompts(question)
    else:
        system, prompt = _objective_prompts(question, context)
    text = await client.generate(prompt, system_instruction=system)
    return text.strip() or "暂无解析。"


async def analyze_passage(client: GeminiClient, section: ExamSection) -> str:
    system = (
        "You are an expert English teacher. Provide a high-level analysis of the text structure and main vocabulary "
        "for a Chinese student.\n"
        "The text provided has correct answers filled in (marked in bold). Treat it as a complete, coherent article.\n"
        "Constraint: Do NOT use Pinyin."
    )
    prompt = (
        "Analyze this English exam passage for a Chinese student.\n"
        f"Section: \"{section.title}\"\n"
        f"Passage Content (Complete text with answers): \"{(section.content or '')[:CONTEXT_LIMIT]}\"\n\n"
        "Please provide a structured response in Markdown (Strictly in Chinese):\n\n"
        "### 1. 文章大意 (Main Idea)\n"
        "(A concise summary of the passage, approx 3-4 sentences.)\n\n"
        "### 2. 语篇结构 (Structure Analysis)\n"
        "(How the passage is organized, e.g. \"Para 1: Introduction... Para 2: Counter-argument...\".)\n\n"
        "### 3. 核心词汇 (Core Vocabulary)\n"
        "(10-15 important words/phrases from the whole text with Chinese definitions. No Pinyin.)"
    )
    text = await client.generate(prompt, system_instruction=system)
    return text.strip() or "暂无文章解析。"


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v]


async def _define_via_dictionary_api(http: httpx.AsyncClient, word: str, api_url: str) -> VocabularyItem:
    try:
        r = await http.get(f"{api_url}{word}")
        r.raise_for_status()
        entry = r.json()[0]
    except (httpx.HTTPError, ValueError, IndexError, KeyError, TypeError) as e:
        logger.info("Dictionary lookup failed for %r: %s", word, e)
        return VocabularyItem(word=word, definition="Not found.", context_sentences=[])
    if not isinstance(entry, dict):
        logger.info("Unexpected dictionary entry for %r: %r", word, entry)
        return VocabularyItem(word=word, definition="Not found.", context_sentences=[])
    meanings = entry.get("meanings") or [{}]
    first = meanings[0] if meanings else {}
    definitions = first.get("definitions") or [{}]
    def_obj = definitions[0] if definitions else {}
    example = def_obj.get("example")
    return VocabularyItem(
        word=entry.get("word") or word,
        definition=def_obj.get("definition") or "No definition found.",
        chinese_definition="",
        synonyms=_str_list(first.get("synonyms")),
        antonyms=_str_list(first.get("antonyms")),
        common_collocations=[],
        context_sentences=[example] if example else [],
    )


DEFINITION_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "definition": {"type": "STRING"},
        "chineseDefinition": {"type": "STRING"},
        "synonyms": {"type": "ARRAY", "items": {"type": "STRING"}},
        "antonyms": {"type": "ARRAY", "items": {"type": "STRING"}},
        "commonCollocations": {"type": "ARRAY", "items": {"type": "STRING"}},
        "contextSentences": {"type": "ARRAY", "items": {"type": "STRING"}},
    },
    "required": ["definition", "chineseDefinition", "contextSentences"],
}


async def define_word(
    client: Optional[GeminiClient],
    word: str,
    context: str,
    *,
    source: str = "llm",
    api_url: str = "",
    http: Optional[httpx.AsyncClient] = None,
) -> VocabularyItem:
    """Definition of ``word`` as used in ``context``.

    ``source="api"`` queries a free dictionary API (English only); ``llm`` and
    ``translation`` ask the model for an English-Chinese entry.
    """
    if source == "api":
        if http is None:
            async with httpx.AsyncClient(timeout=15) as own_http:
                return await _define_via_dictionary_api(own_http, word, api_url)
        return await _define_via_dictionary_api(http, word, api_url)

    if client is None:
        raise ValueError("An AI client is required for LLM definitions")
    system = (
        "You are a professional English-Chinese Dictionary.\n"
        "You MUST provide the Chinese translation for the target word.\n"
        f"If the word has multiple meanings, pick the one that fits the context: \"{context}\".\n"
        "Return synonyms, antonyms, and common usage examples.\n"
        "Constraint: Do NOT use Pinyin. Return valid JSON."
    )
    prompt = (
        f"Define the word: \"{word}\".\n"
        f"Context: \"{context}\".\n\n"
        "Output JSON format:\n"
        "{\n"
        "  \"definition\": \"English definition\",\n"
        "  \"chineseDefinition\": \"中文释义 (Must provide this, No Pinyin)\",\n"
        "  \"synonyms\": [\"syn1\", \"syn2\"],\n"
        "  \"antonyms\": [\"ant1\", \"ant2\"],\n"
        "  \"commonCollocations\": [\"phrase 1\", \"phrase 2\"],\n"
        "  \"contextSentences\": [\"Example sentence 1\", \"Example sentence 2\"]\n"
        "}"
    )
    raw = await client.generate(prompt, system_instruction=system, response_schema=DEFINITION_SCHEMA)
    data = extract_json_object(raw)
    return VocabularyItem(
        word=word,
        definition=str(data.get("definition") or "No definition."),
        chinese_definition=str(data.get("chineseDefinition") or "暂无释义"),
        synonyms=_str_list(data.get("synonyms")),
        antonyms=_str_list(data.get("antonyms")),
        common_collocations=_str_list(data.get("commonCollocations")),
        context_sentences=_str_list(data.get("contextSentences")),
    )
