"""Prompt templates for summarising recorded conversations.

Every (kind, language) pair has a system prompt and a user prompt. The user
prompt ends with a ``{transcript}`` placeholder; a formatted profile block is
inserted just above the transcript when one is supplied.
"""

from __future__ import annotations

from typing import Dict, Tuple

from .models import ConversationKind, Language

TRANSCRIPT_PLACEHOLDER = "{transcript}"

_Key = Tuple[ConversationKind, Language]

SYSTEM_PROMPTS: Dict[_Key, str] = {
    (ConversationKind.PERSONAL, Language.ENGLISH): (
        "You are a helpful assistant helping to summarize personal notes and thoughts."
    ),
    (ConversationKind.PERSONAL, Language.JAPANESE): (
        "あなたは個人のメモや考えを要約するのを手伝うアシスタントです。"
    ),
    (ConversationKind.COUPLE, Language.ENGLISH): (
        "You are a helpful assistant helping to summarize conversations between partners."
    ),
    (ConversationKind.COUPLE, Language.JAPANESE): (
        "あなたはパートナー間の会話を要約するのを手伝うアシスタントです。"
    ),
    (ConversationKind.VETERINARY, Language.ENGLISH): (
        "You are a veterinary assistant helping to summarize consultation notes."
    ),
    (ConversationKind.VETERINARY, Language.JAPANESE): (
        "あなたは獣医の診察記録を要約するのを手伝う獣医アシスタントです。"
    ),
}

_INSTRUCTIONS: Dict[_Key, str] = {
    (ConversationKind.PERSONAL, Language.ENGLISH): (
        "Please provide a concise summary of this personal speech or monologue.\n"
        "Focus on key points, important thoughts, decisions made, or action items mentioned.\n"
        "Format the summary in a clear, organized manner suitable for personal reference."
    ),
    (ConversationKind.PERSONAL, Language.JAPANESE): (
        "この個人的なスピーチや独白の簡潔な要約を提供してください。\n"
        "重要なポイント、重要な考え、決定された事項、または言及されたアクション項目に焦点を当ててください。\n"
        "個人の参考に適した、明確で整理された形式で要約をフォーマットしてください。"
    ),
    (ConversationKind.COUPLE, Language.ENGLISH): (
        "Please provide a concise summary of this couple's conversation.\n"
        "Focus on key topics discussed, decisions made, plans mentioned, and important points for both partners.\n"
        "Format the summary in a clear, organized manner suitable for relationship reference."
    ),
    (ConversationKind.COUPLE, Language.JAPANESE): (
        "このカップルの会話の簡潔な要約を提供してください。\n"
        "議論された主要なトピック、決定された事項、言及された計画、および両パートナーにとって重要なポイントに焦点を当ててください。\n"
        "関係の参考に適した、明確で整理された形式で要約をフォーマットしてください。"
    ),
    (ConversationKind.VETERINARY, Language.ENGLISH): (
        "Please provide a concise medical summary of this veterinary consultation transcript.\n"
        "Focus on key findings, diagnoses, treatment recommendations, and follow-up instructions.\n"
        "Format the summary in a clear, professional manner suitable for medical records."
    ),
    (ConversationKind.VETERINARY, Language.JAPANESE): (
        "この獣医診察の文字起こしの簡潔な医療要約を提供してください。\n"
        "重要な所見、診断、治療推奨事項、およびフォローアップ指示に焦点を当ててください。\n"
        "医療記録に適した、明確で専門的な形式で要約をフォーマットしてください。"
    ),
}

_PROFILE_HEADINGS = {
    Language.ENGLISH: "Background information:",
    Language.JAPANESE: "背景情報:",
}

_TRANSCRIPT_HEADINGS = {
    Language.ENGLISH: "Transcript:",
    Language.JAPANESE: "文字起こし:",
}


def system_prompt(kind: ConversationKind, language: Language) -> str:
    return SYSTEM_PROMPTS[(kind, language)]


def user_prompt(kind: ConversationKind, language: Language, profile_context: str = "") -> str:
    """Return the user prompt template, still containing ``{transcript}``."""

    sections = [_INSTRUCTIONS[(kind, language)]]
    if profile_context.strip():
        sections.append(f"{_PROFILE_HEADINGS[language]}\n{profile_context.strip()}")
    sections.append(f"{_TRANSCRIPT_HEADINGS[language]}\n{TRANSCRIPT_PLACEHOLDER}")
    return "\n\n".join(sections)


def render_user_prompt(
    kind: ConversationKind,
    language: Language,
    transcript: str,
    profile_context: str = "",
) -> str:
    template = user_prompt(kind, language, profile_context)
    # Only the trailing placeholder is substituted; profile text may contain braces.
    head, _, tail = template.rpartition(TRANSCRIPT_PLACEHOLDER)
    return head + transcript + tail
