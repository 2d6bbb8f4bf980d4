"""
トレードノートの変換ユーティリティ

振り返りフォーム（エントリー根拠・決済根拠・学び等）の各項目を
1つのテキストフィールドに保存するための変換を行う。
保存形式はcamelCaseキーのJSONオブジェクト。旧形式のプレーンテキストも読み込める。

使用例:
    text = combine_notes({"entry_rationale": "押し目買い", "learning": "利確が早い"})
    sections = parse_notes(text)
"""

import json
from typing import Mapping, Optional


# 内部キー → 保存時のキー
NOTE_SECTIONS = {
    "entry_rationale": "entryRationale",
    "exit_rationale": "exitRationale",
    "learning": "learning",
    "risk_management": "riskManagement",
    "psychology": "psychology",
    "retrade_decision": "retradeDecision",
    "other_remarks": "otherRemarks",
}


def empty_sections() -> dict:
    return {key: "" for key in NOTE_SECTIONS}


def combine_notes(sections: Optional[Mapping]) -> str:
    """
    振り返りフォームの各項目を保存用の文字列に変換する

    空白のみの項目は除外する。すべて空の場合は空文字を返す。

    Args:
        sections: 項目名（snake_case）→ 入力値

    Returns:
        str: JSON文字列、または空文字
    """
    if not sections:
        return ""

    filtered = {}
    for key, stored_key in NOTE_SECTIONS.items():
        value = sections.get(key) or ""
        if value.strip():
            filtered[stored_key] = value.strip()

    if not filtered:
        return ""
    return json.dumps(filtered, ensure_ascii=False)


def parse_notes(text: Optional[str]) -> dict:
    """
    保存されたノートを振り返りフォームの各項目に分解する

    JSONオブジェクトでない場合（旧形式のプレーンテキスト）は、
    全文をエントリー根拠として扱う。

    Args:
        text: 保存されたノート

    Returns:
        dict: 項目名（snake_case）→ 値。存在しない項目は空文字
    """
    sections = empty_sections()
    if not text:
        return sections

    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None

    if isinstance(parsed, dict):
        for key, stored_key in NOTE_SECTIONS.items():
            value = parsed.get(stored_key)
            sections[key] = value if isinstance(value, str) else ""
        return sections

    sections["entry_rationale"] = text
    return sections
