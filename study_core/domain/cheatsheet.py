"""Cheat sheet 结构化文档模型。

文档结构固定，所有字段都是必填项（列表允许为空，formula.note 允许为 null
但必须出现）。上游结构化调用使用 CHEAT_SHEET_JSON_SCHEMA 约束输出，
返回后再用 pydantic 模型做一次严格校验。
"""

import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from study_core.domain.exceptions import SchemaMismatch


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class Section(_Strict):
    heading: str
    bullets: List[str]


class Formula(_Strict):
    name: str
    expression: str
    note: Optional[str]


class MiniExample(_Strict):
    prompt: str
    steps: List[str]
    answer: str


class PracticeItem(_Strict):
    question: str
    answer: str


class CheatSheet(_Strict):
    """结构化 "cheat sheet" 文档。"""

    title: str
    overview: str
    sections: List[Section]
    formulas: List[Formula]
    common_mistakes: List[str]
    mini_examples: List[MiniExample]
    practice: List[PracticeItem]


def _obj(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "object",
        "additionalProperties": False,
        "properties": properties,
        "required": list(properties),
    }


_STR = {"type": "string"}
_STR_LIST = {"type": "array", "items": _STR}

# OpenAI strict json_schema 要求 additionalProperties=false 且所有字段都列入 required
CHEAT_SHEET_JSON_SCHEMA: Dict[str, Any] = _obj(
    {
        "title": _STR,
        "overview": _STR,
        "sections": {
            "type": "array",
            "items": _obj({"heading": _STR, "bullets": _STR_LIST}),
        },
        "formulas": {
            "type": "array",
            "items": _obj(
                {
                    "name": _STR,
                    "expression": _STR,
                    "note": {"type": ["string", "null"]},
                }
            ),
        },
        "common_mistakes": _STR_LIST,
        "mini_examples": {
            "type": "array",
            "items": _obj({"prompt": _STR, "steps": _STR_LIST, "answer": _STR}),
        },
        "practice": {
            "type": "array",
            "items": _obj({"question": _STR, "answer": _STR}),
        },
    }
)

CHEAT_SHEET_SCHEMA_NAME = "cheat_sheet"


def parse_cheat_sheet(payload: Union[str, bytes, Dict[str, Any], None]) -> CheatSheet:
    """把上游返回的 JSON 文本（或已解析的 dict）校验为 CheatSheet。

    Raises:
        SchemaMismatch: 不是合法 JSON，或任一必填字段缺失/类型错误。
    """

    if payload is None:
        raise SchemaMismatch("Structured payload is empty")
    data: Any = payload
    if isinstance(payload, (str, bytes)):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise SchemaMismatch(f"Structured payload is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise SchemaMismatch("Structured payload is not an object")
    try:
        return CheatSheet.model_validate(data)
    except PydanticValidationError as e:
        raise SchemaMismatch(
            f"Structured payload failed validation ({e.error_count()} errors)",
            errors=e.errors(include_url=False),
        )


def cheat_sheet_to_markdown(doc: CheatSheet) -> str:
    """把 CheatSheet 渲染为 Markdown，用于展示以及作为后续对话的历史文本。"""

    lines: List[str] = [f"# {doc.title}", "", doc.overview]
    for section in doc.sections:
        lines += ["", f"## {section.heading}"]
        lines += [f"- {b}" for b in section.bullets]
    if doc.formulas:
        lines += ["", "## Formulas"]
        for f in doc.formulas:
            line = f"- **{f.name}**: `{f.expression}`"
            if f.note:
                line += f" ({f.note})"
            lines.append(line)
    if doc.common_mistakes:
        lines += ["", "## Common mistakes"]
        lines += [f"- {m}" for m in doc.common_mistakes]
    if doc.mini_examples:
        lines += ["", "## Examples"]
        for ex in doc.mini_examples:
            lines += ["", f"**{ex.prompt}**"]
            lines += [f"{i}. {step}" for i, step in enumerate(ex.steps, start=1)]
            lines.append(f"Answer: {ex.answer}")
    if doc.practice:
        lines += ["", "## Practice"]
        for i, item in enumerate(doc.practice, start=1):
            lines.append(f"{i}. {item.question}")
            lines.append(f"   Answer: {item.answer}")
    return "\n".join(lines).strip()
